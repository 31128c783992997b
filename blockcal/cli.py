"""blockcal CLI - calibrate a raw detector block and render it as bitmaps."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .acquire import load_raw_grid, synthesize_block, write_raw_grid
from .bitmap import write_bitmap
from .calibrate import ZERO_POLICIES, ZERO_POLICY_ZERO, CalibrationConfig, calibrate, load_profile
from .render import render_normalized, render_thickness
from .report import build_summary, create_report_pdf
from .utils import ensure_dir, save_json, save_png_preview

DEFAULT_INPUT = "block.int"
NORMALIZED_NAME = "normalized_image.bmp"
THICKNESS_NAME = "thickness_image.bmp"
THICKNESS_PROMPT = "Input 1 to check thickness: "


def _ask_thickness(input_fn: Callable[[str], str]) -> bool:
    try:
        answer = input_fn(THICKNESS_PROMPT)
    except EOFError:
        return False
    try:
        return int(answer.strip()) == 1
    except ValueError:
        return False


def _run_one(
    input_path: Path,
    output_dir: Path,
    config: CalibrationConfig,
    zero_policy: str,
    thickness: str,
    png: bool,
    report: bool,
    progress_fn: Optional[Callable[[str], None]] = None,
    input_fn: Callable[[str], str] = input,
) -> Dict[str, Path]:
    def _progress(msg: str) -> None:
        if progress_fn is not None:
            progress_fn(msg)

    _progress(f"Loading {input_path}")
    raw = load_raw_grid(input_path)
    _progress(f"Grid {raw.height}x{raw.width}")

    result = calibrate(raw, config, zero_policy=zero_policy, progress_fn=progress_fn)
    normalized = render_normalized(result.grid)

    # Nothing is written before calibration has succeeded.
    ensure_dir(output_dir)
    outputs: Dict[str, Path] = {}
    previews: Dict[str, Path] = {}

    outputs["normalized"] = write_bitmap(output_dir / NORMALIZED_NAME, normalized)
    print(f"Image '{NORMALIZED_NAME}' generated successfully.")
    if png or report:
        previews["Normalized"] = output_dir / "normalized_image.png"
        save_png_preview(previews["Normalized"], normalized)

    if thickness == "yes" or (thickness == "ask" and _ask_thickness(input_fn)):
        _progress("Rendering thickness map")
        thick = render_thickness(result.grid, config)
        outputs["thickness"] = write_bitmap(output_dir / THICKNESS_NAME, thick)
        print(f"Image '{THICKNESS_NAME}' generated successfully.")
        if png or report:
            previews["Thickness"] = output_dir / "thickness_image.png"
            save_png_preview(previews["Thickness"], thick)

    if png:
        outputs.update({f"{k.lower()}_png": v for k, v in previews.items()})

    if report:
        _progress("Exporting JSON/PDF report")
        json_path = output_dir / "calibration_summary.json"
        pdf_path = output_dir / "calibration_report.pdf"
        summary = build_summary(input_path, result, config, zero_policy, outputs)
        save_json(json_path, summary)
        create_report_pdf(pdf_path, previews, summary)
        outputs["json"] = json_path
        outputs["pdf"] = pdf_path

    return outputs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blockcal", description="Radiometric calibration of raw detector blocks.")
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Calibrate a raw block and write normalized/thickness bitmaps (default).")
    run_p.add_argument("--input", type=str, default=DEFAULT_INPUT)
    run_p.add_argument("--output_dir", type=str, default=".")
    run_p.add_argument(
        "--thickness",
        type=str,
        default="ask",
        choices=["ask", "yes", "no"],
        help="Render the thickness map: prompt on stdin (default), always or never.",
    )
    run_p.add_argument("--profile", type=str, default=None, help="JSON calibration profile overriding recipe constants.")
    run_p.add_argument(
        "--zero_policy",
        dest="zero_policy",
        type=str,
        default=ZERO_POLICY_ZERO,
        choices=list(ZERO_POLICIES),
        help="Handling of rows whose detector band averages to zero.",
    )
    run_p.add_argument("--png", action="store_true", help="Also save PNG previews.")
    run_p.add_argument("--report", action="store_true", help="Write a JSON summary and a PDF report.")
    run_p.add_argument("--verbose", action="store_true")

    synth_p = sub.add_parser("synth", help="Write a synthetic raw block for demos.")
    synth_p.add_argument("--output", type=str, default=DEFAULT_INPUT)
    synth_p.add_argument("--height", type=int, default=256)
    synth_p.add_argument("--width", type=int, default=320)
    synth_p.add_argument("--seed", type=int, default=None)

    return parser


def cmd_run(args: argparse.Namespace, input_fn: Callable[[str], str] = input) -> int:
    try:
        def _progress(msg: str) -> None:
            print(f"[blockcal] {msg}")

        config = load_profile(Path(args.profile)) if args.profile else CalibrationConfig()
        outputs = _run_one(
            Path(args.input),
            Path(args.output_dir),
            config,
            args.zero_policy,
            args.thickness,
            args.png,
            args.report,
            _progress if args.verbose else None,
            input_fn,
        )
        if args.verbose:
            for k, v in outputs.items():
                print(f"  {k}: {v}")
        return 0
    except Exception as e:
        print(f"An error occurred: {e}", file=sys.stderr)
        return 1


def cmd_synth(args: argparse.Namespace) -> int:
    try:
        data = synthesize_block(args.height, args.width, seed=args.seed)
        path = write_raw_grid(Path(args.output), data)
        print(f"Synthetic block written: {path} ({args.height}x{args.width})")
        return 0
    except Exception as e:
        print(f"An error occurred: {e}", file=sys.stderr)
        return 1


def main(argv: Optional[List[str]] = None, input_fn: Callable[[str], str] = input) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    # No subcommand means the default calibration run.
    if not argv or (argv[0].startswith("-") and argv[0] not in ("-h", "--help")):
        argv.insert(0, "run")

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return cmd_run(args, input_fn)
    if args.command == "synth":
        return cmd_synth(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
