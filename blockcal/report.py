"""Run summaries (JSON) and one-page PDF reports for blockcal outputs."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from . import __version__
from .calibrate import CalibrationConfig, CalibrationResult
from .utils import timestamp_iso


def _band_summary(band: np.ndarray) -> Dict[str, Optional[float]]:
    finite = band[np.isfinite(band)]
    if finite.size == 0:
        return {"min": None, "max": None, "mean": None}
    return {"min": float(finite.min()), "max": float(finite.max()), "mean": float(finite.mean())}


def build_summary(
    input_path: Path,
    result: CalibrationResult,
    config: CalibrationConfig,
    zero_policy: str,
    outputs: Dict[str, Path],
) -> Dict[str, Any]:
    """Collect run metadata and calibration statistics into a JSON-ready dict."""
    grid = result.grid
    stats = result.stats
    values = grid.values
    open_cells = ~grid.calibrated
    open_values = values[open_cells]
    return {
        "metadata": {
            "timestamp": timestamp_iso(),
            "input_file": str(input_path),
            "height": grid.height,
            "width": grid.width,
            "zero_policy": zero_policy,
            "config": config,
            "version": __version__,
        },
        "stats": {
            "overall_median": stats.overall_median,
            "row_band": _band_summary(stats.row_band),
            "detector_band": _band_summary(stats.detector_band),
            "zero_detector_rows": stats.zero_detector_rows,
            "calibrated_cells": stats.calibrated_count,
            "uncalibrated_cells": int(open_cells.sum()),
            "nan_cells": int(np.isnan(values).sum()),
            "uncalibrated_mean_value": float(np.nanmean(open_values)) if open_values.size else None,
        },
        "outputs": {k: str(v) for k, v in outputs.items()},
    }


def _fmt(value: Any) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float):
        return f"{value:.4f}"
    return str(value)


def _stat_rows(summary: Dict[str, Any]) -> List[Tuple[str, str]]:
    meta = summary["metadata"]
    s = summary["stats"]
    rows = [
        ("Dimensions (H x W)", f"{meta['height']} x {meta['width']}"),
        ("Overall row-band mean", _fmt(s["overall_median"])),
        (
            "Row band (min / mean / max)",
            " / ".join(_fmt(s["row_band"][k]) for k in ("min", "mean", "max")),
        ),
        (
            "Detector band (min / mean / max)",
            " / ".join(_fmt(s["detector_band"][k]) for k in ("min", "mean", "max")),
        ),
        ("Calibrated cells", _fmt(s["calibrated_cells"])),
        ("Uncalibrated cells", _fmt(s["uncalibrated_cells"])),
        ("Mean normalized value", _fmt(s["uncalibrated_mean_value"])),
        ("Zero detector-band policy", meta["zero_policy"]),
    ]
    zero_rows = s["zero_detector_rows"]
    if zero_rows:
        shown = ", ".join(str(r) for r in zero_rows[:10])
        if len(zero_rows) > 10:
            shown += f", ... ({len(zero_rows)} rows)"
        rows.append(("Rows with zero detector band", shown))
    if s["nan_cells"]:
        rows.append(("NaN cells", _fmt(s["nan_cells"])))
    return rows


def create_report_pdf(output_pdf_path: Path, images: Dict[str, Path], summary: Dict[str, Any]) -> None:
    """Generate a one-page PDF with preview images and a statistics table."""
    doc = SimpleDocTemplate(str(output_pdf_path), pagesize=A4, leftMargin=1.2 * cm, rightMargin=1.2 * cm)
    styles = getSampleStyleSheet()
    story = []

    story.append(Paragraph("<b>blockcal - Calibration report</b>", styles["Title"]))
    story.append(Spacer(1, 0.25 * cm))

    meta = summary["metadata"]
    story.append(
        Paragraph(
            f"Date: {meta['timestamp']} | File: {meta['input_file']} | Version: {meta['version']}",
            styles["Normal"],
        )
    )
    story.append(Spacer(1, 0.2 * cm))

    if images:
        img_w = 8.5 * cm
        aspect = float(meta["height"]) / float(meta["width"])
        img_h = min(img_w * aspect, 12.0 * cm)
        image_row = [Image(str(p), width=img_w, height=img_h) for p in images.values()]
        label_row = [Paragraph(label, styles["Normal"]) for label in images]
        image_table = Table([image_row, label_row], colWidths=[9.1 * cm] * len(images))
        image_table.setStyle(TableStyle([("ALIGN", (0, 0), (-1, -1), "CENTER"), ("VALIGN", (0, 0), (-1, -1), "MIDDLE")]))
        story.append(image_table)
        story.append(Spacer(1, 0.4 * cm))

    stat_rows = [("Statistic", "Value")] + _stat_rows(summary)
    stats_table = Table(stat_rows, colWidths=[7.4 * cm, 11.1 * cm])
    stats_table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#d9edf7")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.black),
                ("GRID", (0, 0), (-1, -1), 0.6, colors.grey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
            ]
        )
    )
    story.append(stats_table)

    story.append(Spacer(1, 0.2 * cm))
    story.append(
        Paragraph(
            "Red cells in the normalized view are reference-band cells consumed by the row or detector calibration.",
            styles["Italic"],
        )
    )

    doc.build(story)
