"""blockcal - radiometric calibration of raw detector blocks."""

__version__ = "0.1.0"
