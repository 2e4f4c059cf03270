"""
Calibration Module
Relative maps and their alignment with pictures of the page.
"""

from .relative_map import RelativeMapBuilder, RelativeMapResult
from .calibrator import CalibrationResult, RelativeMapCalibrator

__all__ = ['RelativeMapBuilder', 'RelativeMapResult', 'CalibrationResult', 'RelativeMapCalibrator']
