"""
pdfcontent - Structural content extraction from PDF pages, crop-mark
removal, raster rendering and relative-map calibration.
"""

__version__ = '0.1.0'
