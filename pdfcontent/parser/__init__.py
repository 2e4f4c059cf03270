"""
PDF Parser Module
Walks PDF pages into drawing operations and words, and turns them into
rectangles, lines, images and text elements.
"""

from .pdf_parser import PDFParser, RawPage
from .path_geometry import PathGeometryExtractor
from .text_extractor import TextExtractor

__all__ = ['PDFParser', 'RawPage', 'PathGeometryExtractor', 'TextExtractor']
