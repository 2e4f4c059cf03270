"""
OCR Module
Tesseract word recognition and graphic masking.
"""

from .engine import OCRConfig, OCREngine, RecognizedWord
from .graphic_mask import GraphicMasker, mask_non_text_regions

__all__ = ['OCRConfig', 'OCREngine', 'RecognizedWord', 'GraphicMasker', 'mask_non_text_regions']
