"""
Font Mapper - Maps PDF font names to TrueType faces the rasterizer can load
"""

import logging
from typing import Dict, List, Optional, Tuple

from PIL import ImageFont

logger = logging.getLogger(__name__)


class FontMapper:
    """
    Maps PDF font names to a generic family and loads a matching Pillow font.
    """

    # PDF base font -> generic family
    DEFAULT_FONT_MAP = {
        'Helvetica': 'sans',
        'Arial': 'sans',
        'ArialMT': 'sans',
        'Verdana': 'sans',
        'Tahoma': 'sans',
        'Calibri': 'sans',
        'DejaVuSans': 'sans',
        'Times': 'serif',
        'Times-Roman': 'serif',
        'TimesNewRoman': 'serif',
        'TimesNewRomanPSMT': 'serif',
        'Georgia': 'serif',
        'Cambria': 'serif',
        'Courier': 'mono',
        'CourierNew': 'mono',
        'Consolas': 'mono',
    }

    # family -> style -> candidate font files, tried in order
    FONT_FILES = {
        'sans': {
            'regular': ['DejaVuSans.ttf', 'LiberationSans-Regular.ttf', 'Arial.ttf', 'arial.ttf'],
            'bold': ['DejaVuSans-Bold.ttf', 'LiberationSans-Bold.ttf', 'Arial Bold.ttf', 'arialbd.ttf'],
            'italic': ['DejaVuSans-Oblique.ttf', 'LiberationSans-Italic.ttf', 'Arial Italic.ttf', 'ariali.ttf'],
            'bold_italic': ['DejaVuSans-BoldOblique.ttf', 'LiberationSans-BoldItalic.ttf', 'arialbi.ttf'],
        },
        'serif': {
            'regular': ['DejaVuSerif.ttf', 'LiberationSerif-Regular.ttf', 'Times New Roman.ttf', 'times.ttf'],
            'bold': ['DejaVuSerif-Bold.ttf', 'LiberationSerif-Bold.ttf', 'timesbd.ttf'],
            'italic': ['DejaVuSerif-Italic.ttf', 'LiberationSerif-Italic.ttf', 'timesi.ttf'],
            'bold_italic': ['DejaVuSerif-BoldItalic.ttf', 'LiberationSerif-BoldItalic.ttf', 'timesbi.ttf'],
        },
        'mono': {
            'regular': ['DejaVuSansMono.ttf', 'LiberationMono-Regular.ttf', 'cour.ttf'],
            'bold': ['DejaVuSansMono-Bold.ttf', 'LiberationMono-Bold.ttf', 'courbd.ttf'],
            'italic': ['DejaVuSansMono-Oblique.ttf', 'LiberationMono-Italic.ttf', 'couri.ttf'],
            'bold_italic': ['DejaVuSansMono-BoldOblique.ttf', 'LiberationMono-BoldItalic.ttf', 'courbi.ttf'],
        },
    }

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Font Mapper.

        Args:
            config: Fonts configuration section with optional ``font_mapping``
                (PDF name -> family), ``default_family`` and ``font_dirs``
        """
        config = config or {}
        self.font_map = {**self.DEFAULT_FONT_MAP, **config.get('font_mapping', {})}
        self.default_family = config.get('default_family', 'sans')
        self.font_dirs: List[str] = config.get('font_dirs', [])
        self._cache: Dict[Tuple[str, str, int], ImageFont.ImageFont] = {}

    def map_family(self, pdf_font_name: str) -> str:
        """
        Map a PDF font name to a generic family.

        Args:
            pdf_font_name: Font name from PDF, possibly subset-prefixed

        Returns:
            'sans', 'serif' or 'mono'
        """
        if not pdf_font_name:
            return self.default_family

        # drop subset prefix (ABCDEF+Name) and style suffix
        name = pdf_font_name.split('+')[-1]
        if name in self.font_map:
            return self.font_map[name]
        base = name.split('-')[0].split(',')[0]
        if base in self.font_map:
            return self.font_map[base]

        lowered = name.lower()
        for pdf_name, family in self.font_map.items():
            if pdf_name.lower() in lowered:
                return family
        if 'mono' in lowered or 'courier' in lowered:
            return 'mono'
        if 'serif' in lowered and 'sans' not in lowered:
            return 'serif'

        logger.debug(f"Font mapping: no match for '{pdf_font_name}', using {self.default_family}")
        return self.default_family

    @staticmethod
    def style_key(bold: bool, italic: bool) -> str:
        if bold and italic:
            return 'bold_italic'
        if bold:
            return 'bold'
        if italic:
            return 'italic'
        return 'regular'

    def load_font(self, pdf_font_name: str, size: int, bold: bool = False,
                  italic: bool = False) -> ImageFont.ImageFont:
        """
        Load a Pillow font for a PDF font at a pixel size.

        Falls back to Pillow's built-in font when no TrueType file is found.
        """
        size = max(1, int(round(size)))
        family = self.map_family(pdf_font_name)
        style = self.style_key(bold, italic)
        key = (family, style, size)
        if key in self._cache:
            return self._cache[key]

        font = None
        for filename in self.FONT_FILES[family][style] + self.FONT_FILES[family]['regular']:
            for candidate in [filename] + [f"{d.rstrip('/')}/{filename}" for d in self.font_dirs]:
                try:
                    font = ImageFont.truetype(candidate, size)
                    break
                except OSError:
                    continue
            if font is not None:
                break

        if font is None:
            logger.debug(f"No TrueType file for {family}/{style}, using built-in font")
            font = ImageFont.load_default(size=size)

        self._cache[key] = font
        return font
