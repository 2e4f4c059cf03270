"""
Relative Map - Page elements normalized to center points and sizes expressed
as fractions of the content box, plus text matching against recognized words.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..parser.elements import Box, PageElements
from ..rebuilder.coordinate_mapper import BoundsMode, CoordinateMapper, to_raster_y

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelativeElement:
    """Center-anchored position and size, each in [0, 1] when inside the box."""
    relative_x: float
    relative_y: float
    relative_width: float
    relative_height: float

    kind = 'element'

    def to_pixels(self, width: float, height: float) -> Tuple[float, float, float, float]:
        """Top-left pixel box inside a canvas of the given size."""
        w = self.relative_width * width
        h = self.relative_height * height
        return (self.relative_x * width - w / 2.0, self.relative_y * height - h / 2.0, w, h)

    def is_near_bounds(self, margin: float = 0.1) -> bool:
        low, high = -margin, 1.0 + margin
        return low <= self.relative_x <= high and low <= self.relative_y <= high


@dataclass(frozen=True)
class RelativeText(RelativeElement):
    text: str = ''
    font_name: str = ''
    font_size: float = 0.0
    is_bold: bool = False
    is_italic: bool = False

    kind = 'text'


@dataclass(frozen=True)
class RelativeImage(RelativeElement):
    image_index: int = 0

    kind = 'image'


@dataclass(frozen=True)
class RelativeMapResult:
    bounds: Box
    elements: Tuple[RelativeElement, ...] = ()
    # CalibrationResult once the map has been aligned with a target image
    calibration: Optional[Any] = None

    @property
    def texts(self) -> List[RelativeText]:
        return [e for e in self.elements if isinstance(e, RelativeText)]

    @property
    def aspect_ratio(self) -> float:
        return self.bounds.width / self.bounds.height


@dataclass(frozen=True)
class MatchedPair:
    """A relative center and the pixel center of the word it matched."""
    relative_x: float
    relative_y: float
    pixel_x: float
    pixel_y: float
    text: str = ''


def normalize_text(text: str) -> str:
    """Drop whitespace and underscores, lowercase."""
    return ''.join(c.lower() for c in text if not c.isspace() and c != '_')


def is_form_blank(text: str) -> bool:
    """Text made mostly of underscores, such as a fill-in line."""
    return bool(text) and text.count('_') > len(text) // 2


def texts_match(pdf_text: str, ocr_text: str, min_contained: int = 4) -> bool:
    """Both arguments normalized. Exact, or one contains the other."""
    if pdf_text == ocr_text:
        return True
    if len(pdf_text) >= min_contained and pdf_text in ocr_text:
        return True
    return len(ocr_text) >= min_contained and ocr_text in pdf_text


def relative_center(box: Box, bounds: Box) -> Tuple[float, float, float, float]:
    """(relX, relY, relW, relH) of a bottom-left box, y measured from the top."""
    top_left_y = to_raster_y(box.y - bounds.y + box.height, bounds.height)
    return (
        (box.x - bounds.x + box.width / 2.0) / bounds.width,
        (top_left_y + box.height / 2.0) / bounds.height,
        box.width / bounds.width,
        box.height / bounds.height,
    )


class RelativeMapBuilder:
    """
    Builds relative maps and pairs their text with recognized words.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the builder.

        Args:
            config: Calibration configuration section
        """
        config = config or {}
        self.min_text_length = config.get('min_text_length', 2)
        self.min_contained_length = config.get('min_contained_length', 4)
        self.mapper = CoordinateMapper(config)

    def to_relative_map(self, elements: PageElements,
                        bounds_mode: BoundsMode = BoundsMode.LARGEST_RECTANGLE) -> RelativeMapResult:
        """
        Normalize text and images against the content box.

        Raises:
            InvalidBounds: No usable content box
        """
        bounds = self.mapper.resolve_bounds(elements, bounds_mode)
        logger.info(f"Relative map bounds: ({bounds.x:.1f}, {bounds.y:.1f}) "
                    f"{bounds.width:.1f}x{bounds.height:.1f}pt")

        relative: List[RelativeElement] = []
        skipped = 0
        for text in elements.text_elements:
            if is_form_blank(text.text):
                skipped += 1
                continue
            rx, ry, rw, rh = relative_center(text.bbox, bounds)
            relative.append(RelativeText(rx, ry, rw, rh, text=text.text, font_name=text.font_name,
                                         font_size=text.font_size, is_bold=text.is_bold,
                                         is_italic=text.is_italic))
        for image in elements.images:
            rx, ry, rw, rh = relative_center(image.box, bounds)
            relative.append(RelativeImage(rx, ry, rw, rh, image_index=image.image_index))

        if skipped:
            logger.debug(f"Skipped {skipped} underscore-only text elements")
        logger.info(f"Created relative map with {len(relative)} elements")
        return RelativeMapResult(bounds, tuple(relative))

    def match_words(self, relative_map: RelativeMapResult, words: Sequence[Any]) -> List[MatchedPair]:
        """
        Pair each relative text with the first recognized word it matches.

        Args:
            relative_map: Relative map of the page
            words: Recognized words with ``text`` and pixel ``box`` (x, y, w, h)
        """
        normalized = [(normalize_text(w.text), w) for w in words]
        matches = []
        for element in relative_map.texts:
            pdf_text = normalize_text(element.text)
            if len(pdf_text) < self.min_text_length:
                continue
            for ocr_text, word in normalized:
                if not texts_match(pdf_text, ocr_text, self.min_contained_length):
                    continue
                x, y, w, h = word.box
                matches.append(MatchedPair(element.relative_x, element.relative_y,
                                           x + w / 2.0, y + h / 2.0, element.text))
                logger.debug(f"Matched '{element.text}' <-> '{word.text}'")
                break
        logger.info(f"Found {len(matches)} text matches")
        return matches
