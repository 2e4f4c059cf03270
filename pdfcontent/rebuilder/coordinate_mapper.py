"""
Coordinate Mapper - Conversions between PDF page points (bottom-left origin)
and raster pixels (top-left origin), plus content-bounds resolution shared by
the renderer and the calibrator.
"""

import logging
from enum import Enum
from typing import Any, Iterable, List, Optional

from ..errors import InvalidBounds
from ..parser.elements import (
    Box, EmbeddedImage, LineSegment, PageElements, Rectangle, TextElement
)

logger = logging.getLogger(__name__)

POINTS_PER_INCH = 72.0
TEXT_BASELINE_ALLOWANCE = 10.0


class BoundsMode(Enum):
    CROP_MARKS = 'crop'
    LARGEST_RECTANGLE = 'rect'
    COMPUTED = 'auto'


def to_raster_y(pdf_y: float, content_height: float) -> float:
    """Flip a y coordinate between bottom-left and top-left within a content box."""
    return content_height - pdf_y


def to_pixels(points: float, dpi: float) -> float:
    return points * dpi / POINTS_PER_INCH


def to_points(pixels: float, dpi: float) -> float:
    return pixels * POINTS_PER_INCH / dpi


def element_box(element: Any) -> Box:
    """Footprint of any page element in page points."""
    if isinstance(element, TextElement):
        return element.bbox
    return element.box


def clip_to_bounds(element: Any, min_x: float, min_y: float, max_x: float, max_y: float) -> bool:
    """
    Whether an element overlaps the bounds.

    Text keeps a baseline allowance above its box so glyphs hanging just
    below the top edge are still drawn.
    """
    box = element_box(element)
    if isinstance(element, TextElement):
        return (box.right > min_x and box.x < max_x and
                box.top > min_y and box.y - TEXT_BASELINE_ALLOWANCE < max_y)
    if isinstance(element, LineSegment):
        return (element.max_x >= min_x and element.min_x <= max_x and
                element.max_y >= min_y and element.min_y <= max_y)
    return box.right > min_x and box.x < max_x and box.top > min_y and box.y < max_y


def all_elements(elements: PageElements) -> List[Any]:
    return [*elements.text_elements, *elements.images, *elements.rectangles, *elements.lines]


class CoordinateMapper:
    """
    Resolves the content box used to render or normalize a page and maps
    points inside it to pixels.
    """

    def __init__(self, config: Optional[dict] = None):
        config = config or {}
        self.dpi = config.get('dpi', 300)

    def resolve_bounds(self, elements: PageElements, mode: BoundsMode) -> Box:
        """
        Pick the content box for a bounds strategy.

        Args:
            elements: Page elements
            mode: Bounds strategy

        Returns:
            Box in page points, clamped to the page box

        Raises:
            InvalidBounds: The strategy yields no usable box
        """
        box = None
        if mode is BoundsMode.LARGEST_RECTANGLE:
            box = self.largest_element_box(elements)
            if box is None:
                raise InvalidBounds("No rectangles or images found for USE_LARGEST_RECTANGLE mode")
        elif mode is BoundsMode.CROP_MARKS:
            interior = elements.interior_box
            if interior is not None and not interior.is_degenerate():
                box = interior
            else:
                logger.warning("No usable crop-mark box, computing bounds from elements")

        if box is None:
            box = self.computed_bounds(elements)

        return self.clamp(box, elements.page_box)

    @staticmethod
    def largest_element_box(elements: PageElements) -> Optional[Box]:
        """Largest rectangle, or the largest image when there are no rectangles."""
        if elements.rectangles:
            largest: Rectangle = max(elements.rectangles, key=lambda r: r.area)
            logger.info(f"Using largest rectangle as content area: ({largest.x:.1f}, {largest.y:.1f}) "
                        f"{largest.width:.1f}x{largest.height:.1f}pt")
            return largest.box
        if elements.images:
            largest_image: EmbeddedImage = max(elements.images, key=lambda i: i.box.area)
            logger.info(f"No rectangles, using largest image {largest_image.image_index} as content area")
            return largest_image.box
        return None

    @staticmethod
    def computed_bounds(elements: PageElements) -> Box:
        """Union of the elements lying fully inside the page box, else the page box."""
        page = elements.page_box
        union: Optional[Box] = None
        for element in all_elements(elements):
            box = element_box(element)
            if page.contains(box):
                union = box if union is None else union.union(box)
        return union if union is not None else page

    @staticmethod
    def clamp(box: Box, page: Box) -> Box:
        if page.is_degenerate():
            clamped = box
        else:
            clamped = Box.from_extents(
                max(box.x, page.x), max(box.y, page.y),
                min(box.right, page.right), min(box.top, page.top),
            )
        if clamped.is_degenerate():
            raise InvalidBounds(
                f"Invalid bounding box dimensions: {clamped.width:.1f} x {clamped.height:.1f}")
        return clamped

    @staticmethod
    def visible(elements: Iterable[Any], bounds: Box) -> List[Any]:
        return [e for e in elements
                if clip_to_bounds(e, bounds.x, bounds.y, bounds.right, bounds.top)]
