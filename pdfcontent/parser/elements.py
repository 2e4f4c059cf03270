"""
Element Records - Immutable value records produced by page extraction.

All geometry on a PageElements record lives in page-point space with the
origin at the bottom-left corner of the page (1pt = 1/72 inch).
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Tuple


class TextOrientation(Enum):
    HORIZONTAL = 'horizontal'
    VERTICAL = 'vertical'
    UNKNOWN = 'unknown'


class TextLevel(Enum):
    WORD = 'word'
    LINE = 'line'


@dataclass(frozen=True)
class Box:
    """Axis-aligned box: (x, y) is the lower-left corner."""
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def top(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def is_degenerate(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def union(self, other: 'Box') -> 'Box':
        min_x = min(self.x, other.x)
        min_y = min(self.y, other.y)
        max_x = max(self.right, other.right)
        max_y = max(self.top, other.top)
        return Box(min_x, min_y, max_x - min_x, max_y - min_y)

    def contains(self, other: 'Box') -> bool:
        return (other.x >= self.x and other.y >= self.y and
                other.right <= self.right and other.top <= self.top)

    @classmethod
    def from_extents(cls, min_x: float, min_y: float, max_x: float, max_y: float) -> 'Box':
        return cls(min_x, min_y, max_x - min_x, max_y - min_y)


@dataclass(frozen=True)
class Rectangle:
    page_number: int
    x: float
    y: float
    width: float
    height: float
    stroke_width: float = 1.0
    filled: bool = False
    stroked: bool = True

    @property
    def box(self) -> Box:
        return Box(self.x, self.y, self.width, self.height)

    @property
    def area(self) -> float:
        return self.width * self.height


@dataclass(frozen=True)
class LineSegment:
    page_number: int
    x1: float
    y1: float
    x2: float
    y2: float
    stroke_width: float = 1.0
    length: float = 0.0
    is_horizontal: bool = False
    is_vertical: bool = False

    @classmethod
    def between(cls, page_number: int, x1: float, y1: float, x2: float, y2: float,
                stroke_width: float = 1.0, axis_tolerance: float = 5.0) -> 'LineSegment':
        """
        Build a segment and classify it against the page axes.

        Args:
            axis_tolerance: Degrees from an axis still counted as on it

        Returns:
            LineSegment with length and orientation flags filled in
        """
        dx = x2 - x1
        dy = y2 - y1
        angle = math.degrees(math.atan2(abs(dy), abs(dx)))
        return cls(
            page_number=page_number,
            x1=x1, y1=y1, x2=x2, y2=y2,
            stroke_width=stroke_width,
            length=math.hypot(dx, dy),
            is_horizontal=angle < axis_tolerance,
            is_vertical=angle > 90.0 - axis_tolerance,
        )

    @property
    def min_x(self) -> float:
        return min(self.x1, self.x2)

    @property
    def max_x(self) -> float:
        return max(self.x1, self.x2)

    @property
    def min_y(self) -> float:
        return min(self.y1, self.y2)

    @property
    def max_y(self) -> float:
        return max(self.y1, self.y2)

    @property
    def mid_x(self) -> float:
        return (self.x1 + self.x2) / 2.0

    @property
    def mid_y(self) -> float:
        return (self.y1 + self.y2) / 2.0

    @property
    def box(self) -> Box:
        return Box.from_extents(self.min_x, self.min_y, self.max_x, self.max_y)


@dataclass(frozen=True)
class TextElement:
    """A word or merged line of text; ``bbox.y`` is the lower edge."""
    text: str
    bbox: Box
    font_name: str = ''
    font_size: float = 0.0
    is_bold: bool = False
    is_italic: bool = False
    orientation: TextOrientation = TextOrientation.HORIZONTAL
    confidence: float = 80.0
    level: TextLevel = TextLevel.WORD


@dataclass(frozen=True)
class EmbeddedImage:
    """
    An image drawn on the page.

    ``display_width``/``display_height`` are the lengths of the image's own
    x and y axes on the page; ``box`` is the axis-aligned footprint.
    """
    pixels: Any = field(compare=False, repr=False)
    page_number: int = 1
    image_index: int = 0
    pixel_width: int = 0
    pixel_height: int = 0
    x: float = 0.0
    y: float = 0.0
    display_width: float = 0.0
    display_height: float = 0.0
    rotation_angle: float = 0.0
    source_type: str = 'raw'

    def is_quarter_turn(self, tolerance: float = 0.1) -> bool:
        return abs(abs(self.rotation_angle) - math.pi / 2.0) < tolerance

    @property
    def box(self) -> Box:
        if self.is_quarter_turn():
            return Box(self.x, self.y, self.display_height, self.display_width)
        return Box(self.x, self.y, self.display_width, self.display_height)


@dataclass(frozen=True)
class PageElements:
    """Everything extracted from one page, threaded through the pipeline."""
    full_text: str = ''
    text_elements: Tuple[TextElement, ...] = ()
    images: Tuple[EmbeddedImage, ...] = ()
    rectangles: Tuple[Rectangle, ...] = ()
    lines: Tuple[LineSegment, ...] = ()
    page_count: int = 0
    page_box: Box = Box(0.0, 0.0, 0.0, 0.0)
    interior_box: Optional[Box] = None

    @property
    def text_count(self) -> int:
        return len(self.text_elements)

    @property
    def image_count(self) -> int:
        return len(self.images)

    @property
    def rectangle_count(self) -> int:
        return len(self.rectangles)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def evolve(self, **changes) -> 'PageElements':
        return replace(self, **changes)
