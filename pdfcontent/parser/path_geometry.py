"""
Path Geometry Extractor - Turns a page's drawing operations into rectangles,
line segments and image placements in bottom-left page-point space.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .drawing_ops import (
    DrawingOperation, ImageOperation, Matrix, PaintKind, PathOperation, SubPath
)
from .elements import EmbeddedImage, LineSegment, Rectangle
from ..errors import RectangleGeometryInvalid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedGeometry:
    rectangles: Tuple[Rectangle, ...] = ()
    lines: Tuple[LineSegment, ...] = ()
    images: Tuple[EmbeddedImage, ...] = ()


def count_unique(values: Iterable[float], tolerance: float) -> int:
    """Count values that differ from every earlier kept value by at least ``tolerance``."""
    unique: List[float] = []
    for value in values:
        if not any(abs(value - u) < tolerance for u in unique):
            unique.append(value)
    return len(unique)


class PathGeometryExtractor:
    """
    Folds a drawing-operation stream into candidate rectangles and lines.

    Fill operations can only yield rectangles; stroke operations yield both
    rectangles and the individual segments of every subpath.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the extractor.

        Args:
            config: Parser configuration section
        """
        config = config or {}
        self.min_rect_size = config.get('min_rect_size', 5.0)
        self.rect_tolerance = config.get('rect_tolerance', 0.5)
        self.min_line_length = config.get('min_line_length', 5.0)
        self.axis_tolerance = config.get('axis_tolerance_deg', 5.0)

    def extract(self, operations: Iterable[DrawingOperation], page_number: int = 1) -> ExtractedGeometry:
        """
        Walk every operation once and collect geometry.

        Args:
            operations: Drawing operations in paint order
            page_number: 1-based page number stamped on each record

        Returns:
            ExtractedGeometry with rectangles, lines and images
        """
        rectangles: List[Rectangle] = []
        lines: List[LineSegment] = []
        images: List[EmbeddedImage] = []

        for op in operations:
            if isinstance(op, ImageOperation):
                image = self.place_image(op, len(images), page_number)
                if image is not None:
                    images.append(image)
                continue

            stroked = op.kind is PaintKind.STROKE
            for subpath in op.subpaths:
                try:
                    rectangles.append(self.classify_rectangle(
                        subpath, op.ctm, op.line_width,
                        filled=not stroked, stroked=stroked, page_number=page_number))
                except RectangleGeometryInvalid as e:
                    logger.debug(f"Subpath rejected as rectangle: {e.message}")

                if stroked:
                    lines.extend(self.extract_lines(subpath, op.ctm, op.line_width, page_number))

        logger.debug(f"Page {page_number}: {len(rectangles)} rectangles, "
                     f"{len(lines)} lines, {len(images)} images from path operations")
        return ExtractedGeometry(tuple(rectangles), tuple(lines), tuple(images))

    def classify_rectangle(self, subpath: SubPath, ctm: Matrix, line_width: float,
                           filled: bool, stroked: bool, page_number: int = 1) -> Rectangle:
        """
        Accept a subpath as an axis-aligned rectangle or raise.

        Raises:
            RectangleGeometryInvalid: If the subpath is not a usable rectangle
        """
        points = subpath.points
        if len(points) not in (4, 5):
            raise RectangleGeometryInvalid(f"{len(points)} points")
        if subpath.has_curves:
            raise RectangleGeometryInvalid("contains curve segments")
        if not subpath.closed:
            if len(points) != 5:
                raise RectangleGeometryInvalid("open subpath")
            if (abs(points[4].x - points[0].x) >= self.rect_tolerance or
                    abs(points[4].y - points[0].y) >= self.rect_tolerance):
                raise RectangleGeometryInvalid("open subpath does not return to its start")

        corners = [ctm.apply(p.x, p.y) for p in points[:4]]
        xs = [c[0] for c in corners]
        ys = [c[1] for c in corners]
        if count_unique(xs, self.rect_tolerance) != 2 or count_unique(ys, self.rect_tolerance) != 2:
            raise RectangleGeometryInvalid("corners are not axis-aligned")

        min_x, max_x = min(xs), max(xs)
        min_y, max_y = min(ys), max(ys)
        width = max_x - min_x
        height = max_y - min_y
        if width < self.min_rect_size or height < self.min_rect_size:
            raise RectangleGeometryInvalid(f"too small ({width:.1f}x{height:.1f})")

        return Rectangle(page_number, min_x, min_y, width, height,
                         stroke_width=line_width, filled=filled, stroked=stroked)

    def extract_lines(self, subpath: SubPath, ctm: Matrix, line_width: float,
                      page_number: int = 1) -> List[LineSegment]:
        points = subpath.points
        pairs = [(points[i], points[i + 1]) for i in range(len(points) - 1)]
        if subpath.closed and len(points) > 2:
            pairs.append((points[-1], points[0]))

        segments = []
        for start, end in pairs:
            if start.is_curve or end.is_curve:
                continue
            x1, y1 = ctm.apply(start.x, start.y)
            x2, y2 = ctm.apply(end.x, end.y)
            segment = LineSegment.between(page_number, x1, y1, x2, y2,
                                          stroke_width=line_width,
                                          axis_tolerance=self.axis_tolerance)
            if segment.length < self.min_line_length:
                continue
            segments.append(segment)
        return segments

    @staticmethod
    def place_image(op: ImageOperation, image_index: int, page_number: int = 1) -> Optional[EmbeddedImage]:
        """
        Position an image from the CTM that maps the unit square onto the page.

        Returns:
            EmbeddedImage, or None when the CTM collapses the image
        """
        ctm = op.ctm
        corners = [ctm.apply(u, v) for u, v in ((0, 0), (1, 0), (0, 1), (1, 1))]
        display_width = math.hypot(ctm.a, ctm.b)
        display_height = math.hypot(ctm.c, ctm.d)
        if display_width <= 0 or display_height <= 0:
            logger.warning(f"Skipping image {image_index}: degenerate placement matrix")
            return None

        return EmbeddedImage(
            pixels=op.pixels,
            page_number=page_number,
            image_index=image_index,
            pixel_width=op.pixel_width,
            pixel_height=op.pixel_height,
            x=min(c[0] for c in corners),
            y=min(c[1] for c in corners),
            display_width=display_width,
            display_height=display_height,
            rotation_angle=math.atan2(ctm.b, ctm.a),
        )
