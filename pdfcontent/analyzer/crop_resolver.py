"""
Crop Boundary Resolver - Removes bleed marks and recovers the trim box from
printer crop marks.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set

from ..errors import CropBoxTooSmall, CropMarksAmbiguous, CropMarksNotFound
from ..parser.elements import Box, LineSegment, PageElements, Rectangle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CropMark:
    """Two near-perpendicular short lines and where their extensions meet."""
    line1_index: int
    line2_index: int
    crop_x: float
    crop_y: float


def axis_angle(line: LineSegment) -> float:
    """Line direction in degrees folded into [0, 180)."""
    angle = math.degrees(math.atan2(line.y2 - line.y1, line.x2 - line.x1))
    return math.fmod(abs(angle), 180.0)


def line_intersection(a: LineSegment, b: LineSegment, epsilon: float = 1e-10) -> Optional[tuple]:
    """Intersection of the two infinite lines, or None when near-parallel."""
    x1, y1, x2, y2 = a.x1, a.y1, a.x2, a.y2
    x3, y3, x4, y4 = b.x1, b.y1, b.x2, b.y2
    denom = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
    if abs(denom) < epsilon:
        return None
    cross_a = x1 * y2 - y1 * x2
    cross_b = x3 * y4 - y3 * x4
    px = (cross_a * (x3 - x4) - (x1 - x2) * cross_b) / denom
    py = (cross_a * (y3 - y4) - (y1 - y2) * cross_b) / denom
    return (px, py)


class CropBoundaryResolver:
    """
    Pattern matching over line segments to clean printer artifacts.

    Bleed marks are rows of small boxes (often joined by lines) placed along
    the trim; crop marks are L-shaped pairs of short strokes at each corner.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the resolver.

        Args:
            config: Crop resolver configuration section
        """
        config = config or {}
        self.bleed_y_tolerance = config.get('bleed_y_tolerance', 2.0)
        self.bleed_edge_margin = config.get('bleed_edge_margin', 50.0)
        self.connection_tolerance = config.get('connection_tolerance', 2.0)
        self.corner_margin = config.get('corner_margin', 100.0)
        self.perpendicular_tolerance = config.get('perpendicular_tolerance_deg', 5.0)
        self.max_mark_extent = config.get('max_mark_extent', 50.0)
        self.parallel_epsilon = config.get('parallel_epsilon', 1e-10)
        self.min_crop_size = config.get('min_crop_size', 100.0)

    def resolve(self, elements: PageElements) -> PageElements:
        """
        Strip bleed marks, then find the crop box from crop marks.

        Returns:
            PageElements with page and interior boxes set to the crop box

        Raises:
            CropDetectionFailed: Crop marks missing, ambiguous or too close
        """
        stripped = self.strip_bleed_marks(elements)
        lines = list(stripped.lines)

        candidates = self.find_crop_marks(lines)
        if len(candidates) < 4:
            raise CropMarksNotFound(f"Could not find 4 crop marks. Found: {len(candidates)}")
        marks = self.select_corner_marks(candidates)

        crop_box = self.crop_box(marks)
        used: Set[int] = set()
        for mark in marks:
            used.update((mark.line1_index, mark.line2_index))
        remaining = tuple(line for i, line in enumerate(lines) if i not in used)

        logger.info(f"Crop box from marks: ({crop_box.x:.1f}, {crop_box.y:.1f}) "
                    f"{crop_box.width:.1f}x{crop_box.height:.1f}pt, removed {len(used)} mark lines")
        return stripped.evolve(lines=remaining, page_box=crop_box, interior_box=crop_box)

    def bleed_groups(self, rectangles: Sequence[Rectangle], page_box: Box) -> List[List[int]]:
        """Indices of rectangle rows that look like bleed marks."""
        processed = [False] * len(rectangles)
        groups = []
        for i, first in enumerate(rectangles):
            if processed[i]:
                continue
            processed[i] = True
            group = [i]
            for j in range(i + 1, len(rectangles)):
                if not processed[j] and abs(first.y - rectangles[j].y) < self.bleed_y_tolerance:
                    group.append(j)
                    processed[j] = True
            if len(group) < 2:
                continue
            group_y = first.y
            near_edge = (group_y < page_box.y + self.bleed_edge_margin or
                         group_y > page_box.top - self.bleed_edge_margin)
            if near_edge:
                logger.debug(f"Keeping rectangle row at y={group_y:.1f}: too close to page edge")
                continue
            groups.append(group)
        return groups

    def _near_corner(self, line: LineSegment, page_box: Box) -> bool:
        m = self.corner_margin
        left = line.min_x < page_box.x + m
        right = line.max_x > page_box.right - m
        low = line.min_y < page_box.y + m
        high = line.max_y > page_box.top - m
        return (left and low) or (right and low) or (left and high) or (right and high)

    def strip_bleed_marks(self, elements: PageElements) -> PageElements:
        """Remove bleed-mark rectangle rows and the lines joining them."""
        rectangles = elements.rectangles
        lines = elements.lines
        page_box = elements.page_box
        tol = self.connection_tolerance

        drop_rects: Set[int] = set()
        drop_lines: Set[int] = set()
        for group in self.bleed_groups(rectangles, page_box):
            drop_rects.update(group)
            bounds = rectangles[group[0]].box
            for index in group[1:]:
                bounds = bounds.union(rectangles[index].box)

            for k, line in enumerate(lines):
                if self._near_corner(line, page_box):
                    continue
                in_y = not (line.max_y < bounds.y - tol or line.min_y > bounds.top + tol)
                in_x = not (line.max_x < bounds.x - tol or line.min_x > bounds.right + tol)
                if in_y and in_x:
                    drop_lines.add(k)

        if drop_rects:
            logger.info(f"Removed {len(drop_rects)} bleed-mark rectangles and {len(drop_lines)} lines")
        return elements.evolve(
            rectangles=tuple(r for i, r in enumerate(rectangles) if i not in drop_rects),
            lines=tuple(line for i, line in enumerate(lines) if i not in drop_lines),
        )

    def find_crop_marks(self, lines: Sequence[LineSegment]) -> List[CropMark]:
        """Every short perpendicular pair, with its extended intersection."""
        marks = []
        for i, first in enumerate(lines):
            angle1 = axis_angle(first)
            for j in range(i + 1, len(lines)):
                second = lines[j]
                diff = abs(angle1 - axis_angle(second))
                if diff > 90.0:
                    diff = 180.0 - diff
                if abs(diff - 90.0) >= self.perpendicular_tolerance:
                    continue

                extent = first.box.union(second.box)
                if max(extent.width, extent.height) > self.max_mark_extent:
                    continue

                point = line_intersection(first, second, self.parallel_epsilon)
                if point is None:
                    continue
                marks.append(CropMark(i, j, point[0], point[1]))

        logger.debug(f"Found {len(marks)} crop mark candidates")
        return marks

    def select_corner_marks(self, marks: Sequence[CropMark]) -> List[CropMark]:
        """
        Keep one mark per quadrant when there are more than four.

        Raises:
            CropMarksAmbiguous: Quadrants do not yield exactly four marks
        """
        if len(marks) == 4:
            return list(marks)

        mid_x = (min(m.crop_x for m in marks) + max(m.crop_x for m in marks)) / 2.0
        mid_y = (min(m.crop_y for m in marks) + max(m.crop_y for m in marks)) / 2.0

        # larger score wins within a quadrant
        best: Dict[str, CropMark] = {}
        scores = {
            'bottom_left': lambda m: -(m.crop_x + m.crop_y),
            'bottom_right': lambda m: m.crop_x - m.crop_y,
            'top_left': lambda m: m.crop_y - m.crop_x,
            'top_right': lambda m: m.crop_x + m.crop_y,
        }
        for mark in marks:
            left = mark.crop_x < mid_x
            low = mark.crop_y < mid_y
            quadrant = ('bottom_' if low else 'top_') + ('left' if left else 'right')
            current = best.get(quadrant)
            if current is None or scores[quadrant](mark) > scores[quadrant](current):
                best[quadrant] = mark

        selected = [best[q] for q in ('bottom_left', 'bottom_right', 'top_left', 'top_right') if q in best]
        if len(selected) != 4:
            raise CropMarksAmbiguous("Could not identify exactly 4 crop marks")
        return selected

    def crop_box(self, marks: Sequence[CropMark]) -> Box:
        """
        Raises:
            CropBoxTooSmall: Either side is under the minimum
        """
        box = Box.from_extents(
            min(m.crop_x for m in marks), min(m.crop_y for m in marks),
            max(m.crop_x for m in marks), max(m.crop_y for m in marks),
        )
        if box.width < self.min_crop_size or box.height < self.min_crop_size:
            raise CropBoxTooSmall(
                f"Detected crop box is too small ({box.width:.1f} x {box.height:.1f} points). "
                f"Crop marks may not be correctly detected.")
        return box
