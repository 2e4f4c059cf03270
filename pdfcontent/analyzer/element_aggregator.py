"""
Element Aggregator - Combines text, images, rectangles and lines of a page
into one PageElements record.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..parser.elements import Box, LineSegment, PageElements, Rectangle, TextLevel
from ..parser.path_geometry import PathGeometryExtractor
from ..parser.pdf_parser import RawPage
from ..parser.text_extractor import TextExtractor

logger = logging.getLogger(__name__)


def split_axis_lines(lines: Sequence[LineSegment]) -> Tuple[List[LineSegment], List[LineSegment]]:
    horizontal = [line for line in lines if line.is_horizontal]
    vertical = [line for line in lines if line.is_vertical]
    return horizontal, vertical


def interior_box(lines: Sequence[LineSegment]) -> Optional[Box]:
    """
    Content box bounded by the axis-aligned lines.

    Uses the sorted horizontal-line Y midpoints and vertical-line X midpoints;
    the first and last of each span the box.
    """
    horizontal, vertical = split_axis_lines(lines)
    if not horizontal or not vertical:
        return None
    ys = sorted(line.mid_y for line in horizontal)
    xs = sorted(line.mid_x for line in vertical)
    box = Box.from_extents(xs[0], ys[0], xs[-1], ys[-1])
    return None if box.is_degenerate() else box


class ElementAggregator:
    """
    Builds a PageElements record from one walked page.

    Besides collecting elements it reconstructs rectangles drawn as four
    separate lines, drops lines that merely trace a rectangle's edge and
    estimates the interior content box from corner strokes.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 parser_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the aggregator.

        Args:
            config: Aggregator configuration section
            parser_config: Parser configuration section, for geometry and text
        """
        config = config or {}
        self.geometry = PathGeometryExtractor(parser_config)
        self.text_extractor = TextExtractor(parser_config)
        self.min_side_gap = config.get('four_line_min_gap', 10.0)
        self.span_tolerance = config.get('four_line_span_tolerance', 10.0)
        self.duplicate_tolerance = config.get('duplicate_rect_tolerance', 5.0)
        self.edge_tolerance = config.get('edge_line_tolerance', 2.0)
        self.small_rect_size = config.get('small_rect_exemption', 30.0)
        self.corner_min_length = config.get('corner_stroke_min_length', 10.0)
        self.corner_max_length = config.get('corner_stroke_max_length', 30.0)
        self.corner_touch_tolerance = config.get('corner_touch_tolerance', 5.0)
        self.corner_cluster_tolerance = config.get('corner_cluster_tolerance', 5.0)
        self.corner_vote_tolerance = config.get('corner_vote_tolerance', 10.0)

    def aggregate(self, raw: RawPage, level: TextLevel = TextLevel.WORD) -> PageElements:
        """
        Aggregate one walked page.

        Args:
            raw: Walker output for the page
            level: Word or line text granularity

        Returns:
            PageElements for the page
        """
        geometry = self.geometry.extract(raw.operations, raw.page_number)
        texts, full_text = self.text_extractor.extract(raw.words, raw.page_box.height, level)

        rectangles = list(geometry.rectangles)
        rectangles.extend(self.rectangles_from_lines(geometry.lines, rectangles))
        lines = self.filter_edge_lines(geometry.lines, rectangles)
        box = self.corner_box(geometry.lines) or interior_box(geometry.lines)

        elements = PageElements(
            full_text=full_text,
            text_elements=tuple(texts),
            images=geometry.images,
            rectangles=tuple(rectangles),
            lines=tuple(lines),
            page_count=raw.page_count,
            page_box=raw.page_box,
            interior_box=box,
        )
        logger.info(f"Page {raw.page_number}: {elements.text_count} text, {elements.image_count} images, "
                    f"{elements.rectangle_count} rectangles, {elements.line_count} lines")
        return elements

    def _is_duplicate(self, candidate: Rectangle, existing: Sequence[Rectangle]) -> bool:
        tol = self.duplicate_tolerance
        return any(
            r.page_number == candidate.page_number and
            abs(r.x - candidate.x) < tol and abs(r.y - candidate.y) < tol and
            abs(r.width - candidate.width) < tol and abs(r.height - candidate.height) < tol
            for r in existing
        )

    def rectangles_from_lines(self, lines: Sequence[LineSegment],
                              existing: Sequence[Rectangle] = ()) -> List[Rectangle]:
        """
        Synthesize rectangles drawn as two horizontal plus two vertical lines.

        Args:
            lines: All lines of the page
            existing: Rectangles already known, used for deduplication

        Returns:
            Newly found rectangles only
        """
        horizontal, vertical = split_axis_lines(lines)
        known = list(existing)
        found: List[Rectangle] = []

        def add(rect: Rectangle):
            if not self._is_duplicate(rect, known):
                known.append(rect)
                found.append(rect)

        if len(horizontal) == 2 and len(vertical) == 2:
            xs = sorted(line.mid_x for line in vertical)
            ys = sorted(line.mid_y for line in horizontal)
            add(Rectangle(horizontal[0].page_number, xs[0], ys[0],
                          xs[1] - xs[0], ys[1] - ys[0], 1.0, filled=False, stroked=True))

        tol = self.span_tolerance
        for i, h1 in enumerate(horizontal):
            for h2 in horizontal[i + 1:]:
                if abs(h1.mid_y - h2.mid_y) < self.min_side_gap:
                    continue
                min_y, max_y = sorted((h1.mid_y, h2.mid_y))
                for j, v1 in enumerate(vertical):
                    for v2 in vertical[j + 1:]:
                        if abs(v1.mid_x - v2.mid_x) < self.min_side_gap:
                            continue
                        min_x, max_x = sorted((v1.mid_x, v2.mid_x))
                        spans = (
                            all(h.min_x <= min_x + tol and h.max_x >= max_x - tol for h in (h1, h2)) and
                            all(v.min_y <= min_y + tol and v.max_y >= max_y - tol for v in (v1, v2))
                        )
                        if spans:
                            add(Rectangle(h1.page_number, min_x, min_y, max_x - min_x,
                                          max_y - min_y, 1.0, filled=False, stroked=True))

        if found:
            logger.debug(f"Reconstructed {len(found)} rectangles from lines")
        return found

    def filter_edge_lines(self, lines: Sequence[LineSegment],
                          rectangles: Sequence[Rectangle]) -> List[LineSegment]:
        """Drop lines that trace the edge of a (not tiny) rectangle."""
        tol = self.edge_tolerance
        kept = []
        for line in lines:
            on_edge = False
            for rect in rectangles:
                if rect.page_number != line.page_number:
                    continue
                if rect.width <= self.small_rect_size and rect.height <= self.small_rect_size:
                    continue
                left, right = rect.x, rect.x + rect.width
                bottom, top = rect.y, rect.y + rect.height
                if line.is_horizontal:
                    if ((abs(line.mid_y - bottom) < tol or abs(line.mid_y - top) < tol) and
                            line.min_x >= left - tol and line.max_x <= right + tol):
                        on_edge = True
                        break
                if line.is_vertical:
                    if ((abs(line.mid_x - left) < tol or abs(line.mid_x - right) < tol) and
                            line.min_y >= bottom - tol and line.max_y <= top + tol):
                        on_edge = True
                        break
            if not on_edge:
                kept.append(line)

        if len(kept) != len(lines):
            logger.debug(f"Removed {len(lines) - len(kept)} lines lying on rectangle edges")
        return kept

    def corner_box(self, lines: Sequence[LineSegment]) -> Optional[Box]:
        """
        Estimate the content box from short strokes meeting at corners.

        Returns:
            Box spanned by the two most common corner X and Y values, or None
        """
        short = [line for line in lines
                 if self.corner_min_length <= line.length <= self.corner_max_length]
        horizontal, vertical = split_axis_lines(short)

        touch = self.corner_touch_tolerance
        corners = []
        for h in horizontal:
            for v in vertical:
                if (h.min_x - touch <= v.mid_x <= h.max_x + touch and
                        v.min_y - touch <= h.mid_y <= v.max_y + touch):
                    corners.append((v.mid_x, h.mid_y))
        if len(corners) < 4:
            return None

        clusters: List[List[float]] = []
        for cx, cy in corners:
            for cluster in clusters:
                if ((cx - cluster[0]) ** 2 + (cy - cluster[1]) ** 2) ** 0.5 < self.corner_cluster_tolerance:
                    cluster[0] = (cluster[0] + cx) / 2.0
                    cluster[1] = (cluster[1] + cy) / 2.0
                    break
            else:
                clusters.append([cx, cy])

        xs = self._vote([c[0] for c in clusters])
        ys = self._vote([c[1] for c in clusters])
        if len(xs) < 2 or len(ys) < 2:
            return None
        left, right = sorted(xs[:2])
        bottom, top = sorted(ys[:2])
        box = Box.from_extents(left, bottom, right, top)
        if box.is_degenerate():
            return None
        logger.debug(f"Corner strokes bound content at ({left:.1f}, {bottom:.1f})-({right:.1f}, {top:.1f})")
        return box

    def _vote(self, values: List[float]) -> List[float]:
        """Values ordered by how many others fall within the vote tolerance."""
        counts: List[List[float]] = []
        for value in values:
            for entry in counts:
                if abs(value - entry[0]) < self.corner_vote_tolerance:
                    entry[1] += 1
                    break
            else:
                counts.append([value, 1])
        counts.sort(key=lambda entry: (-entry[1], entry[0]))
        return [entry[0] for entry in counts]
