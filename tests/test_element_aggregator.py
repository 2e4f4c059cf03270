"""
Tests for page aggregation: rectangles rebuilt from lines, edge-line
filtering and interior box estimation.
"""

import unittest
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pdfcontent.analyzer.element_aggregator import ElementAggregator, interior_box
from pdfcontent.parser.drawing_ops import PaintKind, PathOperation, PathPoint, SubPath
from pdfcontent.parser.elements import Box, LineSegment, Rectangle
from pdfcontent.parser.pdf_parser import RawPage
from pdfcontent.parser.text_extractor import WalkedWord


def segment(x1, y1, x2, y2):
    return LineSegment.between(1, x1, y1, x2, y2)


def stroke(*points):
    return PathOperation(PaintKind.STROKE, (SubPath(tuple(PathPoint(x, y) for x, y in points)),))


class TestRectanglesFromLines(unittest.TestCase):
    """Rectangles drawn as four separate lines."""

    def setUp(self):
        self.aggregator = ElementAggregator()

    def test_four_lines_make_one_rectangle(self):
        raw = RawPage(
            page_number=1, page_count=1, page_box=Box(0, 0, 600, 800),
            operations=(
                stroke((50, 50), (250, 50)),
                stroke((50, 150), (250, 150)),
                stroke((50, 50), (50, 150)),
                stroke((250, 50), (250, 150)),
            ),
        )
        elements = self.aggregator.aggregate(raw)
        self.assertEqual(len(elements.rectangles), 1)
        rect = elements.rectangles[0]
        self.assertEqual((rect.x, rect.y, rect.width, rect.height), (50, 50, 200, 100))
        self.assertTrue(rect.stroked)
        self.assertFalse(rect.filled)
        # the four traced sides are not kept as lines
        self.assertEqual(elements.lines, ())

    def test_grid_yields_each_cell_once(self):
        lines = [segment(0, y, 200, y) for y in (0, 100, 200)]
        lines += [segment(x, 0, x, 200) for x in (0, 100, 200)]
        rects = self.aggregator.rectangles_from_lines(lines)
        boxes = {(r.x, r.y, r.width, r.height) for r in rects}
        self.assertEqual(len(rects), len(boxes))
        self.assertIn((0, 0, 100, 100), boxes)
        self.assertIn((0, 0, 200, 200), boxes)

    def test_existing_rectangle_not_duplicated(self):
        lines = [segment(50, 50, 250, 50), segment(50, 150, 250, 150),
                 segment(50, 50, 50, 150), segment(250, 50, 250, 150)]
        existing = [Rectangle(1, 51, 49, 199, 101)]
        self.assertEqual(self.aggregator.rectangles_from_lines(lines, existing), [])


class TestEdgeLineFilter(unittest.TestCase):
    """Lines lying on rectangle edges."""

    def setUp(self):
        self.aggregator = ElementAggregator()

    def test_edge_line_removed_interior_line_kept(self):
        rect = Rectangle(1, 0, 0, 100, 100)
        edge = segment(10, 100, 90, 100)
        inside = segment(10, 50, 90, 50)
        kept = self.aggregator.filter_edge_lines([edge, inside], [rect])
        self.assertEqual(kept, [inside])

    def test_small_rectangle_does_not_absorb_lines(self):
        rect = Rectangle(1, 0, 0, 20, 20)
        edge = segment(0, 20, 20, 20)
        self.assertEqual(self.aggregator.filter_edge_lines([edge], [rect]), [edge])


class TestInteriorBox(unittest.TestCase):
    """Interior box estimates."""

    def setUp(self):
        self.aggregator = ElementAggregator()

    def test_midpoint_box(self):
        lines = [segment(0, 10, 300, 10), segment(0, 500, 300, 500),
                 segment(20, 0, 20, 600), segment(280, 0, 280, 600)]
        box = interior_box(lines)
        self.assertEqual((box.x, box.y, box.right, box.top), (20, 10, 280, 500))

    def test_no_vertical_lines(self):
        self.assertIsNone(interior_box([segment(0, 10, 300, 10)]))

    def test_corner_strokes(self):
        lines = []
        for cx, cy, sx, sy in ((40, 40, -1, -1), (540, 40, 1, -1), (40, 740, -1, 1), (540, 740, 1, 1)):
            lines.append(segment(cx, cy, cx + 20 * sx, cy))
            lines.append(segment(cx, cy, cx, cy + 20 * sy))
        box = self.aggregator.corner_box(lines)
        self.assertEqual((box.x, box.y, box.right, box.top), (40, 40, 540, 740))

    def test_too_few_corners(self):
        lines = [segment(40, 40, 20, 40), segment(40, 40, 40, 20)]
        self.assertIsNone(self.aggregator.corner_box(lines))

    def test_aggregate_carries_text(self):
        raw = RawPage(1, 1, Box(0, 0, 600, 800),
                      words=(WalkedWord('Title', 100, 100, 40, 14, has_space_after=True),))
        elements = self.aggregator.aggregate(raw)
        self.assertEqual(elements.text_count, 1)
        self.assertEqual(elements.full_text, 'Title ')
        self.assertIsNone(elements.interior_box)


if __name__ == '__main__':
    unittest.main()
