"""
Tests for graphic region scoring and masking.
"""

import unittest
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
from PIL import Image

from pdfcontent.ocr.graphic_mask import (
    GraphicFeatures, GraphicMasker, count_hue_bins, is_likely_graphic, mask_non_text_regions,
    merge_overlapping, score_graphic
)


def page_with_logo():
    """White 600x600 page, a four-color 100x100 block and a black text bar."""
    page = np.full((600, 600, 3), 255, dtype=np.uint8)
    page[100:150, 100:150] = (255, 0, 0)
    page[100:150, 150:200] = (0, 255, 0)
    page[150:200, 100:150] = (0, 0, 255)
    page[150:200, 150:200] = (255, 255, 0)
    page[400:420, 50:350] = (0, 0, 0)
    return page


class TestScoring(unittest.TestCase):
    """Feature votes."""

    def test_colorful_square_is_graphic(self):
        features = GraphicFeatures(aspect_ratio=1.0, solidity=0.9, edge_density=0.05,
                                   color_bins=4, fill_ratio=0.9)
        self.assertEqual(score_graphic(features), 5)
        self.assertTrue(is_likely_graphic(features))

    def test_wide_monochrome_block_is_text(self):
        features = GraphicFeatures(aspect_ratio=8.0, solidity=0.95, edge_density=0.3,
                                   color_bins=1, fill_ratio=0.4)
        self.assertEqual(score_graphic(features), 1)
        self.assertFalse(is_likely_graphic(features))

    def test_all_votes(self):
        features = GraphicFeatures(aspect_ratio=1.2, solidity=0.5, edge_density=0.2,
                                   color_bins=3, fill_ratio=0.5)
        self.assertEqual(score_graphic(features), 10)

    def test_fill_ratio_needs_square_shape(self):
        square = GraphicFeatures(1.0, 0.9, 0.0, 0, 0.5)
        tall = GraphicFeatures(0.2, 0.9, 0.0, 0, 0.5)
        self.assertEqual(score_graphic(square), 4)
        self.assertEqual(score_graphic(tall), 0)


class TestHueBins(unittest.TestCase):
    """Color variety."""

    def test_counts_distinct_hues(self):
        region = page_with_logo()[100:200, 100:200]
        self.assertEqual(count_hue_bins(region), 4)

    def test_gray_region_has_one_bin(self):
        self.assertEqual(count_hue_bins(np.full((20, 20, 3), 128, dtype=np.uint8)), 1)

    def test_single_channel_has_none(self):
        self.assertEqual(count_hue_bins(np.zeros((20, 20), dtype=np.uint8)), 0)


class TestMergeOverlapping(unittest.TestCase):
    """Union of intersecting boxes."""

    def test_pairs_merge_and_strays_stay(self):
        merged = merge_overlapping([(0, 0, 10, 10), (5, 5, 10, 10), (30, 30, 5, 5)])
        self.assertEqual(merged, [(0, 0, 15, 15), (30, 30, 5, 5)])

    def test_growth_picks_up_earlier_boxes(self):
        merged = merge_overlapping([(0, 0, 10, 10), (20, 0, 10, 10), (8, 0, 14, 5)])
        self.assertEqual(merged, [(0, 0, 30, 10)])

    def test_touching_boxes_kept_apart(self):
        self.assertEqual(len(merge_overlapping([(0, 0, 10, 10), (10, 0, 10, 10)])), 2)


class TestGraphicMasker(unittest.TestCase):
    """Masking a synthetic page."""

    def test_logo_whited_out_text_kept(self):
        page = page_with_logo()
        masked = GraphicMasker().mask(page)
        self.assertEqual(tuple(masked[125, 125]), (255, 255, 255))
        self.assertEqual(tuple(masked[175, 175]), (255, 255, 255))
        self.assertEqual(tuple(masked[410, 200]), (0, 0, 0))
        # the input is left untouched
        self.assertEqual(tuple(page[125, 125]), (255, 0, 0))

    def test_large_regions_not_masked(self):
        page = np.full((300, 300, 3), 255, dtype=np.uint8)
        page[20:280, 20:150] = (255, 0, 0)
        page[20:280, 150:280] = (0, 0, 255)
        masked = GraphicMasker().mask(page)
        self.assertTrue(np.array_equal(masked, page))

    def test_accepts_pil_images(self):
        image = Image.fromarray(page_with_logo())
        masked = mask_non_text_regions(image)
        self.assertEqual(masked.shape, (600, 600, 3))
        self.assertEqual(tuple(masked[125, 125]), (255, 255, 255))


if __name__ == '__main__':
    unittest.main()
