"""
Tests for the Tesseract wrapper. Tesseract itself is mocked out.
"""

import unittest
import sys
from pathlib import Path
from unittest import mock

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pytesseract

from pdfcontent.errors import ErrorKind, RecognizerUnavailable
from pdfcontent.ocr.engine import (
    LEVEL_LINE, PSM_AUTO, PSM_SINGLE_BLOCK, PSM_SINGLE_WORD, OCREngine, RecognizedWord, box_iou,
    rotate_image, unrotate_box
)
from pdfcontent.parser.elements import TextOrientation

IMAGE_TO_DATA = 'pdfcontent.ocr.engine.pytesseract.image_to_data'


def tesseract_data(rows):
    """Build an image_to_data dict from (text, conf, left, top, width, height, line) rows."""
    data = {key: [] for key in ('text', 'conf', 'left', 'top', 'width', 'height',
                                'block_num', 'par_num', 'line_num')}
    for text, conf, left, top, width, height, line in rows:
        data['text'].append(text)
        data['conf'].append(conf)
        data['left'].append(left)
        data['top'].append(top)
        data['width'].append(width)
        data['height'].append(height)
        data['block_num'].append(1)
        data['par_num'].append(1)
        data['line_num'].append(line)
    return data


def nonzero_box(array):
    ys, xs = np.nonzero(array)
    return (int(xs.min()), int(ys.min()), int(xs.max() - xs.min() + 1), int(ys.max() - ys.min() + 1))


class TestRecognizeWords(unittest.TestCase):
    """Word extraction from Tesseract output."""

    def setUp(self):
        self.engine = OCREngine({'preprocess': False})
        self.image = np.full((40, 120, 3), 255, dtype=np.uint8)

    def test_empty_and_negative_confidence_dropped(self):
        data = tesseract_data([
            ('', -1, 0, 0, 120, 40, 0),
            ('Hello', 91.5, 5, 5, 40, 12, 1),
            ('  ', 50, 50, 5, 5, 12, 1),
            ('world', '88', 60, 5, 45, 12, 1),
        ])
        with mock.patch(IMAGE_TO_DATA, return_value=data):
            words = self.engine.recognize_words(self.image)
        self.assertEqual([w.text for w in words], ['Hello', 'world'])
        self.assertEqual(words[0].box, (5, 5, 40, 12))
        self.assertEqual(words[1].confidence, 88.0)

    def test_minimum_confidence(self):
        engine = OCREngine({'preprocess': False, 'min_confidence': 60})
        data = tesseract_data([('low', 40, 0, 0, 10, 10, 1), ('high', 80, 20, 0, 10, 10, 1)])
        with mock.patch(IMAGE_TO_DATA, return_value=data):
            words = engine.recognize_words(self.image)
        self.assertEqual([w.text for w in words], ['high'])

    def test_missing_tesseract(self):
        with mock.patch(IMAGE_TO_DATA, side_effect=pytesseract.TesseractNotFoundError()):
            with self.assertRaises(RecognizerUnavailable) as ctx:
                self.engine.recognize_words(self.image)
        self.assertEqual(ctx.exception.kind, ErrorKind.RECOGNIZER_UNAVAILABLE)

    def test_preprocess_produces_binary_image(self):
        engine = OCREngine()
        binary = engine.preprocess(self.image)
        self.assertEqual(binary.shape, (40, 120))
        self.assertTrue(set(np.unique(binary)).issubset({0, 255}))


class TestPageSegmentation(unittest.TestCase):
    """Scoped segmentation mode."""

    def setUp(self):
        self.engine = OCREngine({'preprocess': False})
        self.image = np.full((20, 20), 255, dtype=np.uint8)

    def test_mode_applies_inside_scope(self):
        with mock.patch(IMAGE_TO_DATA, return_value=tesseract_data([])) as image_to_data:
            with self.engine.page_segmentation(PSM_SINGLE_BLOCK):
                self.engine.recognize_words(self.image)
            self.engine.recognize_words(self.image)
        first, second = image_to_data.call_args_list
        self.assertIn('--psm 6', first.kwargs['config'])
        self.assertIn(f'--psm {PSM_AUTO}', second.kwargs['config'])

    def test_mode_restored_after_error(self):
        with self.assertRaises(RuntimeError):
            with self.engine.page_segmentation(PSM_SINGLE_BLOCK):
                self.assertEqual(self.engine.page_seg_mode, PSM_SINGLE_BLOCK)
                raise RuntimeError("recognition failed")
        self.assertEqual(self.engine.page_seg_mode, PSM_AUTO)

    def test_tessdata_directory_passed(self):
        engine = OCREngine({'tessdata_path': '/opt/tessdata'})
        self.assertIn('--tessdata-dir "/opt/tessdata"', engine._tesseract_config())


class TestRecognizeLines(unittest.TestCase):
    """Grouping words into lines."""

    def test_words_grouped_by_line_number(self):
        engine = OCREngine({'preprocess': False})
        data = tesseract_data([
            ('Total', 90, 10, 10, 40, 12, 1),
            ('due', 80, 55, 12, 30, 12, 1),
            ('Paid', 70, 10, 40, 35, 12, 2),
        ])
        with mock.patch(IMAGE_TO_DATA, return_value=data):
            lines = engine.recognize_lines(np.zeros((60, 100), dtype=np.uint8))
        self.assertEqual([line.text for line in lines], ['Total due', 'Paid'])
        self.assertEqual(lines[0].box, (10, 10, 75, 14))
        self.assertAlmostEqual(lines[0].confidence, 85.0)
        self.assertEqual(lines[0].level, LEVEL_LINE)


class TestRotation(unittest.TestCase):
    """Boxes found in rotated images map back to the original."""

    def setUp(self):
        self.original = np.zeros((50, 100), dtype=np.uint8)
        self.original[5:13, 10:30] = 255

    def test_unrotate_matches_rotation(self):
        height, width = self.original.shape
        for degrees in (0, 90, 180, 270):
            rotated_box = nonzero_box(rotate_image(self.original, degrees))
            self.assertEqual(unrotate_box(rotated_box, degrees, width, height), (10, 5, 20, 8),
                             f"rotation {degrees}")

    def test_best_rotation_by_mean_confidence(self):
        engine = OCREngine({'preprocess': False})
        results = [
            [RecognizedWord('a', (0, 0, 1, 1), 40.0)],
            [RecognizedWord('b', (0, 0, 1, 1), 90.0), RecognizedWord('c', (0, 0, 1, 1), 80.0)],
            [],
            [RecognizedWord('d', (0, 0, 1, 1), 60.0)],
        ]
        with mock.patch.object(engine, 'recognize_words', side_effect=results):
            self.assertEqual(engine.find_best_rotation(self.original), 90)

    def test_box_iou(self):
        self.assertEqual(box_iou((0, 0, 10, 10), (0, 0, 10, 10)), 1.0)
        self.assertEqual(box_iou((0, 0, 10, 10), (20, 20, 5, 5)), 0.0)
        self.assertAlmostEqual(box_iou((0, 0, 10, 10), (5, 0, 10, 10)), 50 / 150)


class TestVerticalReread(unittest.TestCase):
    """Tall word regions re-read in single-word mode."""

    def setUp(self):
        self.engine = OCREngine({'preprocess': False})
        self.image = np.full((100, 100), 255, dtype=np.uint8)
        self.modes = []

    def scripted_reads(self, reread_confidence):
        def image_to_data(array):
            self.modes.append(self.engine.page_seg_mode)
            if self.engine.page_seg_mode == PSM_SINGLE_WORD:
                return tesseract_data([('VERTICAL', reread_confidence, 5, 5, 40, 10, 1)])
            return tesseract_data([('ab', 50, 10, 10, 10, 40, 1)])
        return image_to_data

    def test_tall_region_replaced_by_reread(self):
        with mock.patch.object(self.engine, '_image_to_data', side_effect=self.scripted_reads(90)):
            regions = self.engine.detect_text_regions(self.image)
        # four rotation passes, the working pass, then both quarter turns of the crop
        self.assertEqual(self.modes, [PSM_AUTO] * 5 + [PSM_SINGLE_WORD] * 2)
        self.assertEqual(len(regions), 1)
        self.assertEqual(regions[0].text, 'VERTICAL')
        self.assertIs(regions[0].orientation, TextOrientation.VERTICAL)
        self.assertEqual(regions[0].box, (10, 10, 10, 40))
        self.assertEqual(regions[0].confidence, 90.0)
        self.assertEqual(self.engine.page_seg_mode, PSM_AUTO)

    def test_weaker_reread_keeps_original(self):
        with mock.patch.object(self.engine, '_image_to_data', side_effect=self.scripted_reads(30)):
            regions = self.engine.detect_text_regions(self.image)
        self.assertEqual([r.text for r in regions], ['ab'])
        self.assertIs(regions[0].orientation, TextOrientation.HORIZONTAL)
        self.assertEqual(self.engine.page_seg_mode, PSM_AUTO)

    def test_wide_region_not_reread(self):
        data = tesseract_data([('wide', 80, 10, 10, 40, 10, 1)])
        with mock.patch.object(self.engine, '_image_to_data', return_value=data) as image_to_data:
            regions = self.engine.detect_text_regions(self.image)
        self.assertEqual(image_to_data.call_count, 5)
        self.assertEqual([r.text for r in regions], ['wide'])


class TestIdentifyTextRegions(unittest.TestCase):
    """Lines from every rotation, mapped back and deduplicated by overlap."""

    def setUp(self):
        self.engine = OCREngine({'preprocess': False})
        self.original = np.zeros((50, 100), dtype=np.uint8)
        self.lines = [
            [RecognizedWord('Total', (10, 5, 20, 8), 80.0, LEVEL_LINE),
             RecognizedWord('noise', (50, 30, 10, 5), 5.0, LEVEL_LINE)],
            # same line read sideways, lands on the Total box
            [RecognizedWord('T0tal', (37, 10, 8, 20), 60.0, LEVEL_LINE)],
            [],
            [RecognizedWord('Side', (20, 10, 10, 30), 70.0, LEVEL_LINE)],
        ]

    def test_overlapping_lines_deduplicated(self):
        with mock.patch.object(self.engine, 'recognize_lines', side_effect=self.lines):
            regions = self.engine.identify_text_regions(self.original)
        self.assertEqual([r.text for r in regions], ['Total', 'Side'])
        self.assertEqual(regions[0].box, (10, 5, 20, 8))
        self.assertIs(regions[0].orientation, TextOrientation.HORIZONTAL)
        self.assertEqual(regions[1].box, (60, 20, 30, 10))
        self.assertIs(regions[1].orientation, TextOrientation.VERTICAL)

    def test_analyze_image_by_lines(self):
        with mock.patch.object(self.engine, 'recognize_lines', side_effect=self.lines):
            result = self.engine.analyze_image(self.original, lines=True)
        self.assertEqual(result.full_text, 'Total Side')
        self.assertEqual(len(result.regions), 2)
        self.assertGreaterEqual(result.processing_time_ms, 0.0)


if __name__ == '__main__':
    unittest.main()
