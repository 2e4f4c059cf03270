"""
Tests for rasterizing page elements.
"""

import math
import tempfile
import unittest
import sys
from pathlib import Path
from unittest import mock

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from PIL import Image

from pdfcontent.generator.element_renderer import (
    ElementRenderer, RenderedImage, RenderedLine, RenderedRectangle, RenderedText, sort_by_position
)
from pdfcontent.ocr.engine import OCREngine, RecognizedWord
from pdfcontent.parser.elements import (
    Box, EmbeddedImage, LineSegment, PageElements, Rectangle, TextElement
)
from pdfcontent.rebuilder.coordinate_mapper import BoundsMode


class FixedWordRecognizer(OCREngine):
    """Returns the same words for every image."""

    def __init__(self, words):
        super().__init__({'preprocess': False})
        self.words = words
        self.calls = 0

    def recognize_words(self, image):
        self.calls += 1
        return list(self.words)


class TestRenderSize(unittest.TestCase):
    """Raster dimensions."""

    def test_content_box_at_300_dpi(self):
        box = Box(0, 0, 500, 700)
        elements = PageElements(page_box=box, interior_box=box)
        result = ElementRenderer().render(elements, BoundsMode.CROP_MARKS, 300)
        self.assertEqual((result.width, result.height), (2084, 2917))
        self.assertEqual(result.image.size, (2084, 2917))
        self.assertEqual(result.width, math.ceil(500 * 300 / 72))

    def test_largest_rectangle_bounds(self):
        elements = PageElements(page_box=Box(0, 0, 600, 800),
                                rectangles=(Rectangle(1, 50, 50, 200, 100),))
        result = ElementRenderer().render(elements, BoundsMode.LARGEST_RECTANGLE, 72)
        self.assertEqual((result.width, result.height), (200, 100))


class TestRenderElements(unittest.TestCase):
    """Per-element pixel geometry."""

    def setUp(self):
        self.renderer = ElementRenderer({'dpi': 72})
        self.bounds = Box(0, 0, 200, 100)

    def render(self, **collections):
        elements = PageElements(page_box=self.bounds, interior_box=self.bounds, **collections)
        return self.renderer.render(elements, BoundsMode.CROP_MARKS, 72)

    def test_text_placed_on_baseline(self):
        text = TextElement('Hello', Box(20, 60, 40, 12), font_name='Helvetica', font_size=12)
        result = self.render(text_elements=(text,))
        rendered = [e for e in result.elements if isinstance(e, RenderedText)]
        self.assertEqual(len(rendered), 1)
        self.assertAlmostEqual(rendered[0].x, 20)
        self.assertAlmostEqual(rendered[0].y, 100 - 60 - 12)
        self.assertEqual(rendered[0].text, 'Hello')

    def test_rectangle_flipped_to_top_left(self):
        result = self.render(rectangles=(Rectangle(1, 10, 20, 50, 30),))
        rect = result.elements[0]
        self.assertIsInstance(rect, RenderedRectangle)
        self.assertEqual((rect.x, rect.y, rect.width, rect.height), (10, 50, 50, 30))

    def test_line_endpoints(self):
        result = self.render(lines=(LineSegment.between(1, 10, 10, 110, 10),))
        line = result.elements[0]
        self.assertIsInstance(line, RenderedLine)
        self.assertEqual((line.x, line.y, line.x2, line.y2), (10, 90, 110, 90))
        self.assertEqual(result.image.getpixel((60, 90)), (0, 0, 0))

    def test_image_blitted_into_box(self):
        pixels = Image.new('RGB', (10, 10), (255, 0, 0))
        image = EmbeddedImage(pixels=pixels, x=0, y=0, display_width=100, display_height=50)
        result = self.render(images=(image,))
        self.assertIsInstance(result.elements[0], RenderedImage)
        self.assertEqual(result.image.getpixel((50, 75)), (255, 0, 0))
        self.assertEqual(result.image.getpixel((150, 25)), (255, 255, 255))

    def test_quarter_turn_image_fills_swapped_box(self):
        pixels = Image.new('RGB', (20, 10), (0, 0, 255))
        image = EmbeddedImage(pixels=pixels, x=100, y=0, display_width=100, display_height=50,
                              rotation_angle=math.pi / 2)
        result = self.render(images=(image,))
        placed = result.elements[0]
        self.assertEqual((placed.width, placed.height), (50, 100))
        self.assertEqual(result.image.getpixel((125, 50)), (0, 0, 255))

    def test_image_without_pixels_skipped(self):
        image = EmbeddedImage(pixels=None, x=0, y=0, display_width=10, display_height=10)
        self.assertEqual(self.render(images=(image,)).elements, ())

    def test_elements_outside_bounds_not_drawn(self):
        result = self.render(rectangles=(Rectangle(1, 300, 300, 20, 20),))
        self.assertEqual(result.elements, ())

    def test_paint_order(self):
        result = self.render(
            text_elements=(TextElement('t', Box(5, 5, 5, 5)),),
            lines=(LineSegment.between(1, 0, 50, 100, 50),),
            rectangles=(Rectangle(1, 10, 10, 20, 20),),
        )
        self.assertEqual([e.kind for e in result.elements], ['rectangle', 'line', 'text'])


class TestImageText(unittest.TestCase):
    """Words read out of images on pages without text."""

    def test_recognized_words_become_text(self):
        recognizer = FixedWordRecognizer([RecognizedWord('SALE', (5, 5, 20, 8), 90.0)])
        renderer = ElementRenderer({'dpi': 72}, recognizer=recognizer)
        pixels = Image.new('RGB', (40, 40), (200, 200, 200))
        image = EmbeddedImage(pixels=pixels, x=10, y=10, display_width=40, display_height=40)
        box = Box(0, 0, 100, 100)
        result = renderer.render(PageElements(page_box=box, interior_box=box, images=(image,)),
                                 BoundsMode.CROP_MARKS, 72)
        texts = [e for e in result.elements if isinstance(e, RenderedText)]
        self.assertEqual([t.text for t in texts], ['SALE'])
        self.assertAlmostEqual(texts[0].x, 15)
        self.assertAlmostEqual(texts[0].y, 55)

    def test_pages_with_text_skip_recognition(self):
        recognizer = FixedWordRecognizer([])
        renderer = ElementRenderer({'dpi': 72}, recognizer=recognizer)
        pixels = Image.new('RGB', (4, 4))
        image = EmbeddedImage(pixels=pixels, x=10, y=10, display_width=40, display_height=40)
        text = TextElement('caption', Box(10, 60, 40, 10))
        box = Box(0, 0, 100, 100)
        renderer.render(PageElements(page_box=box, interior_box=box, images=(image,),
                                     text_elements=(text,)), BoundsMode.CROP_MARKS, 72)
        self.assertEqual(recognizer.calls, 0)


class TestSortByPosition(unittest.TestCase):
    """Reading order of rendered elements."""

    def test_rows_then_columns(self):
        a = RenderedText(100, 10, 5, 5, text='a')
        b = RenderedText(10, 12, 5, 5, text='b')
        c = RenderedText(50, 40, 5, 5, text='c')
        d = RenderedText(5, 41, 5, 5, text='d')
        ordered = sort_by_position([c, a, d, b])
        self.assertEqual([e.text for e in ordered], ['b', 'a', 'd', 'c'])

    def test_sorting_is_stable_under_reapplication(self):
        elements = [RenderedText(x, y, 5, 5, text=f"{x},{y}")
                    for x, y in ((30, 3), (10, 0), (20, 4), (5, 30), (50, 33), (0, 60))]
        once = sort_by_position(elements)
        self.assertEqual(sort_by_position(once), once)


class TestSaveAndMark(unittest.TestCase):
    """Writing the raster and marking another picture."""

    def test_save_and_mark(self):
        box = Box(0, 0, 100, 100)
        elements = PageElements(page_box=box, interior_box=box,
                                rectangles=(Rectangle(1, 10, 10, 50, 50),))
        renderer = ElementRenderer({'dpi': 72})
        with tempfile.TemporaryDirectory() as tmp:
            result = renderer.save(renderer.render(elements, BoundsMode.CROP_MARKS, 72),
                                   'sample.pdf', tmp)
            self.assertTrue(result.output_path.endswith('sample_rendered.png'))
            self.assertTrue(Path(result.output_path).exists())

            target = Path(tmp) / 'scan.png'
            Image.new('RGB', (200, 200), 'white').save(target)
            marked = renderer.mark_elements(result, str(target))
            self.assertEqual(Path(marked).name, 'scan_marked.png')
            with Image.open(marked) as image:
                # rectangle spans x 10..60, y 40..90 in the 100px raster, doubled here
                self.assertEqual(image.getpixel((20, 120)), (255, 0, 0))

    def test_target_file_closed_after_marking(self):
        box = Box(0, 0, 100, 100)
        elements = PageElements(page_box=box, interior_box=box,
                                rectangles=(Rectangle(1, 10, 10, 50, 50),))
        renderer = ElementRenderer({'dpi': 72})
        result = renderer.render(elements, BoundsMode.CROP_MARKS, 72)
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / 'scan.png'
            Image.new('RGB', (200, 200), 'white').save(target)
            close_source = Image.Image.__exit__
            with mock.patch.object(Image.Image, '__exit__', autospec=True,
                                   side_effect=close_source) as closed:
                renderer.mark_elements(result, str(target))
            self.assertEqual(closed.call_count, 1)


if __name__ == '__main__':
    unittest.main()
