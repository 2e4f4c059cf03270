"""
Element Renderer - Paints page elements into a raster image and reports the
pixel geometry of everything drawn.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw

from ..errors import RasterizerUnavailable
from ..mapper.font_mapper import FontMapper
from ..parser.elements import (
    Box, EmbeddedImage, LineSegment, PageElements, Rectangle, TextElement, TextOrientation
)
from ..rebuilder.coordinate_mapper import (
    BoundsMode, CoordinateMapper, to_pixels, to_raster_y
)

logger = logging.getLogger(__name__)

TEXT_COLOR = (0, 0, 0)
LINE_COLOR = (0, 0, 0)
RECT_COLOR = (128, 128, 128)

MARK_COLORS = {
    'text': (0, 0, 255),
    'image': (0, 200, 0),
    'rectangle': (255, 0, 0),
    'line': (255, 140, 0),
}


@dataclass(frozen=True)
class RenderedElement:
    """Pixel box of a drawn element, top-left origin."""
    x: float
    y: float
    width: float
    height: float

    kind = 'element'


@dataclass(frozen=True)
class RenderedText(RenderedElement):
    text: str = ''
    font_name: str = ''
    font_size: float = 0.0
    is_bold: bool = False
    is_italic: bool = False
    orientation: TextOrientation = TextOrientation.HORIZONTAL

    kind = 'text'


@dataclass(frozen=True)
class RenderedImage(RenderedElement):
    image_index: int = 0
    rotation_angle: float = 0.0

    kind = 'image'


@dataclass(frozen=True)
class RenderedRectangle(RenderedElement):
    filled: bool = False
    stroked: bool = True
    stroke_width: float = 1.0

    kind = 'rectangle'


@dataclass(frozen=True)
class RenderedLine(RenderedElement):
    x2: float = 0.0
    y2: float = 0.0
    stroke_width: float = 1.0

    kind = 'line'


@dataclass(frozen=True)
class RenderResult:
    image: Any
    width: int
    height: int
    bounds: Box
    dpi: float
    elements: Tuple[RenderedElement, ...] = ()
    output_path: Optional[str] = None


def sort_by_position(elements: Sequence[RenderedElement], tolerance: float = 5.0) -> List[RenderedElement]:
    """
    Reading order: top to bottom, left to right within a line.

    Elements whose y lies within ``tolerance`` pixels of the first element of
    a line belong to that line.
    """
    by_y = sorted(elements, key=lambda e: e.y)
    ordered: List[RenderedElement] = []
    line: List[RenderedElement] = []
    for element in by_y:
        if line and element.y - line[0].y > tolerance:
            ordered.extend(sorted(line, key=lambda e: e.x))
            line = []
        line.append(element)
    ordered.extend(sorted(line, key=lambda e: e.x))
    return ordered


class ElementRenderer:
    """
    Renders a PageElements record to a white raster with Pillow.

    Paint order is rectangles, lines, images, then text.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 font_mapper: Optional[FontMapper] = None, recognizer=None):
        """
        Initialize Element Renderer.

        Args:
            config: Renderer configuration section
            font_mapper: FontMapper for text faces
            recognizer: Optional word recognizer used to read text out of
                embedded images on pages without text
        """
        config = config or {}
        self.dpi = config.get('dpi', 300)
        self.text_scale = config.get('text_scale', 0.75)
        self.default_font_size = config.get('default_font_size', 10.0)
        self.draw_rectangles = config.get('draw_rectangles', True)
        self.output_suffix = config.get('output_suffix', '_rendered')
        self.font_mapper = font_mapper or FontMapper(config.get('fonts', {}))
        self.recognizer = recognizer
        self.mapper = CoordinateMapper(config)

    def render(self, elements: PageElements, bounds_mode: BoundsMode = BoundsMode.CROP_MARKS,
               dpi: Optional[float] = None) -> RenderResult:
        """
        Render elements inside the bounds chosen by ``bounds_mode``.

        Args:
            elements: Page elements
            bounds_mode: Bounds strategy
            dpi: Resolution, defaults to the configured one

        Returns:
            RenderResult with the image and per-element pixel geometry

        Raises:
            InvalidBounds: No usable content box
            RasterizerUnavailable: The raster surface could not be created
        """
        dpi = dpi or self.dpi
        bounds = self.mapper.resolve_bounds(elements, bounds_mode)
        width = int(math.ceil(to_pixels(bounds.width, dpi)))
        height = int(math.ceil(to_pixels(bounds.height, dpi)))
        logger.info(f"Rendering {bounds.width:.1f}x{bounds.height:.1f}pt at {dpi} DPI -> {width}x{height}px")

        try:
            surface = Image.new('RGB', (width, height), 'white')
        except (ValueError, MemoryError) as e:
            raise RasterizerUnavailable(f"Could not create {width}x{height} raster: {e}") from e
        draw = ImageDraw.Draw(surface)
        rendered: List[RenderedElement] = []

        visible = self.mapper.visible
        if self.draw_rectangles:
            for rect in visible(elements.rectangles, bounds):
                rendered.append(self._draw_rectangle(draw, rect, bounds, dpi))
        for line in visible(elements.lines, bounds):
            rendered.append(self._draw_line(draw, line, bounds, dpi))
        images = visible(elements.images, bounds)
        for image in images:
            placed = self._draw_image(surface, image, bounds, dpi)
            if placed is not None:
                rendered.append(placed)
        texts = visible(elements.text_elements, bounds)
        for text in texts:
            rendered.append(self._draw_text(surface, draw, text, bounds, dpi))

        if not texts and images and self.recognizer is not None:
            rendered.extend(self._recognize_image_text(surface, draw, rendered, dpi))

        logger.info(f"Rendered {len(rendered)} elements")
        return RenderResult(surface, width, height, bounds, dpi, tuple(rendered))

    def _pixel_box(self, box: Box, bounds: Box, dpi: float) -> Tuple[float, float, float, float]:
        """Top-left pixel box of a bottom-left point box."""
        x = to_pixels(box.x - bounds.x, dpi)
        y = to_pixels(to_raster_y(box.y - bounds.y + box.height, bounds.height), dpi)
        return x, y, to_pixels(box.width, dpi), to_pixels(box.height, dpi)

    def _draw_rectangle(self, draw: ImageDraw.ImageDraw, rect: Rectangle, bounds: Box,
                        dpi: float) -> RenderedRectangle:
        x, y, w, h = self._pixel_box(rect.box, bounds, dpi)
        stroke = max(1, int(round(to_pixels(rect.stroke_width, dpi)))) if rect.stroked else 1
        draw.rectangle([x, y, x + w, y + h], outline=RECT_COLOR, width=stroke)
        return RenderedRectangle(x, y, w, h, filled=rect.filled, stroked=rect.stroked,
                                 stroke_width=rect.stroke_width)

    def _draw_line(self, draw: ImageDraw.ImageDraw, line: LineSegment, bounds: Box,
                   dpi: float) -> RenderedLine:
        x1 = to_pixels(line.x1 - bounds.x, dpi)
        y1 = to_pixels(to_raster_y(line.y1 - bounds.y, bounds.height), dpi)
        x2 = to_pixels(line.x2 - bounds.x, dpi)
        y2 = to_pixels(to_raster_y(line.y2 - bounds.y, bounds.height), dpi)
        stroke = max(1, int(round(to_pixels(line.stroke_width, dpi))))
        draw.line([(x1, y1), (x2, y2)], fill=LINE_COLOR, width=stroke)
        return RenderedLine(x1, y1, abs(x2 - x1), abs(y2 - y1), x2=x2, y2=y2,
                            stroke_width=line.stroke_width)

    def _draw_image(self, surface: Image.Image, image: EmbeddedImage, bounds: Box,
                    dpi: float) -> Optional[RenderedImage]:
        x, y, w, h = self._pixel_box(image.box, bounds, dpi)
        if image.pixels is None:
            logger.warning(f"Image {image.image_index} has no pixel data, skipping")
            return None

        box_size = (max(1, int(round(w))), max(1, int(round(h))))
        own_size = (max(1, int(round(to_pixels(image.display_width, dpi)))),
                    max(1, int(round(to_pixels(image.display_height, dpi)))))
        try:
            picture = image.pixels.convert('RGB').resize(own_size)
            if abs(image.rotation_angle) > 1e-3:
                picture = picture.rotate(math.degrees(image.rotation_angle), expand=True,
                                         fillcolor='white')
            if picture.size != box_size:
                picture = picture.resize(box_size)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not draw image {image.image_index}: {e}")
            return None

        surface.paste(picture, (int(round(x)), int(round(y))))
        return RenderedImage(x, y, w, h, image_index=image.image_index,
                             rotation_angle=image.rotation_angle)

    def _font_pixels(self, text: TextElement, dpi: float) -> float:
        size = text.font_size * self.text_scale if text.font_size > 0 else self.default_font_size
        return to_pixels(size, dpi)

    def _draw_text(self, surface: Image.Image, draw: ImageDraw.ImageDraw, text: TextElement,
                   bounds: Box, dpi: float) -> RenderedText:
        box = text.bbox
        x = to_pixels(box.x - bounds.x, dpi)
        baseline = to_pixels(to_raster_y(box.y - bounds.y, bounds.height), dpi)
        w = to_pixels(box.width, dpi)
        h = to_pixels(box.height, dpi)
        size = self._font_pixels(text, dpi)
        font = self.font_mapper.load_font(text.font_name, size, text.is_bold, text.is_italic)

        if text.orientation is TextOrientation.VERTICAL:
            # draw along the long side, then turn it upright
            layer = Image.new('L', (max(1, int(round(h))), max(1, int(round(w)))), 0)
            ImageDraw.Draw(layer).text((0, 0), text.text, fill=255, font=font)
            layer = layer.rotate(90, expand=True)
            surface.paste(Image.new('RGB', layer.size, TEXT_COLOR),
                          (int(round(x)), int(round(baseline - h))), layer)
        else:
            ascent = font.getmetrics()[0] if hasattr(font, 'getmetrics') else size
            draw.text((x, baseline - ascent), text.text, fill=TEXT_COLOR, font=font)

        return RenderedText(x, baseline - h, w, h, text=text.text, font_name=text.font_name,
                            font_size=text.font_size, is_bold=text.is_bold,
                            is_italic=text.is_italic, orientation=text.orientation)

    def _recognize_image_text(self, surface: Image.Image, draw: ImageDraw.ImageDraw,
                              rendered: Sequence[RenderedElement], dpi: float) -> List[RenderedText]:
        """Read words out of drawn images when the page carries no text."""
        found: List[RenderedText] = []
        for placed in rendered:
            if not isinstance(placed, RenderedImage):
                continue
            region = surface.crop((int(placed.x), int(placed.y),
                                   int(placed.x + placed.width), int(placed.y + placed.height)))
            for word in self.recognizer.recognize_words(region):
                wx, wy, ww, wh = word.box
                found.append(RenderedText(placed.x + wx, placed.y + wy, ww, wh, text=word.text,
                                          font_size=wh * 72.0 / dpi))
        logger.info(f"Recognized {len(found)} words inside images")
        for text in found:
            font = self.font_mapper.load_font('', max(1, text.height * self.text_scale))
            draw.text((text.x, text.y), text.text, fill=TEXT_COLOR, font=font)
        return found

    def save(self, result: RenderResult, pdf_path: str, output_dir: str) -> RenderResult:
        """Write the raster as ``<output_dir>/<stem>_rendered.png``."""
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"{Path(pdf_path).stem}{self.output_suffix}.png"
        dpi = int(round(result.dpi))
        result.image.save(str(path), 'PNG', dpi=(dpi, dpi))
        logger.info(f"Saved rendered page: {path}")
        return RenderResult(result.image, result.width, result.height, result.bounds,
                            result.dpi, result.elements, str(path))

    def mark_elements(self, result: RenderResult, target_path: str,
                      output_path: Optional[str] = None) -> str:
        """
        Outline every rendered element on another picture of the same page.

        Boxes are scaled from the raster size to the target size.

        Returns:
            Path of the marked copy
        """
        with Image.open(target_path) as source:
            target = source.convert('RGB')
        sx = target.width / result.width
        sy = target.height / result.height
        draw = ImageDraw.Draw(target)
        for element in result.elements:
            color = MARK_COLORS.get(element.kind, (255, 0, 255))
            if isinstance(element, RenderedLine):
                draw.line([(element.x * sx, element.y * sy), (element.x2 * sx, element.y2 * sy)],
                          fill=color, width=2)
                continue
            draw.rectangle([element.x * sx, element.y * sy,
                            (element.x + element.width) * sx, (element.y + element.height) * sy],
                           outline=color, width=2)

        if output_path is None:
            src = Path(target_path)
            output_path = str(src.with_name(f"{src.stem}_marked{src.suffix}"))
        target.save(output_path)
        logger.info(f"Saved marked image: {output_path}")
        return output_path
