"""
Pipeline - Page-level entry points. Every call returns a ProcessingResult;
whole-page failures never escape as exceptions.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Type

from PIL import Image

from .analyzer.crop_resolver import CropBoundaryResolver
from .analyzer.element_aggregator import ElementAggregator
from .calibration.calibrator import RelativeMapCalibrator
from .calibration.relative_map import RelativeMapBuilder, RelativeMapResult
from .errors import (
    DocumentLoadFailed, InvalidBounds, PDFContentError, ProcessingResult, RasterizerUnavailable,
    RecognizerUnavailable
)
from .generator.element_renderer import ElementRenderer, RenderResult
from .mapper.font_mapper import FontMapper
from .ocr.engine import OCREngine, OCRResult
from .ocr.graphic_mask import mask_non_text_regions
from .parser.elements import PageElements, TextLevel
from .parser.pdf_parser import PDFParser
from .rebuilder.coordinate_mapper import BoundsMode

logger = logging.getLogger(__name__)


def _banner(title: str):
    logger.info("=" * 60)
    logger.info(title)
    logger.info("=" * 60)


def _run(stage: str, stage_error: Type[PDFContentError], step: Callable[[], Any]) -> ProcessingResult:
    """Run a stage, turning any error into a failure result."""
    try:
        return ProcessingResult.ok(step())
    except PDFContentError as e:
        return ProcessingResult.failure(e)
    except Exception as e:
        logger.error(f"{stage} failed: {e}", exc_info=True)
        return ProcessingResult.failure(stage_error(f"{stage} failed: {e}"))


def extract_page_elements(pdf_path: str, config: Dict[str, Any], strip_marks: bool = False,
                          level: TextLevel = TextLevel.WORD,
                          page_num: int = 0) -> ProcessingResult[PageElements]:
    """
    Walk and aggregate one page, optionally resolving crop marks.

    Args:
        pdf_path: PDF file
        config: Full configuration
        strip_marks: Remove bleed and crop marks and use the crop box
        level: Word or line text granularity
        page_num: Page index (0-based)
    """
    def step() -> PageElements:
        _banner("Step 1: Extracting page elements")
        with PDFParser(config.get('parser', {})) as parser:
            parser.open(pdf_path)
            raw = parser.extract_page(page_num)

        aggregator = ElementAggregator(config.get('aggregator', {}), config.get('parser', {}))
        elements = aggregator.aggregate(raw, level)

        if strip_marks:
            _banner("Step 2: Resolving crop marks")
            elements = CropBoundaryResolver(config.get('crop_resolver', {})).resolve(elements)
        return elements

    return _run("Element extraction", DocumentLoadFailed, step)


def build_renderer(config: Dict[str, Any], recognizer: Optional[OCREngine] = None) -> ElementRenderer:
    renderer_config = config.get('renderer', {})
    if recognizer is None and renderer_config.get('ocr_images', False):
        recognizer = OCREngine(config.get('ocr', {}))
    return ElementRenderer(renderer_config, FontMapper(config.get('fonts', {})), recognizer)


def render_elements(elements: PageElements, pdf_path: str, config: Dict[str, Any],
                    bounds_mode: BoundsMode = BoundsMode.CROP_MARKS, output_dir: str = 'images',
                    dpi: Optional[float] = None, mark_to: Optional[str] = None,
                    recognizer: Optional[OCREngine] = None) -> ProcessingResult[RenderResult]:
    """
    Render elements to ``<output_dir>/<stem>_rendered.png``.

    With ``mark_to`` the rendered element boxes are also drawn on that image.
    """
    def step() -> RenderResult:
        _banner("Rendering page elements")
        renderer = build_renderer(config, recognizer)
        result = renderer.save(renderer.render(elements, bounds_mode, dpi), pdf_path, output_dir)
        if mark_to:
            renderer.mark_elements(result, mark_to)
        return result

    return _run("Rendering", RasterizerUnavailable, step)


def create_relative_map(elements: PageElements, config: Dict[str, Any],
                        bounds_mode: BoundsMode = BoundsMode.LARGEST_RECTANGLE,
                        mark_to: Optional[str] = None,
                        recognizer: Optional[OCREngine] = None) -> ProcessingResult[RelativeMapResult]:
    """
    Build the relative map; with ``mark_to`` also calibrate it against that image.
    """
    def step() -> RelativeMapResult:
        _banner("Creating relative map")
        calibration_config = config.get('calibration', {})
        relative_map = RelativeMapBuilder(calibration_config).to_relative_map(elements, bounds_mode)
        if not mark_to:
            return relative_map

        _banner("Calibrating against target image")
        engine = recognizer or OCREngine(config.get('ocr', {}))
        calibrator = RelativeMapCalibrator(calibration_config, engine)
        calibration = calibrator.calibrate_against_image(relative_map, mark_to)
        return replace(relative_map, calibration=calibration)

    return _run("Relative map", InvalidBounds, step)


def recognize_image(image_path: str, config: Dict[str, Any], mask_graphics: bool = False,
                    level: TextLevel = TextLevel.WORD,
                    recognizer: Optional[OCREngine] = None) -> ProcessingResult[OCRResult]:
    """
    Read the text of a picture.

    Args:
        image_path: Image file
        config: Full configuration
        mask_graphics: White out logo-like regions before recognition
        level: ``WORD`` runs the two-phase word pass with vertical re-reads,
            ``LINE`` collects lines at all four rotations
        recognizer: Engine to use, a Tesseract OCREngine by default
    """
    def step() -> OCRResult:
        _banner("Recognizing image text")
        try:
            with Image.open(image_path) as source:
                image = source.convert('RGB')
        except OSError as e:
            raise DocumentLoadFailed(f"Failed to open image {image_path}: {e}") from e
        logger.info(f"Loaded {image_path} ({image.width}x{image.height})")

        pixels = mask_non_text_regions(image, config.get('calibration', {})) if mask_graphics else image
        engine = recognizer or OCREngine(config.get('ocr', {}))
        return engine.analyze_image(pixels, lines=level is TextLevel.LINE)

    return _run("Image recognition", RecognizerUnavailable, step)


def render_full_page(pdf_path: str, config: Dict[str, Any], output_dir: str = 'images',
                     dpi: Optional[float] = None, page_num: int = 0) -> ProcessingResult[str]:
    """Rasterize the whole page to ``<output_dir>/<stem>_page.png``."""
    def step() -> str:
        resolution = dpi or config.get('renderer', {}).get('dpi', 300)
        with PDFParser(config.get('parser', {})) as parser:
            parser.open(pdf_path)
            image = parser.render_page(page_num, resolution)

        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"{Path(pdf_path).stem}_page.png"
        image.save(str(path), 'PNG')
        logger.info(f"Saved full page render: {path} ({image.width}x{image.height})")
        return str(path)

    return _run("Page rendering", DocumentLoadFailed, step)
