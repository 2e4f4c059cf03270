"""
Calibrator - Locates a PDF's content box inside a picture of the same page by
matching the relative map's text against recognized words, then draws the
relative map over the located crop.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from PIL import Image, ImageDraw

from ..errors import SingularCalibrationSystem
from ..ocr.engine import PSM_SINGLE_BLOCK, OCREngine
from ..ocr.graphic_mask import GraphicMasker
from .relative_map import MatchedPair, RelativeMapBuilder, RelativeMapResult, RelativeText

logger = logging.getLogger(__name__)

BOX_COLORS = {
    'text': (0, 0, 255),
    'image': (0, 255, 0),
}

METHOD_LEAST_SQUARES = 'least_squares'
METHOD_SINGLE_MATCH = 'single_match_sweep'
METHOD_FULL_IMAGE = 'full_image'

CropRect = Tuple[int, int, int, int]


@dataclass(frozen=True)
class CalibrationResult:
    crop: CropRect
    match_count: int
    method: str
    boxes_drawn: int = 0
    cropped_path: Optional[str] = None
    relmap_path: Optional[str] = None


def solve_axis(relative: Sequence[float], pixels: Sequence[float], axis: str) -> Tuple[float, float]:
    """
    Least-squares fit of ``pixel = relative * size + offset``.

    Returns:
        (size, offset)

    Raises:
        SingularCalibrationSystem: All relative values coincide
    """
    n = len(relative)
    sum_r = sum(relative)
    sum_r2 = sum(r * r for r in relative)
    sum_p = sum(pixels)
    sum_rp = sum(r * p for r, p in zip(relative, pixels))

    det = sum_r2 * n - sum_r * sum_r
    if abs(det) < 1e-10:
        raise SingularCalibrationSystem(
            f"{axis.upper()} system is singular (all matches at same relative {axis}?)")
    size = (sum_rp * n - sum_r * sum_p) / det
    offset = (sum_r2 * sum_p - sum_r * sum_rp) / det
    return size, offset


def solve_least_squares(matches: Sequence[MatchedPair]) -> Tuple[float, float, float, float]:
    """
    Solve the crop (x, y, width, height) in pixels from two or more matches.

    Raises:
        SingularCalibrationSystem: Fewer than two matches or a degenerate axis
    """
    if len(matches) < 2:
        raise SingularCalibrationSystem("Need at least 2 matched text elements to solve crop rect")
    width, crop_x = solve_axis([m.relative_x for m in matches], [m.pixel_x for m in matches], 'x')
    height, crop_y = solve_axis([m.relative_y for m in matches], [m.pixel_y for m in matches], 'y')

    residual = sum(
        ((m.relative_x * width + crop_x - m.pixel_x) ** 2 +
         (m.relative_y * height + crop_y - m.pixel_y) ** 2) ** 0.5
        for m in matches) / len(matches)
    logger.info(f"Solved crop from {len(matches)} matches: ({crop_x:.1f}, {crop_y:.1f}) "
                f"{width:.1f}x{height:.1f}px, mean residual {residual:.2f}px")
    return crop_x, crop_y, width, height


def sweep_single_match(match: MatchedPair, image_width: int, image_height: int,
                       aspect_ratio: float) -> Optional[Tuple[float, float, float, float]]:
    """
    Best crop anchored on one match, keeping the content aspect ratio.

    Crop widths from 30% to 100% of the image are tried. Each candidate is
    scored by the fraction of the image it covers once clipped, times 0.8 for
    every side that crosses the image edge. Candidates more than 10% outside
    the image are rejected.
    """
    best, best_score = None, -1.0
    image_area = float(image_width * image_height)
    for percent in range(30, 101):
        try_w = image_width * percent / 100.0
        try_h = try_w / aspect_ratio
        if try_h > image_height:
            continue

        try_x = match.pixel_x - match.relative_x * try_w
        try_y = match.pixel_y - match.relative_y * try_h
        if (try_x < -try_w * 0.1 or try_y < -try_h * 0.1 or
                try_x + try_w > image_width * 1.1 or try_y + try_h > image_height * 1.1):
            continue

        clip_x, clip_y = max(0.0, try_x), max(0.0, try_y)
        clip_w = min(try_w, image_width - clip_x)
        clip_h = min(try_h, image_height - clip_y)
        score = (clip_w * clip_h) / image_area
        for outside in (try_x < 0, try_y < 0, try_x + try_w > image_width,
                        try_y + try_h > image_height):
            if outside:
                score *= 0.8

        if score > best_score:
            best, best_score = (try_x, try_y, try_w, try_h), score

    if best is not None:
        logger.debug(f"Single-match sweep best score {best_score:.3f}")
    return best


def clamp_crop(crop: Tuple[float, float, float, float], image_width: int, image_height: int,
               min_size: int = 10) -> Optional[CropRect]:
    """Round, clip to the image and require more than ``min_size`` px per side."""
    x = max(0, int(round(crop[0])))
    y = max(0, int(round(crop[1])))
    w = min(int(round(crop[2])), image_width - x)
    h = min(int(round(crop[3])), image_height - y)
    if w > min_size and h > min_size:
        return (x, y, w, h)
    return None


def suffixed_path(path: str, suffix: str) -> str:
    source = Path(path)
    return str(source.with_name(f"{source.stem}{suffix}{source.suffix}"))


class RelativeMapCalibrator:
    """
    Aligns a relative map with a target image using recognized text anchors.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 recognizer: Optional[OCREngine] = None):
        """
        Initialize the calibrator.

        Args:
            config: Calibration configuration section
            recognizer: Word recognizer, an OCREngine by default
        """
        config = config or {}
        self.min_confidence = config.get('min_ocr_confidence', 30.0)
        self.min_crop_size = config.get('min_crop_pixels', 10)
        self.draw_margin = config.get('draw_margin', 0.1)
        self.box_thickness = config.get('box_thickness', 2)
        self.mask_graphics = config.get('mask_graphics', False)
        self.builder = RelativeMapBuilder(config)
        self.masker = GraphicMasker(config)
        self.recognizer = recognizer or OCREngine(config.get('ocr', {}))

    def detect_words(self, image: Image.Image) -> list:
        """Words above the confidence floor, read as a single text block."""
        source = self.masker.mask(image) if self.mask_graphics else image
        with self.recognizer.page_segmentation(PSM_SINGLE_BLOCK):
            words = self.recognizer.recognize_words(source)
        words = [w for w in words if w.confidence > self.min_confidence]
        logger.info(f"Detected {len(words)} words in target image")
        return words

    def locate_crop(self, relative_map: RelativeMapResult, matches: Sequence[MatchedPair],
                    image_width: int, image_height: int) -> Tuple[Optional[CropRect], str]:
        """Crop rectangle and the method that found it; (None, full_image) when none fits."""
        if len(matches) >= 2:
            try:
                crop = solve_least_squares(matches)
            except SingularCalibrationSystem as e:
                logger.warning(f"{e.message}, using full image")
                return None, METHOD_FULL_IMAGE
            if crop[2] < self.min_crop_size or crop[3] < self.min_crop_size:
                logger.warning("Solved crop dimensions too small, using full image")
                return None, METHOD_FULL_IMAGE
            clamped = clamp_crop(crop, image_width, image_height, self.min_crop_size)
            if clamped is None:
                logger.warning("Solved crop too small after clamping, using full image")
                return None, METHOD_FULL_IMAGE
            return clamped, METHOD_LEAST_SQUARES

        if len(matches) == 1:
            logger.info(f"Single match fallback using aspect ratio {relative_map.aspect_ratio:.3f}")
            crop = sweep_single_match(matches[0], image_width, image_height, relative_map.aspect_ratio)
            clamped = clamp_crop(crop, image_width, image_height, self.min_crop_size) if crop else None
            if clamped is not None:
                return clamped, METHOD_SINGLE_MATCH
            logger.warning("Single-match fallback failed, using full image")
            return None, METHOD_FULL_IMAGE

        logger.warning("No text matches, using full image")
        return None, METHOD_FULL_IMAGE

    def draw_relative_map(self, canvas: Image.Image, relative_map: RelativeMapResult) -> int:
        """Outline every element near the content box; returns how many were drawn."""
        draw = ImageDraw.Draw(canvas)
        width, height = canvas.size
        drawn = 0
        for element in relative_map.elements:
            if not element.is_near_bounds(self.draw_margin):
                continue
            px, py, pw, ph = (int(v) for v in element.to_pixels(width, height))
            x1 = max(0, min(px, width - 1))
            y1 = max(0, min(py, height - 1))
            x2 = max(0, min(px + pw, width - 1))
            y2 = max(0, min(py + ph, height - 1))
            if x2 <= x1 or y2 <= y1:
                continue
            color = BOX_COLORS['text'] if isinstance(element, RelativeText) else BOX_COLORS['image']
            draw.rectangle([x1, y1, x2, y2], outline=color, width=self.box_thickness)
            drawn += 1
        logger.info(f"Drew {drawn} boxes on {width}x{height} canvas")
        return drawn

    def calibrate_against_image(self, relative_map: RelativeMapResult,
                                target_path: str) -> Optional[CalibrationResult]:
        """
        Crop the target image to the content box and draw the relative map.

        Writes ``<stem>_cropped<ext>`` when a crop was found and always
        ``<stem>_relmap<ext>``.

        Returns:
            CalibrationResult, or None when the target cannot be read
        """
        try:
            with Image.open(target_path) as source:
                target = source.convert('RGB')
        except OSError as e:
            logger.warning(f"Could not load image for marking: {target_path} ({e})")
            return None
        logger.info(f"Calibrating against {target_path} ({target.width}x{target.height})")

        words = self.detect_words(target)
        matches = self.builder.match_words(relative_map, words)
        crop, method = self.locate_crop(relative_map, matches, target.width, target.height)

        cropped_path = None
        if crop is not None:
            x, y, w, h = crop
            canvas = target.crop((x, y, x + w, y + h))
            cropped_path = suffixed_path(target_path, '_cropped')
            canvas.save(cropped_path)
            logger.info(f"Cropped to ({x}, {y}) {w}x{h}, saved {cropped_path}")
        else:
            crop = (0, 0, target.width, target.height)
            canvas = target.copy()

        drawn = self.draw_relative_map(canvas, relative_map)
        relmap_path = suffixed_path(target_path, '_relmap')
        canvas.save(relmap_path)
        logger.info(f"Relative map marked image saved: {relmap_path}")
        return CalibrationResult(crop, len(matches), method, drawn, cropped_path, relmap_path)
