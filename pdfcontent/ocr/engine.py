"""
OCR Engine - Tesseract word recognition through pytesseract, with OpenCV
preprocessing and rotation handling.
"""

import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import cv2
import numpy as np
import pytesseract
from pytesseract import Output

from ..errors import RecognizerUnavailable
from ..parser.elements import TextOrientation

logger = logging.getLogger(__name__)

PSM_AUTO = 3
PSM_SINGLE_BLOCK = 6
PSM_SINGLE_WORD = 8

LEVEL_LINE = 4
LEVEL_WORD = 5

ROTATIONS = (0, 90, 180, 270)
_ROTATE_CODES = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}

PixelBox = Tuple[int, int, int, int]


@dataclass(frozen=True)
class RecognizedWord:
    """A recognized word or line; ``box`` is (x, y, width, height) in pixels."""
    text: str
    box: PixelBox
    confidence: float
    level: int = LEVEL_WORD
    orientation: TextOrientation = TextOrientation.HORIZONTAL


@dataclass
class OCRConfig:
    language: str = 'eng'
    page_seg_mode: int = PSM_AUTO
    preprocess: bool = True
    min_confidence: float = 0.0
    tessdata_path: str = ''

    @classmethod
    def from_dict(cls, config: Optional[Dict[str, Any]]) -> 'OCRConfig':
        config = config or {}
        return cls(
            language=config.get('language', 'eng'),
            page_seg_mode=config.get('page_seg_mode', PSM_AUTO),
            preprocess=config.get('preprocess', True),
            min_confidence=config.get('min_confidence', 0.0),
            tessdata_path=config.get('tessdata_path') or os.environ.get('TESSDATA_PREFIX', ''),
        )


@dataclass(frozen=True)
class OCRResult:
    full_text: str = ''
    regions: Tuple[RecognizedWord, ...] = ()
    processing_time_ms: float = 0.0


def to_array(image: Any) -> np.ndarray:
    """PIL image or array -> uint8 numpy array (gray or RGB)."""
    if isinstance(image, np.ndarray):
        return image
    if image.mode not in ('L', 'RGB'):
        image = image.convert('RGB')
    return np.asarray(image)


def to_gray(array: np.ndarray) -> np.ndarray:
    if array.ndim == 2:
        return array
    if array.shape[2] == 4:
        return cv2.cvtColor(array, cv2.COLOR_RGBA2GRAY)
    return cv2.cvtColor(array, cv2.COLOR_RGB2GRAY)


def rotate_image(array: np.ndarray, degrees: int) -> np.ndarray:
    """Rotate clockwise by a multiple of 90 degrees."""
    if degrees % 360 == 0:
        return array
    return cv2.rotate(array, _ROTATE_CODES[degrees % 360])


def unrotate_box(box: PixelBox, degrees: int, width: int, height: int) -> PixelBox:
    """
    Map a box found in a clockwise-rotated image back to the original.

    Args:
        box: (x, y, w, h) in the rotated image
        degrees: Clockwise rotation that was applied
        width: Original image width
        height: Original image height
    """
    x, y, w, h = box
    degrees %= 360
    if degrees == 90:
        return (y, height - x - w, h, w)
    if degrees == 180:
        return (width - x - w, height - y - h, w, h)
    if degrees == 270:
        return (width - y - h, x, h, w)
    return box


def box_iou(a: PixelBox, b: PixelBox) -> float:
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    ix = max(0, min(ax + aw, bx + bw) - max(ax, bx))
    iy = max(0, min(ay + ah, by + bh) - max(ay, by))
    inter = ix * iy
    union = aw * ah + bw * bh - inter
    return inter / union if union > 0 else 0.0


def mean_confidence(words: Sequence[RecognizedWord]) -> float:
    return sum(w.confidence for w in words) / len(words) if words else 0.0


class OCREngine:
    """
    Wraps Tesseract. The page segmentation mode is engine state; change it
    only through ``page_segmentation`` so it is restored afterwards.
    """

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize OCR engine.

        Args:
            config: OCRConfig or the ocr configuration section
        """
        self.config = config if isinstance(config, OCRConfig) else OCRConfig.from_dict(config)
        self.page_seg_mode = self.config.page_seg_mode

    @contextmanager
    def page_segmentation(self, mode: int) -> Iterator['OCREngine']:
        previous = self.page_seg_mode
        self.page_seg_mode = mode
        try:
            yield self
        finally:
            self.page_seg_mode = previous

    def _tesseract_config(self) -> str:
        options = f"--psm {self.page_seg_mode}"
        if self.config.tessdata_path:
            options += f' --tessdata-dir "{self.config.tessdata_path}"'
        return options

    def preprocess(self, image: Any) -> np.ndarray:
        """Grayscale, light blur and adaptive threshold."""
        gray = to_gray(to_array(image))
        blurred = cv2.GaussianBlur(gray, (3, 3), 0)
        return cv2.adaptiveThreshold(blurred, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
                                     cv2.THRESH_BINARY, 11, 2)

    def _image_to_data(self, array: np.ndarray) -> Dict[str, list]:
        try:
            return pytesseract.image_to_data(array, lang=self.config.language,
                                             config=self._tesseract_config(),
                                             output_type=Output.DICT)
        except pytesseract.TesseractNotFoundError as e:
            raise RecognizerUnavailable(f"Tesseract is not installed or not on PATH: {e}") from e

    def _read(self, array: np.ndarray) -> List[RecognizedWord]:
        data = self._image_to_data(array)
        words = []
        for i, text in enumerate(data.get('text', [])):
            text = (text or '').strip()
            confidence = float(data['conf'][i])
            if not text or confidence < 0:
                continue
            box = (int(data['left'][i]), int(data['top'][i]),
                   int(data['width'][i]), int(data['height'][i]))
            words.append(RecognizedWord(text, box, confidence, LEVEL_WORD))
        return words

    def recognize_words(self, image: Any) -> List[RecognizedWord]:
        """
        Recognize words in an image.

        Returns:
            Words at or above the configured minimum confidence
        """
        array = self.preprocess(image) if self.config.preprocess else to_array(image)
        words = [w for w in self._read(array) if w.confidence >= self.config.min_confidence]
        logger.debug(f"Recognized {len(words)} words (psm {self.page_seg_mode})")
        return words

    def recognize_lines(self, image: Any) -> List[RecognizedWord]:
        """Recognize text lines: words grouped by Tesseract's block/paragraph/line ids."""
        array = self.preprocess(image) if self.config.preprocess else to_array(image)
        data = self._image_to_data(array)
        lines: Dict[tuple, List[int]] = {}
        for i, text in enumerate(data.get('text', [])):
            if (text or '').strip() and float(data['conf'][i]) >= 0:
                key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
                lines.setdefault(key, []).append(i)

        result = []
        for indices in lines.values():
            x0 = min(data['left'][i] for i in indices)
            y0 = min(data['top'][i] for i in indices)
            x1 = max(data['left'][i] + data['width'][i] for i in indices)
            y1 = max(data['top'][i] + data['height'][i] for i in indices)
            text = ' '.join(data['text'][i].strip() for i in indices)
            confidence = sum(float(data['conf'][i]) for i in indices) / len(indices)
            result.append(RecognizedWord(text, (x0, y0, x1 - x0, y1 - y0), confidence, LEVEL_LINE))
        return result

    def find_best_rotation(self, image: Any) -> int:
        """Clockwise rotation (0/90/180/270) giving the best mean word confidence."""
        array = to_array(image)
        best_rotation, best_score = 0, -1.0
        for degrees in ROTATIONS:
            score = mean_confidence(self.recognize_words(rotate_image(array, degrees)))
            logger.debug(f"Rotation {degrees}: mean confidence {score:.1f}")
            if score > best_score:
                best_rotation, best_score = degrees, score
        return best_rotation

    def detect_text_regions(self, image: Any) -> List[RecognizedWord]:
        """
        Recognize words, then re-read tall regions as vertical text.

        Phase one collects every region from a single recognition pass.
        Phase two owns the engine alone and re-recognizes the flagged
        regions one at a time in single-word mode.
        """
        original = to_array(image)
        height, width = original.shape[:2]
        rotation = self.find_best_rotation(original)
        working = rotate_image(original, rotation)

        regions = tuple(self.recognize_words(working))
        flagged = [i for i, r in enumerate(regions)
                   if len(r.text) > 1 and r.box[3] > 1.5 * r.box[2]]

        updated = list(regions)
        for index in flagged:
            reread = self._reread_vertical(working, regions[index])
            if reread is not None:
                updated[index] = reread

        return [replace(r, box=unrotate_box(r.box, rotation, width, height)) for r in updated]

    def _reread_vertical(self, working: np.ndarray, region: RecognizedWord,
                         padding: int = 10) -> Optional[RecognizedWord]:
        x, y, w, h = region.box
        rows, cols = working.shape[:2]
        x0, y0 = max(0, x - padding), max(0, y - padding)
        x1, y1 = min(cols, x + w + padding), min(rows, y + h + padding)
        if x1 <= x0 or y1 <= y0:
            return None
        crop = working[y0:y1, x0:x1]
        white = 255 if crop.ndim == 2 else (255,) * crop.shape[2]

        best: Optional[RecognizedWord] = None
        with self.page_segmentation(PSM_SINGLE_WORD):
            for degrees in (90, 270):
                turned = cv2.copyMakeBorder(rotate_image(crop, degrees), padding, padding,
                                            padding, padding, cv2.BORDER_CONSTANT, value=white)
                words = self.recognize_words(turned)
                if not words:
                    continue
                confidence = mean_confidence(words)
                if best is None or confidence > best.confidence:
                    text = ' '.join(word.text for word in words)
                    best = replace(region, text=text, confidence=confidence,
                                   orientation=TextOrientation.VERTICAL)

        if best is not None and best.confidence > region.confidence:
            logger.debug(f"Re-read '{region.text}' as vertical '{best.text}'")
            return best
        return None

    def identify_text_regions(self, image: Any, min_confidence: float = 10.0,
                              iou_threshold: float = 0.5) -> List[RecognizedWord]:
        """Text lines at all four rotations, mapped back and deduplicated."""
        original = to_array(image)
        height, width = original.shape[:2]
        candidates: List[RecognizedWord] = []
        for degrees in ROTATIONS:
            orientation = (TextOrientation.HORIZONTAL if degrees in (0, 180)
                           else TextOrientation.VERTICAL)
            for line in self.recognize_lines(rotate_image(original, degrees)):
                if line.confidence <= min_confidence:
                    continue
                candidates.append(replace(line, box=unrotate_box(line.box, degrees, width, height),
                                          orientation=orientation))

        kept: List[RecognizedWord] = []
        for candidate in sorted(candidates, key=lambda r: -r.confidence):
            if all(box_iou(candidate.box, k.box) <= iou_threshold for k in kept):
                kept.append(candidate)
        logger.info(f"Identified {len(kept)} text regions from {len(candidates)} candidates")
        return kept

    def analyze_image(self, image: Any, lines: bool = False) -> OCRResult:
        """Full text and regions; words with vertical re-reads, or lines at every rotation."""
        start = time.perf_counter()
        regions = self.identify_text_regions(image) if lines else self.detect_text_regions(image)
        full_text = ' '.join(r.text for r in regions)
        elapsed = (time.perf_counter() - start) * 1000.0
        logger.info(f"OCR found {len(regions)} regions in {elapsed:.0f} ms")
        return OCRResult(full_text, tuple(regions), elapsed)
