"""
Graphic Mask - Finds logo-like regions in a page image and whites them out
so they do not pollute word recognition.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from .engine import to_array, to_gray

logger = logging.getLogger(__name__)

GRAPHIC_SCORE_THRESHOLD = 5
HUE_BINS = 18

PixelRect = Tuple[int, int, int, int]


@dataclass(frozen=True)
class GraphicFeatures:
    """Shape and color measurements of one candidate region."""
    aspect_ratio: float
    solidity: float
    edge_density: float
    color_bins: int
    fill_ratio: float


def score_graphic(features: GraphicFeatures) -> int:
    """
    Weighted vote over the features; higher means more logo-like.

    Text blocks tend to be very wide or very tall, solid and monochrome.
    """
    squarish = 0.5 <= features.aspect_ratio <= 2.0
    score = 0
    if squarish:
        score += 2
    if features.solidity < 0.7:
        score += 2
    if features.edge_density > 0.15:
        score += 1
    if features.color_bins >= 3:
        score += 3
    if 0.2 < features.fill_ratio < 0.8 and squarish:
        score += 2
    return score


def is_likely_graphic(features: GraphicFeatures) -> bool:
    return score_graphic(features) >= GRAPHIC_SCORE_THRESHOLD


def count_hue_bins(region: np.ndarray) -> int:
    """Hue bins (of 18) holding more than 2% of the region's pixels."""
    if region.ndim != 3:
        return 0
    rgb = region[:, :, :3] if region.shape[2] == 4 else region
    hue = cv2.cvtColor(np.ascontiguousarray(rgb), cv2.COLOR_RGB2HSV)[:, :, 0]
    histogram = np.bincount((hue // 10).ravel(), minlength=HUE_BINS)[:HUE_BINS]
    min_pixels = (hue.shape[0] * hue.shape[1]) // 50
    return int(np.count_nonzero(histogram > min_pixels))


def extract_graphic_features(region: np.ndarray, contour: Optional[np.ndarray] = None) -> GraphicFeatures:
    """
    Measure a region. Without a contour, the largest contour of the Otsu
    foreground is used for solidity.
    """
    rows, cols = region.shape[:2]
    gray = to_gray(region)
    area = float(rows * cols)

    edges = cv2.Canny(gray, 50, 150)
    edge_density = cv2.countNonZero(edges) / area

    _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV | cv2.THRESH_OTSU)
    fill_ratio = cv2.countNonZero(binary) / area

    if contour is None:
        contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        contour = max(contours, key=cv2.contourArea) if contours else None

    solidity = 0.0
    if contour is not None:
        hull_area = cv2.contourArea(cv2.convexHull(contour))
        if hull_area > 0:
            solidity = cv2.contourArea(contour) / hull_area

    return GraphicFeatures(
        aspect_ratio=cols / rows if rows else 0.0,
        solidity=solidity,
        edge_density=edge_density,
        color_bins=count_hue_bins(region),
        fill_ratio=fill_ratio,
    )


def merge_overlapping(rects: List[PixelRect]) -> List[PixelRect]:
    """Union every group of intersecting (x, y, w, h) boxes."""
    merged: List[PixelRect] = []
    used = [False] * len(rects)
    for i, rect in enumerate(rects):
        if used[i]:
            continue
        x0, y0, x1, y1 = rect[0], rect[1], rect[0] + rect[2], rect[1] + rect[3]
        grew = True
        while grew:
            grew = False
            for j in range(i + 1, len(rects)):
                if used[j]:
                    continue
                ox, oy, ow, oh = rects[j]
                if ox < x1 and ox + ow > x0 and oy < y1 and oy + oh > y0:
                    x0, y0 = min(x0, ox), min(y0, oy)
                    x1, y1 = max(x1, ox + ow), max(y1, oy + oh)
                    used[j] = True
                    grew = True
        merged.append((x0, y0, x1 - x0, y1 - y0))
    return merged


class GraphicMasker:
    """Contour search for mid-sized graphic regions, painted white."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.min_size = config.get('graphic_min_size', 50)
        self.min_area = config.get('graphic_min_area', 2500)
        self.max_fraction = config.get('graphic_max_fraction', 3)
        self.padding = config.get('graphic_padding', 5)

    def candidate_regions(self, array: np.ndarray) -> List[PixelRect]:
        rows, cols = array.shape[:2]
        edges = cv2.Canny(to_gray(array), 50, 150)
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))
        edges = cv2.dilate(edges, kernel, iterations=2)
        contours, _ = cv2.findContours(edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        regions = []
        for contour in contours:
            x, y, w, h = cv2.boundingRect(contour)
            if w < self.min_size or h < self.min_size or w * h < self.min_area:
                continue
            if w > cols / self.max_fraction or h > rows / self.max_fraction:
                continue
            if w < 10 or h < 10:
                continue
            features = extract_graphic_features(array[y:y + h, x:x + w], contour)
            if not is_likely_graphic(features):
                continue
            p = self.padding
            x0, y0 = max(0, x - p), max(0, y - p)
            regions.append((x0, y0, min(cols, x + w + p) - x0, min(rows, y + h + p) - y0))
        return merge_overlapping(regions)

    def mask(self, image: Any) -> np.ndarray:
        """Copy of the image with graphic regions filled white."""
        array = to_array(image).copy()
        regions = self.candidate_regions(array)
        for x, y, w, h in regions:
            array[y:y + h, x:x + w] = 255
        logger.info(f"Masked {len(regions)} graphic regions")
        return array


def mask_non_text_regions(image: Any, config: Optional[Dict[str, Any]] = None) -> np.ndarray:
    return GraphicMasker(config).mask(image)
