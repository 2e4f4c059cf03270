"""
Text Extractor - Builds word and line TextElements from PDF-native words
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .elements import Box, TextElement, TextLevel, TextOrientation

logger = logging.getLogger(__name__)

# PyMuPDF span flag bits
FLAG_ITALIC = 2 ** 1
FLAG_BOLD = 2 ** 4


@dataclass(frozen=True)
class WalkedWord:
    """
    A word as reported by the PDF walker.

    The box is in top-left page space: ``top`` is the distance from the top
    edge of the page to the top of the word.
    """
    text: str
    x: float
    top: float
    width: float
    height: float
    rotation: float = 0.0
    font_name: str = ''
    flags: int = 0
    has_space_after: bool = False


def _gap(start_a: float, size_a: float, start_b: float, size_b: float) -> float:
    """Distance between two 1-D intervals, 0 when they overlap."""
    if start_a > start_b + size_b:
        return start_a - (start_b + size_b)
    if start_b > start_a + size_a:
        return start_b - (start_a + size_a)
    return 0.0


class TextExtractor:
    """
    Converts walker words into TextElements, fixes orientation of short
    tokens inside vertical columns and optionally groups words into lines.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.vertical_aspect = config.get('vertical_aspect_ratio', 1.5)
        self.vertical_aspect_single = config.get('vertical_aspect_ratio_single_char', 3.0)
        self.word_confidence = config.get('pdf_word_confidence', 80.0)
        self.min_line_tolerance = config.get('min_line_tolerance', 5.0)
        self.min_vertical_gap = config.get('min_vertical_gap', 10.0)

    def extract(self, words: Sequence[WalkedWord], page_height: float,
                level: TextLevel = TextLevel.WORD) -> Tuple[List[TextElement], str]:
        """
        Build text elements for one page.

        Args:
            words: Words in content order
            page_height: Page height in points
            level: Word or line granularity

        Returns:
            Tuple of (text elements, full page text)
        """
        elements = [self.to_element(word, page_height) for word in words if word.text.strip()]
        elements = self.reclassify_orientation(elements)
        if level is TextLevel.LINE and elements:
            elements = self.group_into_lines(elements)
        full_text = self.full_text(words)
        logger.info(f"Extracted {len(elements)} text {level.value}s")
        return elements, full_text

    def to_element(self, word: WalkedWord, page_height: float) -> TextElement:
        """Convert one walker word, flipping its box into bottom-left page space."""
        font_lower = word.font_name.lower()
        is_bold = 'bold' in font_lower or bool(word.flags & FLAG_BOLD)
        is_italic = ('italic' in font_lower or 'oblique' in font_lower or
                     bool(word.flags & FLAG_ITALIC))
        y = page_height - word.top - word.height
        return TextElement(
            text=word.text,
            bbox=Box(word.x, y, word.width, word.height),
            font_name=word.font_name,
            font_size=word.height,
            is_bold=is_bold,
            is_italic=is_italic,
            orientation=self.classify_orientation(word.rotation, word.width, word.height, word.text),
            confidence=self.word_confidence,
            level=TextLevel.WORD,
        )

    def classify_orientation(self, rotation: float, width: float, height: float,
                             text: str) -> TextOrientation:
        rotation = round(rotation) % 360
        if rotation in (90, 270):
            return TextOrientation.VERTICAL
        if width > 0:
            aspect = height / width
            threshold = self.vertical_aspect if len(text) > 1 else self.vertical_aspect_single
            if aspect > threshold:
                return TextOrientation.VERTICAL
        return TextOrientation.HORIZONTAL

    @staticmethod
    def full_text(words: Sequence[WalkedWord]) -> str:
        parts = []
        for word in words:
            parts.append(word.text)
            if word.has_space_after:
                parts.append(' ')
        return ''.join(parts)

    def reclassify_orientation(self, elements: List[TextElement]) -> List[TextElement]:
        """
        Turn isolated horizontal tokens that sit in a vertical column vertical.

        Words are visited in order and earlier changes are seen by later
        checks.
        """
        orientations = [e.orientation for e in elements]

        for i, element in enumerate(elements):
            if orientations[i] is not TextOrientation.HORIZONTAL:
                continue
            h_box = element.bbox

            if self._has_horizontal_neighbor(i, elements, orientations):
                continue

            for j, other in enumerate(elements):
                if i == j or orientations[j] is not TextOrientation.VERTICAL:
                    continue
                v_box = other.bbox
                x_diff = abs(h_box.center[0] - v_box.center[0])
                vertical_gap = _gap(h_box.y, h_box.height, v_box.y, v_box.height)
                x_tolerance = max(self.min_line_tolerance, max(h_box.width, v_box.width) / 2.0)
                vertical_tolerance = max(self.min_vertical_gap, v_box.height)
                if x_diff <= x_tolerance and vertical_gap <= vertical_tolerance:
                    orientations[i] = TextOrientation.VERTICAL
                    logger.debug(f"Reclassified '{element.text}' as vertical")
                    break

        return [e if e.orientation is o else replace(e, orientation=o)
                for e, o in zip(elements, orientations)]

    def _has_horizontal_neighbor(self, index: int, elements: List[TextElement],
                                 orientations: List[TextOrientation]) -> bool:
        h_box = elements[index].bbox
        for k, other in enumerate(elements):
            if k == index or orientations[k] is not TextOrientation.HORIZONTAL:
                continue
            o_box = other.bbox
            y_diff = abs(h_box.center[1] - o_box.center[1])
            y_tolerance = max(self.min_line_tolerance, max(h_box.height, o_box.height) / 2.0)
            if y_diff > y_tolerance:
                continue
            gap = _gap(h_box.x, h_box.width, o_box.x, o_box.width)
            avg_width = (h_box.width + o_box.width) / 2.0
            if gap < avg_width * 2:
                return True
        return False

    def group_into_lines(self, elements: List[TextElement]) -> List[TextElement]:
        """
        Merge words of the same orientation into lines.

        Each unused word seeds a line; later words join it when they are
        aligned with the seed and close to the growing line box.
        """
        used = [False] * len(elements)
        lines: List[TextElement] = []

        for i, seed in enumerate(elements):
            if used[i]:
                continue
            used[i] = True
            line = replace(seed, level=TextLevel.LINE)
            vertical = seed.orientation is TextOrientation.VERTICAL
            tolerance = max(self.min_line_tolerance,
                            (seed.bbox.width if vertical else seed.bbox.height) / 2.0)

            for j in range(i + 1, len(elements)):
                candidate = elements[j]
                if used[j] or candidate.orientation is not line.orientation:
                    continue
                box = line.bbox
                cand = candidate.bbox
                if vertical:
                    x_diff = abs(cand.x - box.x)
                    gap = min(abs(cand.y - box.top), abs(box.y - cand.top))
                    on_line = x_diff <= tolerance and gap < box.height * 2
                else:
                    y_diff = abs(cand.center[1] - box.center[1])
                    gap = min(abs(cand.x - box.right), abs(box.x - cand.right))
                    on_line = y_diff <= tolerance and gap < box.width * 3
                if on_line:
                    used[j] = True
                    line = replace(
                        line,
                        text=f"{line.text} {candidate.text}",
                        bbox=box.union(cand),
                        confidence=max(line.confidence, candidate.confidence),
                    )

            lines.append(line)

        logger.debug(f"Grouped {len(elements)} words into {len(lines)} lines")
        return lines
