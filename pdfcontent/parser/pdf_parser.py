"""
PDF Parser - Walks PDF pages with PyMuPDF and emits drawing operations,
words and page geometry.
"""

import fitz  # PyMuPDF
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image

from .drawing_ops import (
    DrawingOperation, ImageOperation, Matrix, PaintKind, PathOperation, build_subpaths
)
from .elements import Box
from .text_extractor import WalkedWord
from ..errors import DocumentLoadFailed, DocumentLocked, NoPages

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawPage:
    """Unprocessed walker output for one page."""
    page_number: int
    page_count: int
    page_box: Box
    operations: Tuple[DrawingOperation, ...] = ()
    words: Tuple[WalkedWord, ...] = field(default=())


def pixmap_to_image(pix: 'fitz.Pixmap') -> Image.Image:
    """Convert a PyMuPDF pixmap to an RGB or grayscale PIL image."""
    if pix.colorspace is not None and pix.n - pix.alpha >= 4:
        pix = fitz.Pixmap(fitz.csRGB, pix)
    if pix.alpha:
        pix = fitz.Pixmap(pix, 0)
    mode = 'L' if pix.n == 1 else 'RGB'
    return Image.frombytes(mode, (pix.width, pix.height), pix.samples)


class PDFParser:
    """
    Opens a PDF with PyMuPDF and exposes each page as an explicit stream of
    drawing operations plus a word list.

    All coordinates PyMuPDF reports are in top-left page space; path and
    image operations carry a CTM that flips them into bottom-left page space.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize PDF Parser with configuration.

        Args:
            config: Parser configuration section
        """
        self.config = config or {}
        self.inline_image_zoom = self.config.get('inline_image_zoom', 2.0)
        self.doc = None

    def open(self, pdf_path: str):
        """
        Open a PDF file for parsing.

        Raises:
            DocumentLoadFailed: File missing or unreadable
            DocumentLocked: File needs a password
            NoPages: Document has no pages
        """
        try:
            self.doc = fitz.open(pdf_path)
        except Exception as e:
            raise DocumentLoadFailed(f"Failed to open PDF {pdf_path}: {e}") from e

        if self.doc.needs_pass and not self.doc.authenticate(''):
            self.close()
            raise DocumentLocked(f"PDF is password protected: {pdf_path}")
        if len(self.doc) == 0:
            self.close()
            raise NoPages(f"PDF has no pages: {pdf_path}")

        logger.info(f"Successfully opened PDF: {pdf_path}")
        logger.info(f"Total pages: {len(self.doc)}")

    def close(self):
        """Close the PDF document."""
        if self.doc:
            self.doc.close()
            self.doc = None

    def get_page_count(self) -> int:
        return len(self.doc) if self.doc else 0

    def get_page_size(self, page_num: int) -> Tuple[float, float]:
        """
        Get the size of a specific page.

        Args:
            page_num: Page number (0-indexed)

        Returns:
            Tuple of (width, height) in points
        """
        if not self.doc or page_num >= len(self.doc):
            return (0, 0)
        rect = self.doc[page_num].rect
        return (rect.width, rect.height)

    def extract_page(self, page_num: int = 0) -> RawPage:
        """
        Walk one page.

        Args:
            page_num: Page number (0-indexed)

        Returns:
            RawPage with drawing operations and words
        """
        page = self.doc[page_num]
        width, height = page.rect.width, page.rect.height

        operations: List[DrawingOperation] = []
        operations.extend(self._path_operations(page, height))
        operations.extend(self._image_operations(page, height))
        words = self._walk_words(page)

        logger.info(f"Page {page_num + 1}: {len(operations)} drawing operations, {len(words)} words")
        return RawPage(
            page_number=page_num + 1,
            page_count=len(self.doc),
            page_box=Box(0.0, 0.0, width, height),
            operations=tuple(operations),
            words=tuple(words),
        )

    def render_page(self, page_num: int = 0, dpi: float = 300) -> Image.Image:
        """Rasterize a whole page."""
        pix = self.doc[page_num].get_pixmap(dpi=int(dpi))
        return pixmap_to_image(pix)

    def _path_operations(self, page: 'fitz.Page', page_height: float) -> List[PathOperation]:
        ctm = Matrix.flip_y(page_height)
        operations = []
        for drawing in page.get_drawings():
            subpaths = tuple(build_subpaths(drawing.get('items', []),
                                            close_path=bool(drawing.get('closePath'))))
            if not subpaths:
                continue
            paint = drawing.get('type') or 's'
            width = drawing.get('width') or 1.0
            if 'f' in paint:
                operations.append(PathOperation(PaintKind.FILL, subpaths, ctm, width))
            if 's' in paint:
                operations.append(PathOperation(PaintKind.STROKE, subpaths, ctm, width))
        return operations

    def _image_operations(self, page: 'fitz.Page', page_height: float) -> List[ImageOperation]:
        flip = Matrix.flip_y(page_height)
        operations = []
        for info in page.get_image_info(xrefs=True):
            try:
                pixels = self._load_image(page, info)
            except Exception as e:
                logger.warning(f"Skipping unreadable image xref {info.get('xref')}: {e}")
                continue
            ctm = Matrix(*info['transform']).concat(flip)
            operations.append(ImageOperation(
                pixels=pixels,
                pixel_width=pixels.width,
                pixel_height=pixels.height,
                ctm=ctm,
                color_space=info.get('cs-name') or pixels.mode,
            ))
        return operations

    def _load_image(self, page: 'fitz.Page', info: Dict[str, Any]) -> Image.Image:
        xref = info.get('xref', 0)
        if xref:
            return pixmap_to_image(fitz.Pixmap(self.doc, xref))
        # inline image: no xref to decode from, rasterize its footprint instead
        zoom = self.inline_image_zoom
        pix = page.get_pixmap(clip=fitz.Rect(info['bbox']), matrix=fitz.Matrix(zoom, zoom))
        return pixmap_to_image(pix)

    def _walk_words(self, page: 'fitz.Page') -> List[WalkedWord]:
        """Split rawdict characters into words, keeping font and direction."""
        words: List[WalkedWord] = []
        text_dict = page.get_text('rawdict')

        for block in text_dict.get('blocks', []):
            if block.get('type') != 0:
                continue
            for line in block.get('lines', []):
                dx, dy = line.get('dir', (1.0, 0.0))
                rotation = math.degrees(math.atan2(dy, dx)) % 360
                chars = []
                for span in line.get('spans', []):
                    for char in span.get('chars', []):
                        chars.append((char.get('c', ''), char.get('bbox'), span))
                words.extend(self._split_words(chars, rotation))

        return words

    @staticmethod
    def _split_words(chars: List[tuple], rotation: float) -> List[WalkedWord]:
        words = []
        current: List[tuple] = []

        def flush(space_after: bool):
            if not current:
                return
            x0 = min(c[1][0] for c in current)
            y0 = min(c[1][1] for c in current)
            x1 = max(c[1][2] for c in current)
            y1 = max(c[1][3] for c in current)
            span = current[0][2]
            words.append(WalkedWord(
                text=''.join(c[0] for c in current),
                x=x0, top=y0, width=x1 - x0, height=y1 - y0,
                rotation=rotation,
                font_name=span.get('font', ''),
                flags=span.get('flags', 0),
                has_space_after=space_after,
            ))
            current.clear()

        for char in chars:
            if char[0].isspace():
                flush(True)
            else:
                current.append(char)
        flush(True)
        return words

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
