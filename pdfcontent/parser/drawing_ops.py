"""
Drawing Operations - Explicit stream of path and image draws for one page.

The PDF walker turns a page into a sequence of these records; geometry
extraction is a fold over the sequence.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


class PaintKind(Enum):
    STROKE = 'stroke'
    FILL = 'fill'


@dataclass(frozen=True)
class Matrix:
    """PDF affine matrix [a b c d e f]: (x, y) -> (a*x + c*y + e, b*x + d*y + f)."""
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    e: float = 0.0
    f: float = 0.0

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        return (self.a * x + self.c * y + self.e,
                self.b * x + self.d * y + self.f)

    def concat(self, other: 'Matrix') -> 'Matrix':
        """Return the matrix applying ``self`` first, then ``other``."""
        return Matrix(
            a=self.a * other.a + self.b * other.c,
            b=self.a * other.b + self.b * other.d,
            c=self.c * other.a + self.d * other.c,
            d=self.c * other.b + self.d * other.d,
            e=self.e * other.a + self.f * other.c + other.e,
            f=self.e * other.b + self.f * other.d + other.f,
        )

    @classmethod
    def flip_y(cls, page_height: float) -> 'Matrix':
        """Map top-left page space (y down) to bottom-left page space (y up)."""
        return cls(1.0, 0.0, 0.0, -1.0, 0.0, page_height)


@dataclass(frozen=True)
class PathPoint:
    x: float
    y: float
    is_curve: bool = False


@dataclass(frozen=True)
class SubPath:
    points: Tuple[PathPoint, ...]
    closed: bool = False

    @property
    def has_curves(self) -> bool:
        return any(p.is_curve for p in self.points)


@dataclass(frozen=True)
class PathOperation:
    kind: PaintKind
    subpaths: Tuple[SubPath, ...]
    ctm: Matrix = Matrix()
    line_width: float = 1.0


@dataclass(frozen=True)
class ImageOperation:
    pixels: Any = field(compare=False, repr=False)
    pixel_width: int = 0
    pixel_height: int = 0
    ctm: Matrix = Matrix()
    color_space: str = 'RGB'


DrawingOperation = Union[PathOperation, ImageOperation]


def _xy(point: Any) -> Tuple[float, float]:
    if hasattr(point, 'x'):
        return (float(point.x), float(point.y))
    return (float(point[0]), float(point[1]))


def _same(p: Tuple[float, float], q: Tuple[float, float], eps: float = 1e-6) -> bool:
    return abs(p[0] - q[0]) < eps and abs(p[1] - q[1]) < eps


def build_subpaths(items: Sequence[tuple], close_path: bool = False) -> List[SubPath]:
    """
    Split a PyMuPDF drawing's item list into subpaths.

    Consecutive 'l'/'c' items sharing an endpoint form one subpath; 're' and
    'qu' items are closed subpaths of their own. Bezier control points are
    flagged as curve points.

    Args:
        items: ``drawing['items']`` from ``page.get_drawings()``
        close_path: ``drawing['closePath']``; closes the final open subpath

    Returns:
        List of SubPath records in the drawing's own coordinates
    """
    subpaths: List[SubPath] = []
    current: List[PathPoint] = []

    def flush(closed: bool = False):
        if len(current) >= 2:
            subpaths.append(SubPath(tuple(current), closed))
        current.clear()

    for item in items:
        op = item[0]
        if op == 're':
            flush()
            rect = item[1]
            x0, y0, x1, y1 = rect.x0, rect.y0, rect.x1, rect.y1
            corners = [(x0, y0), (x1, y0), (x1, y1), (x0, y1), (x0, y0)]
            subpaths.append(SubPath(tuple(PathPoint(x, y) for x, y in corners), True))
        elif op == 'qu':
            flush()
            quad = item[1]
            corners = [_xy(quad.ul), _xy(quad.ur), _xy(quad.lr), _xy(quad.ll)]
            subpaths.append(SubPath(tuple(PathPoint(x, y) for x, y in corners), True))
        elif op in ('l', 'c'):
            start = _xy(item[1])
            if not current or not _same((current[-1].x, current[-1].y), start):
                flush()
                current.append(PathPoint(*start))
            if op == 'l':
                current.append(PathPoint(*_xy(item[2])))
            else:
                current.append(PathPoint(*_xy(item[2]), is_curve=True))
                current.append(PathPoint(*_xy(item[3]), is_curve=True))
                current.append(PathPoint(*_xy(item[4])))
        else:
            logger.debug(f"Skipping unsupported path item '{op}'")

    flush(closed=close_path)
    return subpaths
