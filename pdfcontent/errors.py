"""
Errors - Failure kinds raised inside the pipeline and the tagged result
returned across the API boundary.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ErrorKind(Enum):
    """Kinds of failure a page can end with."""
    DOCUMENT_LOAD_FAILED = 'DocumentLoadFailed'
    DOCUMENT_LOCKED = 'DocumentLocked'
    NO_PAGES = 'NoPages'
    RECTANGLE_GEOMETRY_INVALID = 'RectangleGeometryInvalid'
    CROP_MARKS_NOT_FOUND = 'CropMarksNotFound'
    CROP_MARKS_AMBIGUOUS = 'CropMarksAmbiguous'
    CROP_BOX_TOO_SMALL = 'CropBoxTooSmall'
    INVALID_BOUNDS = 'InvalidBounds'
    RASTERIZER_UNAVAILABLE = 'RasterizerUnavailable'
    SINGULAR_CALIBRATION_SYSTEM = 'SingularCalibrationSystem'
    RECOGNIZER_UNAVAILABLE = 'RecognizerUnavailable'


class PDFContentError(Exception):
    """Base class for all pipeline errors."""

    kind = ErrorKind.DOCUMENT_LOAD_FAILED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DocumentLoadFailed(PDFContentError):
    kind = ErrorKind.DOCUMENT_LOAD_FAILED


class DocumentLocked(PDFContentError):
    kind = ErrorKind.DOCUMENT_LOCKED


class NoPages(PDFContentError):
    kind = ErrorKind.NO_PAGES


class RectangleGeometryInvalid(PDFContentError):
    """A candidate subpath is not an axis-aligned rectangle. Never fatal."""
    kind = ErrorKind.RECTANGLE_GEOMETRY_INVALID


class CropDetectionFailed(PDFContentError):
    """Parent of the crop-mark failures."""
    kind = ErrorKind.CROP_MARKS_NOT_FOUND


class CropMarksNotFound(CropDetectionFailed):
    kind = ErrorKind.CROP_MARKS_NOT_FOUND


class CropMarksAmbiguous(CropDetectionFailed):
    kind = ErrorKind.CROP_MARKS_AMBIGUOUS


class CropBoxTooSmall(CropDetectionFailed):
    kind = ErrorKind.CROP_BOX_TOO_SMALL


class InvalidBounds(PDFContentError):
    kind = ErrorKind.INVALID_BOUNDS


class RasterizerUnavailable(PDFContentError):
    kind = ErrorKind.RASTERIZER_UNAVAILABLE


class SingularCalibrationSystem(PDFContentError):
    kind = ErrorKind.SINGULAR_CALIBRATION_SYSTEM


class RecognizerUnavailable(PDFContentError):
    kind = ErrorKind.RECOGNIZER_UNAVAILABLE


@dataclass(frozen=True)
class ProcessingResult(Generic[T]):
    """
    Tagged outcome of a pipeline call.

    Exactly one of ``value`` (on success) or ``error_kind``/``error_message``
    (on failure) is meaningful.
    """
    success: bool
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    error_message: str = ''

    @classmethod
    def ok(cls, value: Any) -> 'ProcessingResult':
        return cls(success=True, value=value)

    @classmethod
    def failure(cls, error: PDFContentError) -> 'ProcessingResult':
        logger.error(f"{error.kind.value}: {error.message}")
        return cls(success=False, error_kind=error.kind, error_message=error.message)
