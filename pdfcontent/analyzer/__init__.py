"""
Analyzer Module
Aggregates page elements and resolves printer crop and bleed marks.
"""

from .element_aggregator import ElementAggregator
from .crop_resolver import CropBoundaryResolver

__all__ = ['ElementAggregator', 'CropBoundaryResolver']
