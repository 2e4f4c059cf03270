"""
Rebuilder Module
Maps page points to raster pixels and resolves content bounds.
"""

from .coordinate_mapper import BoundsMode, CoordinateMapper

__all__ = ['BoundsMode', 'CoordinateMapper']
