"""
Mapper Module
Maps PDF fonts to faces the rasterizer can load.
"""

from .font_mapper import FontMapper

__all__ = ['FontMapper']
