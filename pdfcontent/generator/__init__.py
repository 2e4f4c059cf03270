"""
Generator Module
Renders page elements to raster images.
"""

from .element_renderer import ElementRenderer, RenderResult

__all__ = ['ElementRenderer', 'RenderResult']
