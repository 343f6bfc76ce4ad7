"""
Texture model, geometry helpers and caches.

Includes the polygon -> toplevel crop -> child UV pipeline and the
byte-bounded caches shared across packing tasks.
"""
from .textures import (
    BoundingBox,
    ChildTexture,
    DownsampleFactor,
    PolygonMappedTexture,
    ToplevelTexture,
)
from .cache import CacheStats, TextureCache, TextureSizeCache
from .utils import calc_bbox, uv_to_pixel_coords

__all__ = [
    'BoundingBox',
    'ChildTexture',
    'DownsampleFactor',
    'PolygonMappedTexture',
    'ToplevelTexture',
    'CacheStats',
    'TextureCache',
    'TextureSizeCache',
    'calc_bbox',
    'uv_to_pixel_coords',
]
