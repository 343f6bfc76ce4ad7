"""
atlas-packer - Pack UV-mapped polygon textures into fixed-size atlas sheets

Overlapping polygons that sample the same source image are merged into one
crop, cropped crops are placed with a guillotine bin packer, and every input
polygon gets its final UVs within the packed sheets.
"""

from atlas_packer.exceptions import (
    AtlasPackerError,
    InvalidConfigError,
    OversizeTextureError,
    SourceReadError,
)
from atlas_packer.export import JpegAtlasExporter, PngAtlasExporter, WebpAtlasExporter
from atlas_packer.pack import AtlasPacker, PackedAtlas, TextureFailure, TextureMapping
from atlas_packer.pipeline import AtlasBuildResult, pack_polygons
from atlas_packer.place import GuillotineTexturePlacer, PlacedTextureInfo, TexturePlacerConfig
from atlas_packer.texture import (
    DownsampleFactor,
    PolygonMappedTexture,
    TextureCache,
    TextureSizeCache,
    ToplevelTexture,
)

__version__ = "0.1.0"
__all__ = [
    "AtlasPackerError",
    "InvalidConfigError",
    "OversizeTextureError",
    "SourceReadError",
    "JpegAtlasExporter",
    "PngAtlasExporter",
    "WebpAtlasExporter",
    "AtlasPacker",
    "PackedAtlas",
    "TextureFailure",
    "TextureMapping",
    "AtlasBuildResult",
    "pack_polygons",
    "GuillotineTexturePlacer",
    "PlacedTextureInfo",
    "TexturePlacerConfig",
    "DownsampleFactor",
    "PolygonMappedTexture",
    "TextureCache",
    "TextureSizeCache",
    "ToplevelTexture",
]
