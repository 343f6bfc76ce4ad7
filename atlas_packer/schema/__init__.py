"""Manifest schema definitions."""
from .manifest import (
    PolygonRecord,
    PackManifest,
    SheetEntry,
    TextureEntry,
    FailureEntry,
    AtlasManifest,
)

__all__ = [
    "PolygonRecord",
    "PackManifest",
    "SheetEntry",
    "TextureEntry",
    "FailureEntry",
    "AtlasManifest",
]
