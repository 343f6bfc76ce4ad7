"""
Manifest schemas for atlas packing.

INPUT (PackManifest):
    {
      "polygons": [
        {"id": "face_0", "image_path": "dice/red.png",
         "uv_coords": [[0.0, 0.74], [0.37, 0.74], [0.37, 0.87]],
         "downsample_factor": 1.0}
      ]
    }

OUTPUT (AtlasManifest):
    Sheets with their written file, the final UVs of every packed polygon,
    and the polygons that were left out with the reason.

UV CONVENTION:
Both manifests use normalized UVs with a BOTTOM-LEFT origin (glTF / 3D Tiles),
so output UVs can be written straight back into the source meshes.
"""

from __future__ import annotations
import math
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict, field_validator

UV = Tuple[float, float]

#########################
# INPUT
#########################

class PolygonRecord(BaseModel):
    """One UV polygon sampling a source image."""
    model_config = ConfigDict(extra='forbid')

    id: str = Field(..., description="Stable, unique polygon identifier.")
    image_path: str = Field(..., description="Source image path (relative paths resolve against the manifest).")
    uv_coords: List[UV] = Field(..., description="Polygon vertices as (u, v), bottom-left origin.", min_length=3)
    downsample_factor: float = Field(1.0, description="Shrink factor applied to the crop, 0-1.")

    @field_validator('uv_coords')
    @classmethod
    def validate_finite_uv_coords(cls, v):
        for point in v:
            if not all(math.isfinite(c) for c in point):
                raise ValueError(f"uv_coords must be finite numbers, got {point}")
        return v

    @field_validator('downsample_factor')
    @classmethod
    def validate_downsample_factor(cls, v):
        if not (0.0 <= v <= 1.0):
            raise ValueError("downsample_factor must be between 0 and 1")
        return v


class PackManifest(BaseModel):
    model_config = ConfigDict(extra='forbid')

    polygons: List[PolygonRecord]

    @field_validator('polygons')
    @classmethod
    def validate_unique_ids(cls, v):
        seen = set()
        for record in v:
            if record.id in seen:
                raise ValueError(f"Duplicate polygon id: {record.id}")
            seen.add(record.id)
        return v

#########################
# OUTPUT
#########################

class SheetEntry(BaseModel):
    index: int
    path: Optional[str] = Field(None, description="Written sheet file, if exported.")
    width: int
    height: int


class TextureEntry(BaseModel):
    id: str
    sheet_index: int
    uv_coords: List[UV] = Field(..., description="Final UVs within the sheet, bottom-left origin.")


class FailureEntry(BaseModel):
    id: str
    kind: str = Field(..., description="'source_read' or 'oversize'.")
    message: str


class AtlasManifest(BaseModel):
    model_config = ConfigDict(extra='forbid')

    sheets: List[SheetEntry]
    textures: List[TextureEntry]
    failures: List[FailureEntry] = Field(default_factory=list)
