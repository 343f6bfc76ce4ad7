"""
Polygon-mapped textures and the crop / UV-remap pipeline.

A PolygonMappedTexture is a query: "this polygon of that image". Polygons that
sample overlapping areas of one image are coalesced into a ToplevelTexture,
which is the single rectangle that actually gets cropped and placed. Each
original polygon then becomes a ChildTexture whose UVs are relative to that
crop.
"""

import logging
import math
import os
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from atlas_packer.exceptions import InvalidConfigError
from atlas_packer.texture.utils import Point, calc_bbox, polygon_mask, uv_to_pixel_coords

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

# Below this many rows the mask is computed inline
PARALLEL_MASK_MIN_ROWS = 64


@dataclass(frozen=True)
class DownsampleFactor:
    """Shrink-only scale applied to a crop before placement, in [0, 1]."""
    factor: float

    def __post_init__(self):
        # NaN fails the comparison as well
        if not (0.0 <= self.factor <= 1.0):
            raise InvalidConfigError(
                f"Downsample factor must be between 0 and 1, got {self.factor}"
            )

    def value(self) -> float:
        return self.factor


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned pixel rectangle, top-left origin."""
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_points(cls, points: Sequence[Point]) -> "BoundingBox":
        """Bounding box of a point set; a zero extent is widened to one pixel."""
        min_x, min_y, max_x, max_y = calc_bbox(points)
        return cls(min_x, min_y, max(max_x - min_x, 1), max(max_y - min_y, 1))

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def intersects(self, other: "BoundingBox") -> bool:
        """True if the boxes share any area or edge."""
        return not (
            self.right < other.x or other.right < self.x
            or self.bottom < other.y or other.bottom < self.y
        )

    def union(self, other: "BoundingBox") -> "BoundingBox":
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return BoundingBox(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height

    def clamp(self, width: int, height: int) -> "BoundingBox":
        """
        Intersect with the image rectangle (0, 0, width, height).

        A box entirely outside the image collapses to the nearest one-pixel
        box on the image border.
        """
        x0 = min(max(self.x, 0), width - 1)
        y0 = min(max(self.y, 0), height - 1)
        x1 = max(min(self.right, width), x0 + 1)
        y1 = max(min(self.bottom, height), y0 + 1)
        return BoundingBox(x0, y0, x1 - x0, y1 - y0)


@dataclass(frozen=True)
class PolygonMappedTexture:
    """
    A polygon of a source image, expressed in UV space.

    Attributes:
        image_path: Source image path
        size: Source image pixel size (width, height)
        uv_coords: Polygon vertices in UV space (bottom-left origin)
        downsample_factor: Requested shrink factor
        pixel_coords: Polygon vertices in source pixel space (derived)
    """
    image_path: Path
    size: Tuple[int, int]
    uv_coords: Tuple[Tuple[float, float], ...]
    downsample_factor: DownsampleFactor
    pixel_coords: Tuple[Point, ...] = field(init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "image_path", Path(self.image_path))
        object.__setattr__(self, "size", (int(self.size[0]), int(self.size[1])))
        object.__setattr__(
            self, "uv_coords", tuple((float(u), float(v)) for u, v in self.uv_coords)
        )
        if not self.uv_coords:
            raise ValueError(f"Polygon on {self.image_path} has no UV coordinates")
        if not all(math.isfinite(u) and math.isfinite(v) for u, v in self.uv_coords):
            raise InvalidConfigError(f"Polygon on {self.image_path} has non-finite UV coordinates")
        if self.size[0] <= 0 or self.size[1] <= 0:
            raise InvalidConfigError(f"Source size of {self.image_path} must be positive, got {self.size}")
        if not isinstance(self.downsample_factor, DownsampleFactor):
            object.__setattr__(self, "downsample_factor", DownsampleFactor(self.downsample_factor))
        pixel_coords = uv_to_pixel_coords(self.uv_coords, self.size[0], self.size[1])
        object.__setattr__(self, "pixel_coords", tuple(pixel_coords))

    def bbox(self) -> BoundingBox:
        """Pixel bbox of the polygon, clamped to the source image."""
        return BoundingBox.from_points(self.pixel_coords).clamp(*self.size)

    def bbox_overlaps(self, other: "PolygonMappedTexture") -> bool:
        """True if both polygons sample the same image and their pixel bboxes touch."""
        if self.image_path != other.image_path:
            return False
        return self.bbox().intersects(other.bbox())

    def get_cropped_uv_coords(self, bbox: BoundingBox) -> Tuple[Tuple[float, float], ...]:
        """Polygon UVs relative to `bbox`, bottom-left origin."""
        return tuple(
            ((px - bbox.x) / bbox.width, 1.0 - (py - bbox.y) / bbox.height)
            for px, py in self.pixel_coords
        )


@dataclass(frozen=True)
class ChildTexture:
    """One polygon's UVs relative to its toplevel crop (bottom-left origin)."""
    cropped_uv_coords: Tuple[Tuple[float, float], ...]

    def to_sheet_uv_coords(self, placement, sheet_width: int, sheet_height: int):
        """
        Map crop-local UVs onto a sheet.

        Args:
            placement: Anything with x, y, width, height of the placed crop
            sheet_width: Sheet width in pixels
            sheet_height: Sheet height in pixels

        Returns:
            List of (u, v) in sheet UV space, bottom-left origin
        """
        return [
            (
                (placement.x + u * placement.width) / sheet_width,
                1.0 - (placement.y + (1.0 - v) * placement.height) / sheet_height,
            )
            for u, v in self.cropped_uv_coords
        ]


@dataclass(frozen=True)
class ToplevelTexture:
    """
    Minimal rectangular crop covering one or more polygons of one source image.

    Attributes:
        image_path: Source image path
        crop_bbox: Crop region in source pixel space
        downsample_factor: Max factor over all contributing polygons
        polygons: Pixel-space polygons of every contributor, used for masking
    """
    image_path: Path
    crop_bbox: BoundingBox
    downsample_factor: DownsampleFactor
    polygons: Tuple[Tuple[Point, ...], ...]

    @classmethod
    def from_polygon(cls, texture: PolygonMappedTexture) -> "ToplevelTexture":
        return cls(
            image_path=texture.image_path,
            crop_bbox=texture.bbox(),
            downsample_factor=texture.downsample_factor,
            polygons=(texture.pixel_coords,),
        )

    @property
    def width(self) -> int:
        return self.crop_bbox.width

    @property
    def height(self) -> int:
        return self.crop_bbox.height

    @property
    def scaled_size(self) -> Tuple[int, int]:
        """Size of the crop after downsampling, never below 1x1."""
        factor = self.downsample_factor.value()
        return max(1, int(self.width * factor)), max(1, int(self.height * factor))

    def overlaps(self, texture: PolygonMappedTexture) -> bool:
        return self.image_path == texture.image_path and self.crop_bbox.intersects(texture.bbox())

    def expand(self, texture: PolygonMappedTexture) -> Optional["ToplevelTexture"]:
        """
        Grow the crop to also cover `texture`.

        Returns None if `texture` samples a different image.
        """
        if self.image_path != texture.image_path:
            return None

        return ToplevelTexture(
            image_path=self.image_path,
            crop_bbox=self.crop_bbox.union(texture.bbox()),
            downsample_factor=_max_factor(self.downsample_factor, texture.downsample_factor),
            polygons=self.polygons + (texture.pixel_coords,),
        )

    def merge(self, other: "ToplevelTexture") -> Optional["ToplevelTexture"]:
        """Union of two toplevel textures of the same image, else None."""
        if self.image_path != other.image_path:
            return None

        return ToplevelTexture(
            image_path=self.image_path,
            crop_bbox=self.crop_bbox.union(other.crop_bbox),
            downsample_factor=_max_factor(self.downsample_factor, other.downsample_factor),
            polygons=self.polygons + other.polygons,
        )

    def get_child(self, texture: PolygonMappedTexture) -> ChildTexture:
        return ChildTexture(cropped_uv_coords=texture.get_cropped_uv_coords(self.crop_bbox))

    def cache_key(self) -> tuple:
        return (
            str(self.image_path),
            self.crop_bbox.as_tuple(),
            self.downsample_factor.value(),
            frozenset(self.polygons),
        )

    def crop(
        self,
        image: Image.Image,
        max_workers: Optional[int] = None,
        executor: Optional[Executor] = None
    ) -> Image.Image:
        """
        Crop, mask and downsample the region from the decoded source image.

        Pixels whose center lies outside every contributing polygon become
        fully transparent.

        Args:
            image: Decoded source image
            max_workers: Number of mask bands (default: CPU count)
            executor: Pool that runs the bands; a private pool is used if omitted

        Returns:
            RGBA image of size `scaled_size`
        """
        if image.mode != 'RGBA':
            image = image.convert('RGBA')

        box = self.crop_bbox
        region = image.crop((box.x, box.y, box.right, box.bottom))
        pixels = np.array(region)

        mask = self._compute_mask(max_workers, executor)
        pixels[~mask] = 0
        clipped = Image.fromarray(pixels)

        scaled = self.scaled_size
        if scaled != (self.width, self.height):
            clipped = clipped.resize(scaled, Image.BILINEAR)

        logger.debug(f"Cropped {self.image_path} {box.as_tuple()} to {clipped.size[0]}x{clipped.size[1]}")
        return clipped

    def _compute_mask(self, max_workers: Optional[int], executor: Optional[Executor]) -> np.ndarray:
        width, height = self.width, self.height
        origin = (self.crop_bbox.x, self.crop_bbox.y)
        workers = max_workers or os.cpu_count() or 1

        if workers == 1 or height < PARALLEL_MASK_MIN_ROWS:
            return polygon_mask(self.polygons, origin, width, 0, height)

        band = math.ceil(height / workers)
        mask = np.zeros((height, width), dtype=bool)

        def mask_band(row_start: int):
            row_end = min(row_start + band, height)
            return row_start, polygon_mask(self.polygons, origin, width, row_start, row_end)

        def collect(pool: Executor):
            # Each band carries its own row offset, so completion order is irrelevant
            futures = [pool.submit(mask_band, start) for start in range(0, height, band)]
            for future in as_completed(futures):
                row_start, rows = future.result()
                mask[row_start:row_start + rows.shape[0]] = rows

        if executor is not None:
            collect(executor)
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                collect(pool)

        return mask


def _max_factor(a: DownsampleFactor, b: DownsampleFactor) -> DownsampleFactor:
    return a if a.value() >= b.value() else b
