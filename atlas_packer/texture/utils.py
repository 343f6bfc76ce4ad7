"""
Geometry helpers for UV polygons.

UV coordinates use a bottom-left origin (OpenGL / glTF convention) while pixel
coordinates use the top-left origin of the image buffer, so every conversion
flips V.
"""

from typing import Iterable, List, Sequence, Tuple

import numpy as np

Point = Tuple[int, int]


def uv_to_pixel_coords(
    uv_coords: Iterable[Tuple[float, float]],
    image_width: int,
    image_height: int
) -> List[Point]:
    """
    Convert normalized UV pairs to integer pixel coordinates.

    UVs outside [0, 1] are not clamped; they simply land outside the image.
    """
    return [
        (int(round(u * image_width)), int(round((1.0 - v) * image_height)))
        for u, v in uv_coords
    ]


def calc_bbox(points: Sequence[Point]) -> Tuple[int, int, int, int]:
    """Return (min_x, min_y, max_x, max_y) of a non-empty point set."""
    if not points:
        raise ValueError("Cannot compute a bounding box of an empty point set")

    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return min(xs), min(ys), max(xs), max(ys)


def points_in_polygon(xs: np.ndarray, ys: np.ndarray, polygon: Sequence[Tuple[float, float]]) -> np.ndarray:
    """
    Even-odd ray casting test, vectorized over arrays of sample points.

    Args:
        xs: X coordinates of the samples (any shape)
        ys: Y coordinates of the samples (same shape as xs)
        polygon: Polygon vertices, implicitly closed

    Returns:
        Boolean array shaped like xs, True where the sample is inside
    """
    inside = np.zeros(np.shape(xs), dtype=bool)
    n = len(polygon)
    if n < 3:
        return inside

    j = n - 1
    for i in range(n):
        xi, yi = polygon[i]
        xj, yj = polygon[j]
        j = i
        # Horizontal edges never cross a horizontal ray
        if yi == yj:
            continue
        crosses = (yi > ys) != (yj > ys)
        x_at_y = (xj - xi) * (ys - yi) / (yj - yi) + xi
        inside ^= crosses & (xs < x_at_y)

    return inside


def polygon_mask(
    polygons: Sequence[Sequence[Point]],
    origin: Point,
    width: int,
    row_start: int,
    row_end: int
) -> np.ndarray:
    """
    Containment mask for a horizontal band of a crop region.

    Pixel (px, py) of the band is sampled at its center, translated back into
    source-image pixel space via `origin`. A pixel is kept if its center falls
    inside any of the polygons.

    Returns:
        Boolean array of shape (row_end - row_start, width)
    """
    ox, oy = origin
    cols = np.arange(width, dtype=np.float64) + ox + 0.5
    rows = np.arange(row_start, row_end, dtype=np.float64) + oy + 0.5
    xs, ys = np.meshgrid(cols, rows)

    mask = np.zeros(xs.shape, dtype=bool)
    for polygon in polygons:
        mask |= points_in_polygon(xs, ys, polygon)
    return mask
