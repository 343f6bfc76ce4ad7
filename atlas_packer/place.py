"""
Guillotine texture placer.

Places rectangles onto fixed-size sheets. Each sheet keeps a list of free
rectangles; a placement consumes the best-fitting free rectangle and splits
what is left of it with one straight cut into at most two new free
rectangles. Sheets are opened lazily when nothing fits.

Placement rules (deterministic):
    - Candidate free rectangles are ranked by (leftover area, sheet index, y, x)
    - The leftover space is split along the shorter leftover axis
    - The texture sits at the free rectangle's origin; padding trails it on
      the right and bottom
"""

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

from atlas_packer.exceptions import InvalidConfigError, OversizeTextureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TexturePlacerConfig:
    """Sheet dimensions and padding shared by every sheet of a placer."""
    width: int = 4096
    height: int = 4096
    padding: int = 0

    def __post_init__(self):
        for name in ('width', 'height'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidConfigError(f"Sheet {name} must be a positive integer, got {value!r}")
        if isinstance(self.padding, bool) or not isinstance(self.padding, int) or self.padding < 0:
            raise InvalidConfigError(f"Padding must be a non-negative integer, got {self.padding!r}")


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class PlacedTextureInfo:
    """Where a texture landed. Width/height exclude padding."""
    id: str
    sheet_index: int
    x: int
    y: int
    width: int
    height: int


class GuillotineTexturePlacer:
    """
    Places sized textures onto as many sheets as needed.

    Example:
        >>> placer = GuillotineTexturePlacer(TexturePlacerConfig(512, 512, padding=1))
        >>> info = placer.add_texture("wall", image)   # anything with .width/.height
        >>> info.sheet_index, info.x, info.y
        (0, 0, 0)
    """

    def __init__(self, config: TexturePlacerConfig):
        self.config = config
        self._lock = threading.Lock()
        self._free: List[List[Rect]] = []
        self._placements: List[PlacedTextureInfo] = []

    @property
    def sheet_count(self) -> int:
        return len(self._free)

    @property
    def placements(self) -> List[PlacedTextureInfo]:
        """All placements, in placement order."""
        with self._lock:
            return list(self._placements)

    def free_rectangles(self, sheet_index: int) -> List[Rect]:
        with self._lock:
            return list(self._free[sheet_index])

    def add_texture(self, texture_id: str, texture) -> PlacedTextureInfo:
        """
        Place a texture and return its position.

        Args:
            texture_id: Identifier recorded in the placement
            texture: Object with integer `width` and `height`

        Raises:
            OversizeTextureError: If the padded texture exceeds an empty sheet
        """
        width, height = int(texture.width), int(texture.height)
        padded_w = width + self.config.padding
        padded_h = height + self.config.padding

        if padded_w > self.config.width or padded_h > self.config.height:
            raise OversizeTextureError(
                texture_id, (padded_w, padded_h), (self.config.width, self.config.height)
            )

        with self._lock:
            candidate = self._find_free_rect(padded_w, padded_h)
            if candidate is None:
                self._free.append([Rect(0, 0, self.config.width, self.config.height)])
                logger.debug(f"Opened sheet {len(self._free) - 1} for {texture_id}")
                candidate = (len(self._free) - 1, 0)

            sheet_index, rect_index = candidate
            free_rect = self._free[sheet_index].pop(rect_index)
            self._free[sheet_index].extend(_split(free_rect, padded_w, padded_h))

            info = PlacedTextureInfo(
                id=texture_id,
                sheet_index=sheet_index,
                x=free_rect.x,
                y=free_rect.y,
                width=width,
                height=height,
            )
            self._placements.append(info)

        logger.debug(f"Placed {texture_id} ({width}x{height}) on sheet {sheet_index} at ({info.x}, {info.y})")
        return info

    def _find_free_rect(self, width: int, height: int) -> Optional[Tuple[int, int]]:
        """Best-area-fit over every sheet; returns (sheet index, free rect index)."""
        best_score = None
        best = None
        for sheet_index, free_rects in enumerate(self._free):
            for rect_index, rect in enumerate(free_rects):
                if width > rect.width or height > rect.height:
                    continue
                score = (rect.area - width * height, sheet_index, rect.y, rect.x)
                if best_score is None or score < best_score:
                    best_score = score
                    best = (sheet_index, rect_index)
        return best


def _split(free_rect: Rect, width: int, height: int) -> List[Rect]:
    """Guillotine cut of the space left in `free_rect` after placing width x height at its origin."""
    leftover_w = free_rect.width - width
    leftover_h = free_rect.height - height

    if leftover_w <= leftover_h:
        # Horizontal cut: the bottom piece spans the full width
        right = Rect(free_rect.x + width, free_rect.y, leftover_w, height)
        bottom = Rect(free_rect.x, free_rect.y + height, free_rect.width, leftover_h)
    else:
        # Vertical cut: the right piece spans the full height
        right = Rect(free_rect.x + width, free_rect.y, leftover_w, free_rect.height)
        bottom = Rect(free_rect.x, free_rect.y + height, width, leftover_h)

    return [r for r in (right, bottom) if r.area > 0]
