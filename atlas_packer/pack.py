"""
Atlas packer: merges polygon references, places their crops, maps UVs.

Polygons are registered first (cheap, thread-safe). Overlapping polygons of
the same source image are coalesced into one ToplevelTexture so the shared
pixels are stored once. `pack()` then crops every toplevel texture in
parallel through the TextureCache and places the crops one by one, in
registration order, so the layout is reproducible.

Per-texture failures (unreadable source, crop larger than a sheet) are
recorded for every polygon of the affected group and excluded from the
atlas; the remaining textures are packed normally.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import Image

from atlas_packer.exceptions import OversizeTextureError, SourceReadError
from atlas_packer.place import GuillotineTexturePlacer, PlacedTextureInfo, TexturePlacerConfig
from atlas_packer.texture.cache import TextureCache
from atlas_packer.texture.textures import PathLike, PolygonMappedTexture, ToplevelTexture

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    SOURCE_READ = "source_read"
    OVERSIZE = "oversize"


@dataclass(frozen=True)
class TextureFailure:
    """A polygon that was left out of the atlas, and why."""
    texture_id: str
    kind: FailureKind
    message: str


@dataclass(frozen=True)
class TextureMapping:
    """
    Final location of one input polygon.

    Attributes:
        texture_id: Input polygon id
        sheet_index: Sheet holding the polygon's toplevel crop
        uv_coords: Polygon UVs in sheet space (bottom-left origin)
        placement: Placement of the toplevel crop the polygon belongs to
    """
    texture_id: str
    sheet_index: int
    uv_coords: List[Tuple[float, float]]
    placement: PlacedTextureInfo


@dataclass
class AtlasSheet:
    """One composed sheet image."""
    index: int
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height


@dataclass
class PlacedCrop:
    placement: PlacedTextureInfo
    image: Image.Image
    texture: ToplevelTexture


@dataclass(eq=False)
class _TextureGroup:
    toplevel: ToplevelTexture
    members: List[Tuple[str, PolygonMappedTexture]] = field(default_factory=list)


@dataclass
class PackedAtlas:
    """Result of `AtlasPacker.pack()`: placements, UV mappings and failures."""
    config: TexturePlacerConfig
    sheet_count: int
    crops: List[PlacedCrop]
    mappings: Dict[str, TextureMapping]
    failures: Dict[str, TextureFailure]

    @property
    def placements(self) -> List[PlacedTextureInfo]:
        return [crop.placement for crop in self.crops]

    @property
    def succeeded_ids(self) -> List[str]:
        return list(self.mappings)

    @property
    def failed_ids(self) -> List[str]:
        return list(self.failures)

    def compose_sheets(self) -> List[AtlasSheet]:
        """Paste every placed crop into transparent sheet images."""
        size = (self.config.width, self.config.height)
        sheets = [AtlasSheet(index, Image.new('RGBA', size, (0, 0, 0, 0))) for index in range(self.sheet_count)]
        for crop in self.crops:
            sheets[crop.placement.sheet_index].image.paste(crop.image, (crop.placement.x, crop.placement.y))
        return sheets

    def export(self, exporter, output_dir: PathLike) -> List[Path]:
        """
        Compose the sheets and hand them to an exporter.

        Args:
            exporter: AtlasExporter strategy (PNG, JPEG, WebP...)
            output_dir: Directory receiving one file per sheet

        Returns:
            Written file paths, indexed by sheet
        """
        paths = exporter.export(self.compose_sheets(), output_dir)
        logger.info(f"Exported {len(paths)} sheet(s) to {output_dir}")
        return paths


class AtlasPacker:
    """
    Collects polygon textures, merging overlapping references to one image.

    Example:
        >>> packer = AtlasPacker()
        >>> packer.add_texture("face_0", PolygonMappedTexture("dice.png", (512, 512), uvs, DownsampleFactor(1.0)))
        >>> packed = packer.pack(GuillotineTexturePlacer(TexturePlacerConfig(4096, 4096)), TextureCache())
        >>> packed.export(PngAtlasExporter(), "out/")
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._groups: List[_TextureGroup] = []
        self._groups_by_path: Dict[Path, List[_TextureGroup]] = {}
        self._order: List[str] = []
        self._ids = set()

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)

    @property
    def toplevel_textures(self) -> List[ToplevelTexture]:
        with self._lock:
            return [group.toplevel for group in self._groups]

    def add_texture(self, texture_id: str, texture: PolygonMappedTexture) -> None:
        """
        Register a polygon, merging it into an overlapping toplevel texture if any.

        Raises:
            ValueError: If `texture_id` was already added
        """
        with self._lock:
            if texture_id in self._ids:
                raise ValueError(f"Duplicate texture id: {texture_id}")
            self._ids.add(texture_id)
            self._order.append(texture_id)

            groups = self._groups_by_path.setdefault(texture.image_path, [])
            target = next((g for g in groups if g.toplevel.overlaps(texture)), None)

            if target is None:
                group = _TextureGroup(ToplevelTexture.from_polygon(texture), [(texture_id, texture)])
                groups.append(group)
                self._groups.append(group)
                return

            target.toplevel = target.toplevel.expand(texture)
            target.members.append((texture_id, texture))
            self._absorb_overlapping(target, groups)

    def _absorb_overlapping(self, target: _TextureGroup, groups: List[_TextureGroup]) -> None:
        """Merge groups that the grown `target` now overlaps, until none do."""
        merged = True
        while merged:
            merged = False
            for other in groups:
                if other is target or not other.toplevel.crop_bbox.intersects(target.toplevel.crop_bbox):
                    continue
                target.toplevel = target.toplevel.merge(other.toplevel)
                target.members.extend(other.members)
                groups.remove(other)
                self._groups.remove(other)
                merged = True
                break

    def pack(
        self,
        placer: GuillotineTexturePlacer,
        texture_cache: TextureCache,
        max_workers: Optional[int] = None
    ) -> PackedAtlas:
        """
        Crop every toplevel texture and place it.

        Cropping runs on a thread pool; placement is sequential.

        Args:
            placer: Placer that assigns sheet positions
            texture_cache: Cache resolving crops (shared across tasks)
            max_workers: Crop threads (default: executor default)

        Returns:
            PackedAtlas with mappings for placed polygons and failures for the rest
        """
        with self._lock:
            groups = list(self._groups)
            order = list(self._order)

        def resolve(group: _TextureGroup):
            try:
                return texture_cache.get_or_insert_toplevel(group.toplevel), None
            except SourceReadError as e:
                return None, e

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            resolved = list(executor.map(resolve, groups))

        config = placer.config
        crops: List[PlacedCrop] = []
        mappings: Dict[str, TextureMapping] = {}
        failures: Dict[str, TextureFailure] = {}

        for group, (image, error) in zip(groups, resolved):
            if error is not None:
                self._record_failure(failures, group, FailureKind.SOURCE_READ, str(error))
                continue

            try:
                # A merged crop is placed under the id of its first polygon
                info = placer.add_texture(group.members[0][0], image)
            except OversizeTextureError as e:
                self._record_failure(failures, group, FailureKind.OVERSIZE, str(e))
                continue

            crops.append(PlacedCrop(placement=info, image=image, texture=group.toplevel))
            for texture_id, texture in group.members:
                child = group.toplevel.get_child(texture)
                mappings[texture_id] = TextureMapping(
                    texture_id=texture_id,
                    sheet_index=info.sheet_index,
                    uv_coords=child.to_sheet_uv_coords(info, config.width, config.height),
                    placement=info,
                )

        mappings = {tid: mappings[tid] for tid in order if tid in mappings}
        failures = {tid: failures[tid] for tid in order if tid in failures}

        logger.info(
            f"Packed {len(mappings)} texture(s) from {len(crops)} crop(s) onto "
            f"{placer.sheet_count} sheet(s); {len(failures)} failed"
        )
        return PackedAtlas(
            config=config,
            sheet_count=placer.sheet_count,
            crops=crops,
            mappings=mappings,
            failures=failures,
        )

    @staticmethod
    def _record_failure(
        failures: Dict[str, TextureFailure],
        group: _TextureGroup,
        kind: FailureKind,
        message: str
    ) -> None:
        logger.warning(f"Skipping {len(group.members)} texture(s) from {group.toplevel.image_path}: {message}")
        for texture_id, _ in group.members:
            failures[texture_id] = TextureFailure(texture_id, kind, message)
