"""
End-to-end atlas build: polygon records in, sheets and UV manifest out.

Stages:
    1. Validate records and placer config (fail fast, before any I/O)
    2. Read source sizes in parallel and build PolygonMappedTextures
    3. Register them with an AtlasPacker in input order (merge step)
    4. Crop in parallel, place sequentially, export
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from atlas_packer.exceptions import SourceReadError
from atlas_packer.export import AtlasExporter, PngAtlasExporter
from atlas_packer.pack import AtlasPacker, FailureKind, PackedAtlas, TextureFailure, TextureMapping
from atlas_packer.place import GuillotineTexturePlacer, TexturePlacerConfig
from atlas_packer.schema import AtlasManifest, FailureEntry, PolygonRecord, SheetEntry, TextureEntry
from atlas_packer.texture.cache import DEFAULT_CACHE_BYTES, CacheStats, TextureCache, TextureSizeCache
from atlas_packer.texture.textures import DownsampleFactor, PathLike, PolygonMappedTexture

logger = logging.getLogger(__name__)


@dataclass
class AtlasBuildResult:
    """
    Outcome of a build.

    Attributes:
        packed: Placements, mappings and failures
        sheet_paths: Written sheet files (empty when nothing was exported)
        cache_stats: Texture cache counters at the end of the run
    """
    packed: PackedAtlas
    sheet_paths: List[Path] = field(default_factory=list)
    cache_stats: Optional[CacheStats] = None

    @property
    def mappings(self) -> Dict[str, TextureMapping]:
        return self.packed.mappings

    @property
    def failures(self) -> Dict[str, TextureFailure]:
        return self.packed.failures

    def to_manifest(self, relative_to: Optional[PathLike] = None) -> AtlasManifest:
        """
        Build the output manifest.

        Args:
            relative_to: If given, sheet paths are written relative to this directory
        """
        config = self.packed.config
        sheets = []
        for index in range(self.packed.sheet_count):
            path = None
            if index < len(self.sheet_paths):
                sheet_path = self.sheet_paths[index]
                path = os.path.relpath(sheet_path, relative_to) if relative_to else str(sheet_path)
            sheets.append(SheetEntry(index=index, path=path, width=config.width, height=config.height))

        return AtlasManifest(
            sheets=sheets,
            textures=[
                TextureEntry(id=m.texture_id, sheet_index=m.sheet_index, uv_coords=m.uv_coords)
                for m in self.packed.mappings.values()
            ],
            failures=[
                FailureEntry(id=f.texture_id, kind=f.kind.value, message=f.message)
                for f in self.packed.failures.values()
            ],
        )


def pack_polygons(
    polygons: Iterable[Union[PolygonRecord, dict]],
    output_dir: Optional[PathLike] = None,
    config: Optional[TexturePlacerConfig] = None,
    exporter: Optional[AtlasExporter] = None,
    cache_bytes: int = DEFAULT_CACHE_BYTES,
    max_workers: Optional[int] = None,
    base_dir: Optional[PathLike] = None
) -> AtlasBuildResult:
    """
    Pack polygon records into atlas sheets.

    Args:
        polygons: PolygonRecord instances or dicts with the same fields
        output_dir: Where to write sheets (None skips export)
        config: Sheet size and padding (default: 4096x4096, no padding)
        exporter: Sheet encoder (default: PNG)
        cache_bytes: Texture cache budget
        max_workers: Threads for size reads and crops (default: executor default)
        base_dir: Directory that relative image paths resolve against

    Returns:
        AtlasBuildResult with per-polygon mappings and failures

    Raises:
        pydantic.ValidationError: If a record is malformed
        InvalidConfigError: If the cache budget is invalid
        ValueError: If polygon ids are not unique
    """
    records = [r if isinstance(r, PolygonRecord) else PolygonRecord.model_validate(r) for r in polygons]
    ids = [r.id for r in records]
    if len(set(ids)) != len(ids):
        raise ValueError("Polygon ids must be unique")

    config = config or TexturePlacerConfig()
    size_cache = TextureSizeCache()
    texture_cache = TextureCache(cache_bytes, size_cache=size_cache, crop_workers=max_workers)

    def build(record: PolygonRecord):
        path = Path(record.image_path)
        if base_dir is not None and not path.is_absolute():
            path = Path(base_dir) / path
        try:
            size = size_cache.get_or_insert(path)
        except SourceReadError as e:
            return record.id, None, e
        texture = PolygonMappedTexture(
            path, size, tuple(record.uv_coords), DownsampleFactor(record.downsample_factor)
        )
        return record.id, texture, None

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        built = list(executor.map(build, records))

    packer = AtlasPacker()
    early_failures: Dict[str, TextureFailure] = {}
    for texture_id, texture, error in built:
        if error is not None:
            logger.warning(f"Skipping {texture_id}: {error}")
            early_failures[texture_id] = TextureFailure(texture_id, FailureKind.SOURCE_READ, str(error))
            continue
        packer.add_texture(texture_id, texture)

    logger.info(f"Merged {len(packer)} polygon(s) into {len(packer.toplevel_textures)} crop(s)")

    with texture_cache:
        packed = packer.pack(GuillotineTexturePlacer(config), texture_cache, max_workers=max_workers)
    failures = {**early_failures, **packed.failures}
    packed.failures = {tid: failures[tid] for tid in ids if tid in failures}

    sheet_paths: List[Path] = []
    if output_dir is not None:
        sheet_paths = packed.export(exporter or PngAtlasExporter(), output_dir)

    return AtlasBuildResult(packed=packed, sheet_paths=sheet_paths, cache_stats=texture_cache.stats)
