"""
Bounded texture caches shared across packing tasks.

TextureCache keeps decoded source images and masked crops under a fixed byte
budget with LRU eviction. TextureSizeCache memoizes source image dimensions,
which every UV -> pixel conversion needs.

Both caches are safe to share between threads and run at most one load per
key: the first caller for a key does the work, concurrent callers for the
same key wait on its Future and receive the same result (or exception).
"""

import logging
import os
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from atlas_packer.exceptions import InvalidConfigError, SourceReadError
from atlas_packer.texture.textures import (
    DownsampleFactor,
    PathLike,
    PolygonMappedTexture,
    ToplevelTexture,
)

logger = logging.getLogger(__name__)

# Region marker for cache entries holding a whole decoded source image
WHOLE_IMAGE = "whole"

DEFAULT_CACHE_BYTES = 100_000_000


def load_image(image_path: PathLike) -> Image.Image:
    """Decode a source image into RGBA, wrapping decode failures."""
    try:
        with Image.open(image_path) as img:
            img.load()
            return img.convert('RGBA')
    except (FileNotFoundError, UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise SourceReadError(image_path, str(e)) from e


def read_image_size(image_path: PathLike) -> Tuple[int, int]:
    """Read pixel dimensions from the image header without decoding pixels."""
    try:
        with Image.open(image_path) as img:
            return img.size
    except (FileNotFoundError, UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise SourceReadError(image_path, str(e)) from e


def image_nbytes(image: Image.Image) -> int:
    return image.width * image.height * len(image.getbands())


@dataclass
class CacheStats:
    """Snapshot of cache counters"""
    hits: int = 0
    misses: int = 0
    loads: int = 0
    evictions: int = 0
    uncached: int = 0
    resident_bytes: int = 0
    entries: int = 0


class _SingleFlight:
    """Tracks in-flight loads; callers serialize access with their own lock."""

    def __init__(self):
        self._pending: Dict[Hashable, Future] = {}

    def claim(self, key: Hashable) -> Tuple[Future, bool]:
        """Return (future, owner). The owner must resolve the future and release the key."""
        future = self._pending.get(key)
        if future is not None:
            return future, False
        future = Future()
        self._pending[key] = future
        return future, True

    def release(self, key: Hashable) -> None:
        self._pending.pop(key, None)


class TextureSizeCache:
    """
    Memoizes source image dimensions keyed by path.

    Example:
        >>> sizes = TextureSizeCache()
        >>> width, height = sizes.get_or_insert("textures/wall.png")
    """

    def __init__(self, size_reader: Optional[Callable[[PathLike], Tuple[int, int]]] = None):
        self._size_reader = size_reader or read_image_size
        self._lock = threading.Lock()
        self._sizes: Dict[str, Tuple[int, int]] = {}
        self._flights = _SingleFlight()

    def get_or_insert(self, image_path: PathLike) -> Tuple[int, int]:
        key = str(image_path)

        with self._lock:
            size = self._sizes.get(key)
            if size is not None:
                return size
            future, owner = self._flights.claim(key)

        if not owner:
            return future.result()

        try:
            size = tuple(self._size_reader(image_path))
        except BaseException as e:
            with self._lock:
                self._flights.release(key)
            future.set_exception(e)
            raise

        with self._lock:
            self._sizes[key] = size
            self._flights.release(key)
        future.set_result(size)
        return size

    def __len__(self) -> int:
        with self._lock:
            return len(self._sizes)


class TextureCache:
    """
    Byte-bounded LRU cache of decoded source images and cropped textures.

    Entries are keyed by (source path, region, downsample factor); cropped
    entries also include the contributing polygons because they are masked.
    Total resident bytes never exceed `max_bytes`. An entry larger than the
    whole budget is returned to the caller without being cached.

    Cached images are shared between callers and must be treated as read-only.

    Example:
        >>> cache = TextureCache(100_000_000)
        >>> crop = cache.get_or_insert([(0.1, 0.1), (0.9, 0.1), (0.5, 0.9)], "wall.png", 0.5)
    """

    def __init__(
        self,
        max_bytes: int = DEFAULT_CACHE_BYTES,
        image_loader: Optional[Callable[[PathLike], Image.Image]] = None,
        size_cache: Optional[TextureSizeCache] = None,
        crop_workers: Optional[int] = None
    ):
        """
        Initialize the cache.

        Args:
            max_bytes: Resident byte budget (positive integer)
            image_loader: Decodes a source path into an image (default: Pillow, RGBA)
            size_cache: Shared source size cache (created if omitted)
            crop_workers: Size of the pool shared by every crop for polygon masking
                (default: CPU count)
        """
        if isinstance(max_bytes, bool) or not isinstance(max_bytes, int) or max_bytes <= 0:
            raise InvalidConfigError(f"Cache budget must be a positive integer, got {max_bytes!r}")

        self.max_bytes = max_bytes
        self.size_cache = size_cache or TextureSizeCache()
        self.crop_workers = crop_workers
        self._image_loader = image_loader or load_image

        self._lock = threading.Lock()
        self._entries: "OrderedDict[Hashable, Tuple[Image.Image, int]]" = OrderedDict()
        self._resident_bytes = 0
        self._flights = _SingleFlight()
        self._stats = CacheStats()
        self._mask_workers = crop_workers or os.cpu_count() or 1
        # Shared by every crop; threads start on first use
        self._mask_executor = ThreadPoolExecutor(
            max_workers=self._mask_workers, thread_name_prefix="atlas-mask"
        )

    def __enter__(self) -> "TextureCache":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        """Stop the masking pool. Crops requested afterwards raise RuntimeError."""
        self._mask_executor.shutdown(wait=True)

    def get_or_insert(
        self,
        uv_coords: Sequence[Tuple[float, float]],
        image_path: PathLike,
        downsample: float
    ) -> Image.Image:
        """
        Return the masked, downsampled crop of one UV polygon.

        Raises:
            InvalidConfigError: If downsample is outside [0, 1]
            SourceReadError: If the source image cannot be read
        """
        factor = DownsampleFactor(downsample)
        size = self.size_cache.get_or_insert(image_path)
        texture = PolygonMappedTexture(image_path, size, tuple(uv_coords), factor)
        return self.get_or_insert_toplevel(ToplevelTexture.from_polygon(texture))

    def get_or_insert_toplevel(self, texture: ToplevelTexture) -> Image.Image:
        """Return the crop of a (possibly merged) toplevel texture."""
        def load():
            source = self.get_source(texture.image_path)
            return texture.crop(source, max_workers=self._mask_workers, executor=self._mask_executor)

        return self._get_or_load(("crop",) + texture.cache_key(), load)

    def get_source(self, image_path: PathLike) -> Image.Image:
        """Return the whole decoded source image."""
        key = ("source", str(image_path), WHOLE_IMAGE, 1.0)
        return self._get_or_load(key, lambda: self._image_loader(image_path))

    @property
    def resident_bytes(self) -> int:
        with self._lock:
            return self._resident_bytes

    @property
    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                loads=self._stats.loads,
                evictions=self._stats.evictions,
                uncached=self._stats.uncached,
                resident_bytes=self._resident_bytes,
                entries=len(self._entries),
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._resident_bytes = 0

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _get_or_load(self, key: Hashable, loader: Callable[[], Image.Image]) -> Image.Image:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
                self._stats.hits += 1
                logger.debug(f"Cache hit {key[:3]}")
                return entry[0]
            self._stats.misses += 1
            future, owner = self._flights.claim(key)

        if not owner:
            return future.result()

        try:
            image = loader()
        except BaseException as e:
            with self._lock:
                self._flights.release(key)
            future.set_exception(e)
            raise

        with self._lock:
            self._stats.loads += 1
            self._store(key, image)
            self._flights.release(key)
        future.set_result(image)
        return image

    def _store(self, key: Hashable, image: Image.Image) -> None:
        """Insert under the lock, evicting LRU entries to stay within budget."""
        nbytes = image_nbytes(image)
        if nbytes > self.max_bytes:
            self._stats.uncached += 1
            logger.warning(
                f"Texture entry {key[:3]} needs {nbytes} bytes, over the "
                f"{self.max_bytes} byte cache budget; serving it uncached"
            )
            return

        while self._entries and self._resident_bytes + nbytes > self.max_bytes:
            evicted_key, (_, evicted_bytes) = self._entries.popitem(last=False)
            self._resident_bytes -= evicted_bytes
            self._stats.evictions += 1
            logger.debug(f"Evicted {evicted_key[:3]} ({evicted_bytes} bytes)")

        self._entries[key] = (image, nbytes)
        self._resident_bytes += nbytes
        logger.debug(f"Cached {key[:3]} ({nbytes} bytes, {self._resident_bytes} resident)")
