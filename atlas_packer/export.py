"""
Atlas sheet exporters.

Each exporter writes one encoded image file per sheet into a directory and
returns the written paths. The encoding (lossless PNG/WebP, lossy JPEG) is the
only thing that varies between strategies.
"""

import logging
from pathlib import Path
from typing import List, Sequence

from PIL import Image

logger = logging.getLogger(__name__)


class AtlasExporter:
    """Base exporter; subclasses set `extension` and implement `save`."""

    extension = ""

    def file_name(self, index: int) -> str:
        return f"atlas_{index}.{self.extension}"

    def save(self, image: Image.Image, path: Path) -> None:
        raise NotImplementedError

    def export(self, sheets: Sequence, output_dir) -> List[Path]:
        """
        Write every sheet into `output_dir`.

        Args:
            sheets: Objects with `index` and `image` (see AtlasSheet)
            output_dir: Target directory, created if missing

        Returns:
            Written paths in sheet order
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        paths = []
        for sheet in sheets:
            path = output_dir / self.file_name(sheet.index)
            self.save(sheet.image, path)
            logger.debug(f"Wrote sheet {sheet.index} to {path}")
            paths.append(path)
        return paths


class PngAtlasExporter(AtlasExporter):
    """Lossless PNG sheets."""

    extension = "png"

    def __init__(self, compress_level: int = 6):
        self.compress_level = compress_level

    def save(self, image: Image.Image, path: Path) -> None:
        image.save(path, format='PNG', compress_level=self.compress_level)


class JpegAtlasExporter(AtlasExporter):
    """
    Lossy JPEG sheets.

    JPEG has no alpha channel, so transparent areas are flattened onto
    `background`.
    """

    extension = "jpg"

    def __init__(self, quality: int = 90, background=(0, 0, 0)):
        self.quality = quality
        self.background = tuple(background)

    def save(self, image: Image.Image, path: Path) -> None:
        if image.mode == 'RGBA':
            flattened = Image.new('RGB', image.size, self.background)
            flattened.paste(image, mask=image.getchannel('A'))
            image = flattened
        elif image.mode != 'RGB':
            image = image.convert('RGB')
        image.save(path, format='JPEG', quality=self.quality)


class WebpAtlasExporter(AtlasExporter):
    """WebP sheets, lossless by default."""

    extension = "webp"

    def __init__(self, lossless: bool = True, quality: int = 90):
        self.lossless = lossless
        self.quality = quality

    def save(self, image: Image.Image, path: Path) -> None:
        image.save(path, format='WEBP', lossless=self.lossless, quality=self.quality)


EXPORTERS = {
    'png': PngAtlasExporter,
    'jpeg': JpegAtlasExporter,
    'jpg': JpegAtlasExporter,
    'webp': WebpAtlasExporter,
}


def get_exporter(name: str, **kwargs) -> AtlasExporter:
    """Look up an exporter by format name ('png', 'jpeg', 'webp')."""
    try:
        exporter_cls = EXPORTERS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unsupported atlas format: {name}. Supported: {', '.join(sorted(EXPORTERS))}"
        ) from None
    return exporter_cls(**kwargs)
