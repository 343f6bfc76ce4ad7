"""
atlas-packer Random Polygon Example

Generates ten noisy source textures and a few thousand random star-shaped
polygons on them, then packs everything onto 4096x4096 JPEG sheets and
reports how long each stage took.

Usage:
    python examples/random_polygons.py [--count 200] [--output output/random]
"""

import logging
import math
import random
import time
from pathlib import Path

import click
import numpy as np
from PIL import Image

from atlas_packer import JpegAtlasExporter, TexturePlacerConfig, pack_polygons


def make_sources(asset_dir: Path, count: int, size: int, seed: int):
    rng = np.random.default_rng(seed)
    asset_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for index in range(count):
        pixels = rng.integers(0, 256, size=(size, size, 3), dtype=np.uint8)
        path = asset_dir / f"{index + 1}.png"
        Image.fromarray(pixels).save(path)
        paths.append(path)
    return paths


def random_polygon(rng: random.Random, edge_radius: float = 0.3):
    """Star-shaped polygon around a random center, 3 to 12 vertices."""
    center_u = rng.uniform(edge_radius, 1.0 - edge_radius)
    center_v = rng.uniform(edge_radius, 1.0 - edge_radius)
    angles = sorted(rng.uniform(0.0, 2 * math.pi) for _ in range(rng.randint(3, 12)))
    coords = []
    for angle in angles:
        radius = rng.uniform(edge_radius * 0.1, edge_radius)
        coords.append((center_u + radius * math.cos(angle), center_v + radius * math.sin(angle)))
    return coords


@click.command()
@click.option('--count', default=200, show_default=True, help='Polygons per source image')
@click.option('--sources', default=10, show_default=True, help='Number of source images')
@click.option('--source-size', default=512, show_default=True, help='Source image edge length')
@click.option('--downsample', default=1.0, show_default=True, help='Downsample factor for every polygon')
@click.option('--output', default='output/random', show_default=True, help='Output directory')
@click.option('--seed', default=0, show_default=True, help='Random seed')
def main(count, sources, source_size, downsample, output, seed):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    output_dir = Path(output)
    rng = random.Random(seed)

    start = time.perf_counter()
    paths = make_sources(output_dir / "assets", sources, source_size, seed)
    click.echo(f"Generated {len(paths)} source image(s) in {time.perf_counter() - start:.2f}s")

    polygons = [
        {
            "id": f"texture_{i}_{j}",
            "image_path": str(path),
            "uv_coords": random_polygon(rng),
            "downsample_factor": downsample,
        }
        for i in range(count)
        for j, path in enumerate(paths, start=1)
    ]

    start = time.perf_counter()
    result = pack_polygons(
        polygons,
        output_dir=output_dir,
        config=TexturePlacerConfig(4096, 4096, padding=0),
        exporter=JpegAtlasExporter(),
    )
    elapsed = time.perf_counter() - start

    stats = result.cache_stats
    click.echo(f"Packed {len(result.mappings)} polygon(s) into {result.packed.sheet_count} sheet(s) in {elapsed:.2f}s")
    click.echo(f"Cache: {stats.loads} load(s), {stats.hits} hit(s), {stats.evictions} eviction(s)")
    if result.failures:
        click.secho(f"{len(result.failures)} polygon(s) failed", fg='yellow')


if __name__ == '__main__':
    main()
