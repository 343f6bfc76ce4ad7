"""
atlas-packer CLI - Command-line interface for packing polygon textures
"""

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from atlas_packer import __version__
from atlas_packer.exceptions import InvalidConfigError
from atlas_packer.export import get_exporter
from atlas_packer.pipeline import pack_polygons
from atlas_packer.place import TexturePlacerConfig
from atlas_packer.schema import PackManifest
from atlas_packer.texture.cache import DEFAULT_CACHE_BYTES

MANIFEST_NAME = "atlas.json"


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    atlas-packer - Pack UV-mapped polygon textures into atlas sheets.

    Examples:
        atlas-packer pack polygons.json -o out/
        atlas-packer pack polygons.json -o out/ --width 2048 --height 2048 --format jpeg
    """
    pass


@cli.command()
@click.argument('manifest_path')
@click.option('-o', '--output', required=True, help='Output directory for sheets and atlas.json')
@click.option('--width', default=4096, show_default=True, envvar='ATLAS_PACKER_WIDTH', help='Sheet width in pixels')
@click.option('--height', default=4096, show_default=True, envvar='ATLAS_PACKER_HEIGHT', help='Sheet height in pixels')
@click.option('--padding', default=0, show_default=True, envvar='ATLAS_PACKER_PADDING', help='Margin around every placed texture')
@click.option('--format', 'image_format', type=click.Choice(['png', 'jpeg', 'webp']), default='png', show_default=True, help='Sheet encoding')
@click.option('--quality', default=None, type=int, help='JPEG/WebP quality (1-100)')
@click.option('--cache-bytes', default=DEFAULT_CACHE_BYTES, show_default=True, envvar='ATLAS_PACKER_CACHE_BYTES', help='Texture cache budget in bytes')
@click.option('--workers', default=None, type=int, envvar='ATLAS_PACKER_WORKERS', help='Worker threads (default: automatic)')
@click.option('--verbose', '-v', is_flag=True, help='Show per-texture details')
def pack(manifest_path, output, width, height, padding, image_format, quality, cache_bytes, workers, verbose):
    """
    Pack the polygons of a JSON manifest into atlas sheets.

    The manifest lists polygons as {"id", "image_path", "uv_coords",
    "downsample_factor"}; relative image paths resolve against the
    manifest's directory.

    Examples:
        atlas-packer pack polygons.json -o out/
        atlas-packer pack polygons.json -o out/ --padding 2 --format webp -v
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        manifest_file = Path(manifest_path)
        if not manifest_file.exists():
            raise FileNotFoundError(f"Manifest not found: {manifest_path}")

        with open(manifest_file, 'r') as f:
            manifest = PackManifest.model_validate(json.load(f))

        config = TexturePlacerConfig(width=width, height=height, padding=padding)
        exporter_kwargs = {'quality': quality} if quality is not None and image_format != 'png' else {}
        exporter = get_exporter(image_format, **exporter_kwargs)

        click.echo(f"Packing {len(manifest.polygons)} polygon(s) into {width}x{height} sheets")

        result = pack_polygons(
            manifest.polygons,
            output_dir=output,
            config=config,
            exporter=exporter,
            cache_bytes=cache_bytes,
            max_workers=workers,
            base_dir=manifest_file.parent,
        )

        output_dir = Path(output)
        atlas_manifest = result.to_manifest(relative_to=output_dir)
        with open(output_dir / MANIFEST_NAME, 'w') as f:
            f.write(atlas_manifest.model_dump_json(indent=2))

        if verbose:
            click.echo("\nPlacements:")
            for mapping in result.mappings.values():
                p = mapping.placement
                click.echo(f"  {mapping.texture_id}: sheet {p.sheet_index} at ({p.x}, {p.y}) {p.width}x{p.height}")

        for failure in result.failures.values():
            click.secho(f"Failed: {failure.texture_id} ({failure.kind.value}): {failure.message}", fg='yellow', err=True)

        if result.failures:
            click.secho(
                f"✗ Packed {len(result.mappings)} of {len(manifest.polygons)} polygon(s) "
                f"into {len(result.sheet_paths)} sheet(s) in {output}",
                fg='red',
                err=True,
            )
            sys.exit(1)

        click.secho(f"✓ Success! Packed {len(result.mappings)} polygon(s) into {len(result.sheet_paths)} sheet(s) in {output}", fg='green')

    except FileNotFoundError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except json.JSONDecodeError as e:
        click.secho(f"Invalid JSON: {e}", fg='red', err=True)
        sys.exit(1)
    except ValidationError as e:
        click.secho(f"Invalid manifest: {e}", fg='red', err=True)
        sys.exit(1)
    except InvalidConfigError as e:
        click.secho(f"Invalid configuration: {e}", fg='red', err=True)
        sys.exit(1)
    except ValueError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except Exception as e:
        click.secho(f"Unexpected error: {e}", fg='red', err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
