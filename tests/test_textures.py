"""
Tests for the crop / UV-remap pipeline (PolygonMappedTexture -> ToplevelTexture -> ChildTexture)
"""
import itertools
import math
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import numpy as np
import pytest
from PIL import Image

from atlas_packer.exceptions import InvalidConfigError
from atlas_packer.texture import (
    BoundingBox,
    DownsampleFactor,
    PolygonMappedTexture,
    ToplevelTexture,
    uv_to_pixel_coords,
)
from conftest import pattern_image, square


def polygon(uv_coords, path="source.png", size=(512, 512), factor=1.0):
    return PolygonMappedTexture(path, size, uv_coords, DownsampleFactor(factor))


class TestDownsampleFactor:
    """Range validation of downsample factors"""

    @pytest.mark.parametrize("value", [0.0, 0.25, 0.5, 0.999, 1.0])
    def test_valid_factors(self, value):
        assert DownsampleFactor(value).value() == value

    @pytest.mark.parametrize("value", [-0.01, 1.01, 2.0, math.nan])
    def test_out_of_range_factors_raise(self, value):
        with pytest.raises(InvalidConfigError):
            DownsampleFactor(value)

    def test_invalid_factor_is_a_value_error(self):
        with pytest.raises(ValueError):
            DownsampleFactor(-1)


class TestPolygonMappedTexture:
    """Pixel coordinates and bbox overlap"""

    def test_pixel_coords_derived_from_uv(self):
        texture = polygon([(0.0, 1.0), (0.25, 1.0), (0.25, 0.75)])
        assert texture.pixel_coords == ((0, 0), (128, 0), (128, 128))
        assert texture.bbox() == BoundingBox(0, 0, 128, 128)

    def test_empty_polygon_raises(self):
        with pytest.raises(ValueError):
            polygon([])

    @pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf])
    def test_non_finite_uv_raises(self, bad):
        with pytest.raises(InvalidConfigError):
            polygon([(0.0, 0.0), (bad, 0.0), (1.0, 1.0)])

    def test_bbox_is_clamped_to_source(self):
        texture = polygon(square(-1.0, 0.0, 1.0, 1.0), size=(200, 200))
        assert texture.bbox() == BoundingBox(0, 0, 200, 200)

    def test_bbox_entirely_outside_collapses_to_border_pixel(self):
        texture = polygon(square(1.5, 0.0, 2.0, 0.5), size=(100, 100))
        assert texture.bbox() == BoundingBox(99, 50, 1, 50)

    def test_overlapping_bboxes(self):
        a = polygon(square(0.0, 0.75, 0.25, 1.0))
        b = polygon(square(0.2, 0.6, 0.5, 0.9))
        assert a.bbox_overlaps(b)
        assert b.bbox_overlaps(a)

    def test_disjoint_bboxes(self):
        a = polygon(square(0.0, 0.75, 0.25, 1.0))
        c = polygon(square(0.6, 0.1, 0.9, 0.3))
        assert not a.bbox_overlaps(c)
        assert not c.bbox_overlaps(a)

    def test_edge_touching_bboxes_overlap(self):
        a = polygon(square(0.0, 0.75, 0.25, 1.0))
        d = polygon(square(0.25, 0.75, 0.5, 1.0))
        assert a.bbox().right == d.bbox().x
        assert a.bbox_overlaps(d)

    def test_different_sources_never_overlap(self):
        a = polygon(square(0.0, 0.0, 1.0, 1.0), path="a.png")
        b = polygon(square(0.0, 0.0, 1.0, 1.0), path="b.png")
        assert not a.bbox_overlaps(b)


class TestToplevelExpand:
    """Coalescing polygons into one crop"""

    def test_expand_different_source_returns_none(self):
        toplevel = ToplevelTexture.from_polygon(polygon(square(0.0, 0.0, 0.5, 0.5), path="a.png"))
        assert toplevel.expand(polygon(square(0.0, 0.0, 0.5, 0.5), path="b.png")) is None

    def test_expand_unions_bbox_and_takes_max_factor(self):
        a = polygon(square(0.0, 0.5, 0.5, 1.0), factor=0.25)
        b = polygon(square(0.25, 0.25, 0.75, 0.75), factor=0.75)

        expanded = ToplevelTexture.from_polygon(a).expand(b)

        assert expanded.crop_bbox == a.bbox().union(b.bbox())
        assert expanded.crop_bbox == BoundingBox(0, 0, 384, 384)
        assert expanded.downsample_factor.value() == 0.75
        assert len(expanded.polygons) == 2

    def test_expand_does_not_mutate(self):
        a = polygon(square(0.0, 0.5, 0.5, 1.0))
        toplevel = ToplevelTexture.from_polygon(a)
        toplevel.expand(polygon(square(0.5, 0.0, 1.0, 0.5)))
        assert toplevel.crop_bbox == a.bbox()

    def test_expand_is_order_independent(self):
        """Test that any merge order yields the union of all bboxes"""
        textures = [
            polygon(square(0.1, 0.1, 0.3, 0.3)),
            polygon(square(0.2, 0.2, 0.6, 0.4), factor=0.5),
            polygon([(0.5, 0.5), (0.9, 0.55), (0.7, 0.95)]),
            polygon(square(0.05, 0.6, 0.2, 0.7), factor=0.2),
        ]
        expected = textures[0].bbox()
        for texture in textures[1:]:
            expected = expected.union(texture.bbox())

        for order in itertools.permutations(textures):
            toplevel = ToplevelTexture.from_polygon(order[0])
            for texture in order[1:]:
                toplevel = toplevel.expand(texture)
            assert toplevel.crop_bbox == expected
            assert toplevel.downsample_factor.value() == 1.0

    def test_merge_toplevels(self):
        left = ToplevelTexture.from_polygon(polygon(square(0.0, 0.0, 0.25, 0.25)))
        right = ToplevelTexture.from_polygon(polygon(square(0.75, 0.75, 1.0, 1.0), factor=0.5))
        merged = left.merge(right)
        assert merged.crop_bbox == BoundingBox(0, 0, 512, 512)
        assert len(merged.polygons) == 2
        assert left.merge(ToplevelTexture.from_polygon(polygon(square(0, 0, 1, 1), path="x.png"))) is None


class TestToplevelCrop:
    """Cropping, polygon masking and downsampling"""

    def test_triangle_masks_outside_pixels(self):
        source = Image.new('RGBA', (8, 8), (255, 0, 0, 255))
        texture = polygon([(0.0, 1.0), (1.0, 1.0), (0.0, 0.0)], size=(8, 8))
        cropped = ToplevelTexture.from_polygon(texture).crop(source)

        assert cropped.size == (8, 8)
        assert cropped.getpixel((0, 0)) == (255, 0, 0, 255)
        assert cropped.getpixel((7, 7)) == (0, 0, 0, 0)

    def test_full_quad_keeps_every_pixel(self):
        source = Image.new('RGBA', (8, 8), (0, 128, 255, 255))
        texture = polygon(square(0.0, 0.0, 1.0, 1.0), size=(8, 8))
        cropped = ToplevelTexture.from_polygon(texture).crop(source)
        assert cropped.getchannel('A').getextrema() == (255, 255)

    def test_crop_copies_source_region(self):
        source = pattern_image(64, 64)
        texture = polygon(square(0.25, 0.25, 0.75, 0.75), size=(64, 64))
        cropped = ToplevelTexture.from_polygon(texture).crop(source)

        assert cropped.size == (32, 32)
        assert cropped.getpixel((0, 0)) == source.getpixel((16, 16))
        assert cropped.getpixel((31, 31)) == source.getpixel((47, 47))

    def test_region_outside_source_is_clamped(self):
        source = Image.new('RGBA', (8, 8), (255, 255, 255, 255))
        texture = polygon(square(-0.5, 0.0, 0.5, 1.0), size=(8, 8))
        toplevel = ToplevelTexture.from_polygon(texture)
        cropped = toplevel.crop(source)

        assert toplevel.crop_bbox == BoundingBox(0, 0, 4, 8)
        assert cropped.size == (4, 8)
        assert cropped.getchannel('A').getextrema() == (255, 255)

        # Vertices outside the image map outside the crop's unit square
        child = toplevel.get_child(texture)
        assert child.cropped_uv_coords[0] == (-1.0, 0.0)
        assert child.cropped_uv_coords[1] == (1.0, 0.0)

    def test_shared_executor_masks_without_private_pool(self, monkeypatch):
        source = pattern_image(128, 128)
        texture = polygon([(0.1, 0.1), (0.9, 0.2), (0.6, 0.95), (0.3, 0.5)], size=(128, 128))
        toplevel = ToplevelTexture.from_polygon(texture)
        serial = np.array(toplevel.crop(source, max_workers=1))

        with ThreadPoolExecutor(max_workers=2) as shared:
            def no_private_pool(*args, **kwargs):
                raise AssertionError("crop created its own thread pool")

            monkeypatch.setattr("atlas_packer.texture.textures.ThreadPoolExecutor", no_private_pool)
            parallel = np.array(toplevel.crop(source, max_workers=4, executor=shared))

        assert np.array_equal(serial, parallel)

    def test_parallel_mask_matches_single_thread(self):
        source = pattern_image(128, 128)
        texture = polygon([(0.1, 0.1), (0.9, 0.2), (0.6, 0.95), (0.3, 0.5)], size=(128, 128))
        toplevel = ToplevelTexture.from_polygon(texture)

        serial = np.array(toplevel.crop(source, max_workers=1))
        parallel = np.array(toplevel.crop(source, max_workers=4))
        assert np.array_equal(serial, parallel)

    def test_accepts_rgb_source(self):
        source = Image.new('RGB', (8, 8), (10, 20, 30))
        texture = polygon(square(0.0, 0.0, 1.0, 1.0), size=(8, 8))
        cropped = ToplevelTexture.from_polygon(texture).crop(source)
        assert cropped.mode == 'RGBA'
        assert cropped.getpixel((3, 3)) == (10, 20, 30, 255)

    @pytest.mark.parametrize("factor, expected", [(1.0, (100, 60)), (0.5, (50, 30)), (0.1, (10, 6)), (0.0, (1, 1))])
    def test_downsample_only_shrinks(self, factor, expected):
        source = pattern_image(100, 60)
        texture = polygon(square(0.0, 0.0, 1.0, 1.0), size=(100, 60), factor=factor)
        toplevel = ToplevelTexture.from_polygon(texture)

        assert toplevel.scaled_size == expected
        assert toplevel.crop(source).size == expected


class TestChildTexture:
    """UV remapping into the crop and onto sheets"""

    def test_single_polygon_child_spans_unit_square(self):
        texture = polygon([(0.0, 1.0), (0.25, 1.0), (0.25, 0.75)])
        child = ToplevelTexture.from_polygon(texture).get_child(texture)
        assert child.cropped_uv_coords == ((0.0, 1.0), (1.0, 1.0), (1.0, 0.0))

    def test_child_uvs_reproduce_pixel_footprint(self):
        """Test that child UVs reapplied to the crop give back the original pixels"""
        textures = [
            polygon([(0.1, 0.5), (0.5, 0.5), (0.1, 0.9)]),
            polygon([(0.3, 0.3), (0.7, 0.3), (0.7, 0.7)]),
            polygon([(0.4, 0.1), (0.8, 0.1), (0.4, 0.45)]),
        ]
        toplevel = ToplevelTexture.from_polygon(textures[0])
        for texture in textures[1:]:
            toplevel = toplevel.expand(texture)

        box = toplevel.crop_bbox
        for texture in textures:
            child = toplevel.get_child(texture)
            local = uv_to_pixel_coords(child.cropped_uv_coords, box.width, box.height)
            assert [(x + box.x, y + box.y) for x, y in local] == list(texture.pixel_coords)

    def test_to_sheet_uv_coords(self):
        texture = polygon([(0.0, 1.0), (0.25, 1.0), (0.25, 0.75)])
        child = ToplevelTexture.from_polygon(texture).get_child(texture)
        placement = SimpleNamespace(x=10, y=20, width=100, height=50)

        uvs = child.to_sheet_uv_coords(placement, 200, 100)

        assert uvs[0] == pytest.approx((0.05, 0.8))
        assert uvs[1] == pytest.approx((0.55, 0.8))
        assert uvs[2] == pytest.approx((0.55, 0.3))
