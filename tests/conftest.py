"""Shared fixtures: synthetic source images written to a temp directory."""
import numpy as np
import pytest
from PIL import Image


def pattern_image(width, height):
    """RGBA image whose pixels encode their own coordinates."""
    ys, xs = np.mgrid[0:height, 0:width]
    pixels = np.stack([xs % 256, ys % 256, (xs + ys) % 256, np.full_like(xs, 255)], axis=-1)
    return Image.fromarray(pixels.astype(np.uint8))


def square(u0, v0, u1, v1):
    """Axis-aligned UV quad."""
    return [(u0, v0), (u1, v0), (u1, v1), (u0, v1)]


@pytest.fixture
def make_image(tmp_path):
    """Write a PNG and return its path. Solid color if given, coordinate pattern otherwise."""
    def _make(name, size=(64, 64), color=None):
        path = tmp_path / name
        if color is None:
            image = pattern_image(*size)
        else:
            image = Image.new('RGBA', size, color)
        image.save(path)
        return path
    return _make
