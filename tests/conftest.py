"""Shared fixtures: an isolated Pillow backend and small encoded test images."""

from __future__ import annotations

import io
from collections.abc import Callable

import pytest
from PIL import Image as PILImage

from icopipe.imaging.backend import BackendConfig, PillowBackend


def encode_image(fmt: str, size: tuple[int, int], mode: str = "RGB", color: object = (200, 120, 40)) -> bytes:
    """Encode a solid-colour image of ``size`` in the given Pillow format."""
    if mode in ("L", "P") and isinstance(color, tuple):
        color = 128
    if mode == "RGBA" and isinstance(color, tuple) and len(color) == 3:
        color = (*color, 128)
    if mode == "CMYK" and isinstance(color, tuple) and len(color) == 3:
        color = (*color, 0)
    buf = io.BytesIO()
    with PILImage.new(mode, size, color) as img:
        img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def backend() -> PillowBackend:
    return PillowBackend(BackendConfig())


@pytest.fixture()
def jpeg_1600x1200() -> bytes:
    return encode_image("JPEG", (1600, 1200))


@pytest.fixture()
def png_800x600() -> bytes:
    return encode_image("PNG", (800, 600))


@pytest.fixture()
def gif_64x48() -> bytes:
    return encode_image("GIF", (64, 48), mode="P")


@pytest.fixture()
def make_image() -> Callable[..., bytes]:
    """Return the ``encode_image`` helper for tests needing custom sizes or modes."""
    return encode_image
