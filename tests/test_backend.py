"""Tests for the Pillow backend and format registry."""

from __future__ import annotations

import io
from collections.abc import Callable

import pytest
from PIL import Image as PILImage

from icopipe.imaging.backend import BackendConfig, Colourspace, Interpolation, PillowBackend
from icopipe.imaging.errors import BackendOperationError, ConstructionError, UnsupportedOperationError
from icopipe.imaging.formats import FORMAT_REGISTRY, ImageFormat, detect_format, get_spec

JPEG = get_spec(ImageFormat.JPEG)
PNG = get_spec(ImageFormat.PNG)
GIF = get_spec(ImageFormat.GIF)


# ---------------------------------------------------------------------------
# Format registry tests
# ---------------------------------------------------------------------------


class TestFormatRegistry:
    def test_registry_has_three_formats(self) -> None:
        assert set(FORMAT_REGISTRY) == {ImageFormat.JPEG, ImageFormat.PNG, ImageFormat.GIF}

    def test_only_jpeg_shrinks_on_load(self) -> None:
        assert JPEG.supports_shrink_on_load
        assert JPEG.load_shrink_steps == (8, 4, 2)
        assert not PNG.supports_shrink_on_load
        assert not GIF.supports_shrink_on_load

    def test_gif_is_decode_only(self) -> None:
        assert GIF.encodable is False
        assert JPEG.encodable is True
        assert PNG.encodable is True

    def test_get_spec_accepts_strings(self) -> None:
        assert get_spec("png") is PNG  # type: ignore[arg-type]


class TestDetectFormat:
    @pytest.mark.parametrize(
        ("fmt", "expected"),
        [("JPEG", ImageFormat.JPEG), ("PNG", ImageFormat.PNG), ("GIF", ImageFormat.GIF)],
    )
    def test_detects_magic_header(self, make_image: Callable[..., bytes], fmt: str, expected: ImageFormat) -> None:
        mode = "P" if fmt == "GIF" else "RGB"
        assert detect_format(make_image(fmt, (4, 4), mode=mode)) == expected

    def test_short_buffer(self) -> None:
        with pytest.raises(ConstructionError, match="length 1"):
            detect_format(b"\xff")

    def test_unknown_header(self) -> None:
        with pytest.raises(ConstructionError, match="unknown"):
            detect_format(b"RIFF....WEBP")


# ---------------------------------------------------------------------------
# PillowBackend tests
# ---------------------------------------------------------------------------


class TestDecode:
    @pytest.mark.parametrize(("shrink", "expected"), [(2, (800, 600)), (4, (400, 300)), (8, (200, 150))])
    def test_jpeg_shrink_on_load(
        self, backend: PillowBackend, jpeg_1600x1200: bytes, shrink: int, expected: tuple[int, int]
    ) -> None:
        handle = backend.decode(jpeg_1600x1200, JPEG, shrink=shrink)
        try:
            assert backend.dimensions(handle) == expected
        finally:
            backend.release(handle)

    def test_shrink_on_load_rounds_up(self, backend: PillowBackend, make_image: Callable[..., bytes]) -> None:
        handle = backend.decode(make_image("JPEG", (1601, 1201)), JPEG, shrink=4)
        try:
            assert backend.dimensions(handle) == (401, 301)
        finally:
            backend.release(handle)

    def test_thin_jpeg_takes_smaller_step(self, backend: PillowBackend, make_image: Callable[..., bytes]) -> None:
        handle = backend.decode(make_image("JPEG", (5, 1600)), JPEG, shrink=8)
        try:
            assert backend.dimensions(handle) == (2, 400)
        finally:
            backend.release(handle)

    def test_png_rejects_shrink_on_load(self, backend: PillowBackend, png_800x600: bytes) -> None:
        with pytest.raises(BackendOperationError, match="shrink-on-load"):
            backend.decode(png_800x600, PNG, shrink=2)

    def test_jpeg_rejects_unknown_step(self, backend: PillowBackend, jpeg_1600x1200: bytes) -> None:
        with pytest.raises(BackendOperationError):
            backend.decode(jpeg_1600x1200, JPEG, shrink=3)

    def test_pixel_ceiling(self, png_800x600: bytes) -> None:
        limited = PillowBackend(BackendConfig(max_image_pixels=800 * 600 - 1))
        with pytest.raises(BackendOperationError, match="exceeds the limit"):
            limited.decode(png_800x600, PNG)

    def test_no_pixel_ceiling(self, png_800x600: bytes) -> None:
        unlimited = PillowBackend(BackendConfig(max_image_pixels=None))
        handle = unlimited.decode(png_800x600, PNG)
        assert unlimited.dimensions(handle) == (800, 600)
        unlimited.release(handle)

    def test_default_config(self) -> None:
        assert PillowBackend().config == BackendConfig()


class TestGeometry:
    @pytest.mark.parametrize(
        ("factor", "expected"),
        [(1, (800, 600)), (2, (400, 300)), (3, (266, 200)), (7, (114, 85)), (1000, (1, 1))],
    )
    def test_shrink(
        self, backend: PillowBackend, png_800x600: bytes, factor: int, expected: tuple[int, int]
    ) -> None:
        handle = backend.decode(png_800x600, PNG)
        shrunk = backend.shrink(handle, factor, factor)
        assert backend.dimensions(shrunk) == expected

    def test_shrink_rejects_zero(self, backend: PillowBackend, png_800x600: bytes) -> None:
        handle = backend.decode(png_800x600, PNG)
        with pytest.raises(BackendOperationError, match="invalid shrink"):
            backend.shrink(handle, 0, 2)

    @pytest.mark.parametrize("interpolation", list(Interpolation))
    def test_affine(self, backend: PillowBackend, png_800x600: bytes, interpolation: Interpolation) -> None:
        handle = backend.decode(png_800x600, PNG)
        scaled = backend.affine(handle, 0.5, 0.5, interpolation)
        assert backend.dimensions(scaled) == (400, 300)

    def test_affine_scales_axes_independently(self, backend: PillowBackend, png_800x600: bytes) -> None:
        handle = backend.decode(png_800x600, PNG)
        scaled = backend.affine(handle, 85 / 800, 64 / 600, Interpolation.BILINEAR)
        assert backend.dimensions(scaled) == (85, 64)

    def test_affine_rejects_non_positive_scale(self, backend: PillowBackend, png_800x600: bytes) -> None:
        handle = backend.decode(png_800x600, PNG)
        with pytest.raises(BackendOperationError):
            backend.affine(handle, 0, 1, Interpolation.BILINEAR)

    @pytest.mark.parametrize(
        "rect",
        [(-1, 0, 10, 10), (0, -1, 10, 10), (0, 0, 0, 10), (0, 0, 10, 0), (795, 0, 10, 10), (0, 595, 10, 10)],
    )
    def test_extract_area_rejects_out_of_bounds(
        self, backend: PillowBackend, png_800x600: bytes, rect: tuple[int, int, int, int]
    ) -> None:
        handle = backend.decode(png_800x600, PNG)
        with pytest.raises(BackendOperationError, match="bad extract area"):
            backend.extract_area(handle, *rect)

    def test_extract_area(self, backend: PillowBackend, png_800x600: bytes) -> None:
        handle = backend.decode(png_800x600, PNG)
        area = backend.extract_area(handle, 100, 50, 300, 200)
        assert backend.dimensions(area) == (300, 200)


class TestColourspace:
    @pytest.mark.parametrize(
        ("mode", "space", "expected"),
        [
            ("RGB", Colourspace.SRGB, "RGB"),
            ("RGB", Colourspace.B_W, "L"),
            ("RGB", Colourspace.CMYK, "CMYK"),
            ("RGBA", Colourspace.SRGB, "RGBA"),
            ("RGBA", Colourspace.B_W, "LA"),
            ("L", Colourspace.SRGB, "RGB"),
        ],
    )
    def test_target_modes(
        self,
        backend: PillowBackend,
        make_image: Callable[..., bytes],
        mode: str,
        space: Colourspace,
        expected: str,
    ) -> None:
        handle = backend.decode(make_image("PNG", (8, 8), mode=mode), PNG)
        converted = backend.colourspace(handle, space)
        assert converted.mode == expected
        assert backend.dimensions(converted) == (8, 8)


class TestEncode:
    def test_gif_unsupported(self, backend: PillowBackend, gif_64x48: bytes) -> None:
        handle = backend.decode(gif_64x48, GIF)
        with pytest.raises(UnsupportedOperationError):
            backend.encode(handle, GIF, quality=75, compression=9)

    def test_rgba_as_jpeg_is_flattened(self, backend: PillowBackend, make_image: Callable[..., bytes]) -> None:
        handle = backend.decode(make_image("PNG", (16, 16), mode="RGBA"), PNG)
        output = backend.encode(handle, JPEG, quality=80, compression=9)
        assert output[:2] == JPEG.magic
        assert handle.mode == "RGBA"

    def test_cmyk_as_png_is_converted(self, backend: PillowBackend, make_image: Callable[..., bytes]) -> None:
        handle = backend.decode(make_image("JPEG", (16, 16), mode="CMYK"), JPEG)
        output = backend.encode(handle, PNG, quality=75, compression=6)
        assert output[:2] == PNG.magic

    def test_quality_changes_size(self, backend: PillowBackend) -> None:
        # A noisy image so quality has a visible effect on size.
        noise = PILImage.effect_noise((128, 128), 64).convert("RGB")
        buf = io.BytesIO()
        noise.save(buf, format="PNG")
        handle = backend.decode(buf.getvalue(), PNG)

        low = backend.encode(handle, JPEG, quality=10, compression=9)
        high = backend.encode(handle, JPEG, quality=95, compression=9)
        assert len(low) < len(high)
