"""Image backend: the codec and raster operations the resize pipeline sequences.

The pipeline never touches pixels itself. Everything it needs (decode,
shrink-on-load, integer shrink, scale-only affine transform, area extraction,
colourspace conversion, encode) goes through an ``ImageBackend``. Handles
returned by the backend are opaque to callers and must be given back to
``release()`` exactly once.

``PillowBackend`` implements the protocol on top of Pillow. JPEG shrink-on-load
uses the decoder's DCT scaling (``Image.draft``), so the reduced image is
produced without materialising the full-resolution raster.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

from PIL import Image as PILImage

from icopipe.imaging.errors import BackendOperationError, UnsupportedOperationError
from icopipe.imaging.formats import ImageFormat

if TYPE_CHECKING:
    from icopipe.imaging.formats import FormatSpec

logger = logging.getLogger(__name__)

Handle: TypeAlias = Any


class Interpolation(StrEnum):
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"


class Colourspace(StrEnum):
    SRGB = "srgb"
    B_W = "b-w"
    CMYK = "cmyk"


@dataclass(frozen=True)
class BackendConfig:
    """Process-wide backend limits and encoder defaults."""

    max_image_pixels: int | None = 16_777_216
    jpeg_quality: int = 75
    png_compression: int = 9


# ---------------------------------------------------------------------------
# Backend seam: the pipeline only talks to this protocol
# ---------------------------------------------------------------------------


class ImageBackend(Protocol):
    """Protocol for the capability set the image pipeline orchestrates."""

    @property
    def config(self) -> BackendConfig:
        """Return the configuration this backend was created with."""
        ...

    def decode(self, data: bytes, spec: FormatSpec, shrink: int = 1) -> Handle:
        """Decode an encoded buffer, optionally shrinking by ``shrink`` during load."""
        ...

    def encode(self, handle: Handle, spec: FormatSpec, quality: int, compression: int) -> bytes:
        """Encode a handle into a new buffer of the given format."""
        ...

    def shrink(self, handle: Handle, xshrink: int, yshrink: int) -> Handle:
        """Reduce a handle by integer factors using block averaging."""
        ...

    def affine(self, handle: Handle, hscale: float, vscale: float, interpolation: Interpolation) -> Handle:
        """Apply a scale-only affine transform with the given interpolator."""
        ...

    def extract_area(self, handle: Handle, x: int, y: int, width: int, height: int) -> Handle:
        """Extract a rectangular area."""
        ...

    def colourspace(self, handle: Handle, space: Colourspace) -> Handle:
        """Convert a handle to another colour interpretation."""
        ...

    def dimensions(self, handle: Handle) -> tuple[int, int]:
        """Return ``(width, height)`` of a handle."""
        ...

    def release(self, handle: Handle) -> None:
        """Free a handle."""
        ...


# ---------------------------------------------------------------------------
# Concrete implementation
# ---------------------------------------------------------------------------

_PIL_FORMATS: dict[ImageFormat, str] = {
    ImageFormat.JPEG: "JPEG",
    ImageFormat.PNG: "PNG",
    ImageFormat.GIF: "GIF",
}

_RESAMPLING: dict[Interpolation, PILImage.Resampling] = {
    Interpolation.BILINEAR: PILImage.Resampling.BILINEAR,
    Interpolation.BICUBIC: PILImage.Resampling.BICUBIC,
}

_ALPHA_MODES = frozenset({"RGBA", "RGBa", "LA", "La", "PA"})

# Modes each encoder writes directly; anything else is converted first.
_JPEG_MODES = frozenset({"RGB", "L", "CMYK"})
_PNG_MODES = frozenset({"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"})

_PIL_ERRORS = (OSError, ValueError, PILImage.DecompressionBombError)


class PillowBackend:
    """Image backend built on Pillow."""

    def __init__(self, config: BackendConfig | None = None) -> None:
        self._config = config or BackendConfig()

    @property
    def config(self) -> BackendConfig:
        return self._config

    # -- Codecs -------------------------------------------------------------

    def decode(self, data: bytes, spec: FormatSpec, shrink: int = 1) -> PILImage.Image:
        """Decode ``data`` as ``spec.format``.

        With ``shrink > 1`` the decoder is asked to scale by ``1/shrink`` while
        loading, giving an image of ``ceil(width / shrink)`` by
        ``ceil(height / shrink)`` pixels. The decoder takes a smaller step when
        one side is thinner than ``shrink``; callers read the result size back.
        Only formats with shrink-on-load steps accept it.

        Raises:
            BackendOperationError: If decoding fails or the image exceeds the
                configured pixel ceiling.
        """
        if shrink > 1 and shrink not in spec.load_shrink_steps:
            raise BackendOperationError(f"{spec.format} decoder does not support shrink-on-load by {shrink}")

        try:
            handle = PILImage.open(io.BytesIO(data), formats=[_PIL_FORMATS[spec.format]])
        except _PIL_ERRORS as exc:
            raise BackendOperationError(f"failed to load {spec.format} image: {exc}") from exc

        width, height = handle.size
        limit = self._config.max_image_pixels
        if limit is not None and width * height > limit:
            handle.close()
            raise BackendOperationError(f"image of {width}x{height} pixels exceeds the limit of {limit} pixels")

        try:
            if shrink > 1:
                handle.draft(None, (max(1, width // shrink), max(1, height // shrink)))
            handle.load()
        except _PIL_ERRORS as exc:
            handle.close()
            raise BackendOperationError(f"failed to decode {spec.format} image: {exc}") from exc

        logger.debug("Decoded %s image %dx%d (shrink=%d) to %dx%d", spec.format, width, height, shrink, *handle.size)
        return handle

    def encode(self, handle: PILImage.Image, spec: FormatSpec, quality: int, compression: int) -> bytes:
        """Encode ``handle`` in ``spec.format``.

        Raises:
            UnsupportedOperationError: If the format has no encoder.
            BackendOperationError: If the encoder fails.
        """
        if not spec.encodable:
            raise UnsupportedOperationError(f"saving to {spec.format} is not supported")

        buf = io.BytesIO()
        source = handle
        try:
            if spec.format == ImageFormat.JPEG:
                if handle.mode not in _JPEG_MODES:
                    source = handle.convert("RGB")
                source.save(buf, format="JPEG", quality=quality, optimize=True)
            else:
                if handle.mode not in _PNG_MODES:
                    source = handle.convert("RGBA")
                source.save(buf, format="PNG", compress_level=compression)
        except _PIL_ERRORS as exc:
            raise BackendOperationError(f"failed to write {spec.format} image: {exc}") from exc
        finally:
            if source is not handle:
                source.close()
        return buf.getvalue()

    # -- Geometry -----------------------------------------------------------

    def shrink(self, handle: PILImage.Image, xshrink: int, yshrink: int) -> PILImage.Image:
        if xshrink < 1 or yshrink < 1:
            raise BackendOperationError(f"invalid shrink factors {xshrink}x{yshrink}")

        width, height = handle.size
        out_width, out_height = max(1, width // xshrink), max(1, height // yshrink)
        # Averaging exact blocks: trailing pixels that do not fill a block are dropped.
        box = (0, 0, min(width, out_width * xshrink), min(height, out_height * yshrink))
        try:
            return handle.resize((out_width, out_height), PILImage.Resampling.BOX, box=box)
        except _PIL_ERRORS as exc:
            raise BackendOperationError(f"failed to shrink image: {exc}") from exc

    def affine(
        self, handle: PILImage.Image, hscale: float, vscale: float, interpolation: Interpolation
    ) -> PILImage.Image:
        if hscale <= 0 or vscale <= 0:
            raise BackendOperationError(f"invalid affine scale {hscale}x{vscale}")

        width, height = handle.size
        size = (max(1, round(width * hscale)), max(1, round(height * vscale)))
        try:
            return handle.resize(size, _RESAMPLING[Interpolation(interpolation)])
        except _PIL_ERRORS as exc:
            raise BackendOperationError(f"failed to affine resize image: {exc}") from exc

    def extract_area(self, handle: PILImage.Image, x: int, y: int, width: int, height: int) -> PILImage.Image:
        img_width, img_height = handle.size
        if x < 0 or y < 0 or width <= 0 or height <= 0 or x + width > img_width or y + height > img_height:
            raise BackendOperationError(
                f"bad extract area {width}x{height}+{x}+{y} for image of {img_width}x{img_height}"
            )
        try:
            return handle.crop((x, y, x + width, y + height))
        except _PIL_ERRORS as exc:
            raise BackendOperationError(f"failed to crop image: {exc}") from exc

    # -- Colour -------------------------------------------------------------

    def colourspace(self, handle: PILImage.Image, space: Colourspace) -> PILImage.Image:
        mode = self._target_mode(handle, Colourspace(space))
        try:
            return handle.convert(mode)
        except _PIL_ERRORS as exc:
            raise BackendOperationError(f"failed to convert image to {space}: {exc}") from exc

    # -- Handles ------------------------------------------------------------

    def dimensions(self, handle: PILImage.Image) -> tuple[int, int]:
        return handle.size

    def release(self, handle: PILImage.Image) -> None:
        handle.close()

    # -- Internal -----------------------------------------------------------

    @staticmethod
    def _target_mode(handle: PILImage.Image, space: Colourspace) -> str:
        has_alpha = handle.mode in _ALPHA_MODES or "transparency" in handle.info
        if space == Colourspace.SRGB:
            return "RGBA" if has_alpha else "RGB"
        if space == Colourspace.B_W:
            return "LA" if has_alpha else "L"
        return "CMYK"
