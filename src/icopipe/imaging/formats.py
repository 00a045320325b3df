"""Supported image formats and their capabilities.

Each format is a closed registry entry describing what the format can do:
whether it can be written back out and which shrink-on-load steps its decoder
offers. Callers check capabilities here instead of branching on the format.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from icopipe.imaging.errors import ConstructionError


class ImageFormat(StrEnum):
    JPEG = "jpeg"
    PNG = "png"
    GIF = "gif"


@dataclass(frozen=True)
class FormatSpec:
    """Static capabilities of a single image format."""

    format: ImageFormat
    mime_type: str
    magic: bytes
    load_shrink_steps: tuple[int, ...]
    encodable: bool

    @property
    def supports_shrink_on_load(self) -> bool:
        return bool(self.load_shrink_steps)


FORMAT_REGISTRY: dict[ImageFormat, FormatSpec] = {
    ImageFormat.JPEG: FormatSpec(
        format=ImageFormat.JPEG,
        mime_type="image/jpeg",
        magic=b"\xff\xd8",
        load_shrink_steps=(8, 4, 2),
        encodable=True,
    ),
    ImageFormat.PNG: FormatSpec(
        format=ImageFormat.PNG,
        mime_type="image/png",
        magic=b"\x89\x50",
        load_shrink_steps=(),
        encodable=True,
    ),
    ImageFormat.GIF: FormatSpec(
        format=ImageFormat.GIF,
        mime_type="image/gif",
        magic=b"\x47\x49",
        load_shrink_steps=(),
        encodable=False,
    ),
}


def get_spec(fmt: ImageFormat) -> FormatSpec:
    return FORMAT_REGISTRY[ImageFormat(fmt)]


def detect_format(data: bytes) -> ImageFormat:
    """Return the format of an encoded buffer, judged by its two-byte magic header.

    Raises:
        ConstructionError: If the buffer is too short or the header is unknown.
    """
    if len(data) < 2:
        raise ConstructionError(f"cannot use data buffer of length {len(data)} as image")

    for spec in FORMAT_REGISTRY.values():
        if data[:2] == spec.magic:
            return spec.format
    raise ConstructionError("unknown or unhandled file type for data buffer")
