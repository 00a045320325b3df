"""Imaging core: formats, backend, resize planning and the image entity."""

from icopipe.imaging.backend import BackendConfig, Colourspace, ImageBackend, Interpolation, PillowBackend
from icopipe.imaging.errors import (
    BackendOperationError,
    ConstructionError,
    ImageError,
    ImageReleasedError,
    UnsupportedOperationError,
)
from icopipe.imaging.formats import FORMAT_REGISTRY, FormatSpec, ImageFormat, detect_format
from icopipe.imaging.image import Image

__all__ = [
    "FORMAT_REGISTRY",
    "BackendConfig",
    "BackendOperationError",
    "Colourspace",
    "ConstructionError",
    "FormatSpec",
    "Image",
    "ImageBackend",
    "ImageError",
    "ImageFormat",
    "ImageReleasedError",
    "Interpolation",
    "PillowBackend",
    "UnsupportedOperationError",
    "detect_format",
]
