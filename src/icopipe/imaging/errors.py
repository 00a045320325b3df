"""Exceptions raised by the imaging core."""

from __future__ import annotations


class ImageError(Exception):
    """Base class for all imaging errors."""


class ConstructionError(ImageError):
    """Encoded data could not be decoded as the declared format."""


class UnsupportedOperationError(ImageError):
    """The operation is not available for the image format (e.g. GIF encode)."""


class BackendOperationError(ImageError):
    """A backend operation failed; the image keeps its last good representation."""


class ImageReleasedError(ImageError):
    """The image was used after release()."""
