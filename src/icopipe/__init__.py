"""icopipe: image resize pipeline and HTTP service for thumbnails and icons."""

__version__ = "0.1.0"
