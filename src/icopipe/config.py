"""Environment-based configuration for icopipe."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from icopipe.imaging.backend import BackendConfig, Interpolation


class Settings(BaseSettings):
    """Application settings loaded from ICOPIPE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ICOPIPE_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 6116

    # Authentication (None = disabled)
    api_key: str | None = None

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)

    # Input limits
    max_file_size: int = Field(default=52_428_800, ge=1)
    max_image_pixels: int = Field(default=16_777_216, ge=1)

    # Encoding and resampling
    jpeg_quality: int = Field(default=75, ge=1, le=100)
    png_compression: int = Field(default=9, ge=0, le=9)
    interpolation: Interpolation = Interpolation.BILINEAR

    def backend_config(self) -> BackendConfig:
        """Return the backend configuration derived from these settings."""
        return BackendConfig(
            max_image_pixels=self.max_image_pixels,
            jpeg_quality=self.jpeg_quality,
            png_compression=self.png_compression,
        )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
