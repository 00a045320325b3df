"""Pydantic response schemas for the icopipe API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    concurrent_requests: int
    queue_depth: int
    rejected_requests: int = Field(description="Runs rejected since startup because the pool was saturated")


class FormatInfo(BaseModel):
    """Capabilities of a supported image format."""

    name: str
    mime_type: str
    decode: bool = True
    encode: bool
    shrink_on_load: list[int] = Field(description="Shrink-on-load steps offered by the decoder")


class FormatsResponse(BaseModel):
    """Response for the formats listing endpoint."""

    formats: list[FormatInfo]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
