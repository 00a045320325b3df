"""API route definitions."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status
from fastapi.responses import Response

from icopipe.api.middleware import limit_upload_size, request_settings, verify_api_key
from icopipe.api.schemas import ErrorResponse, FormatInfo, FormatsResponse, HealthResponse
from icopipe.imaging.errors import BackendOperationError, ConstructionError, UnsupportedOperationError
from icopipe.imaging.formats import FORMAT_REGISTRY
from icopipe.pipeline.params import ParamsError
from icopipe.pipeline.pipeline import Pipeline

if TYPE_CHECKING:
    from icopipe.imaging.backend import ImageBackend
    from icopipe.pipeline.pool import ProcessingPool

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

CACHE_CONTROL = "no-transform,public,max-age=86400,s-maxage=2592000"


def _get_backend(request: Request) -> ImageBackend:
    backend: ImageBackend = request.app.state.backend
    return backend


def _get_processing_pool(request: Request) -> ProcessingPool:
    pool: ProcessingPool = request.app.state.processing_pool
    return pool


@router.post(
    "/process/{params}",
    response_class=Response,
    dependencies=[Depends(limit_upload_size)],
    responses={
        status.HTTP_200_OK: {"content": {spec.mime_type: {}} for spec in FORMAT_REGISTRY.values()},
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        HTTPStatus.REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: {"model": ErrorResponse},
        HTTPStatus.UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Resize an uploaded image",
)
async def process_image(params: str, file: UploadFile, request: Request) -> Response:
    """Run the uploaded image through the pipeline described by ``params``.

    ``params`` is a comma-separated parameter list such as
    ``width=200,height=200,fit=crop:top``. The result is written in the
    format of the upload.
    """
    settings = request_settings(request)
    try:
        pipeline = Pipeline.from_params(params, settings.interpolation)
    except ParamsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    data = await file.read()
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds the limit of {settings.max_file_size} bytes",
        )

    pool = _get_processing_pool(request)
    try:
        result = await pool.run(pipeline.process, _get_backend(request), data)
    except TimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Server busy, try again later",
        ) from exc
    except ConstructionError as exc:
        logger.warning("Failed to decode upload %r: %s", file.filename, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid image: {exc}") from exc
    except UnsupportedOperationError as exc:
        raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=str(exc)) from exc
    except BackendOperationError as exc:
        logger.warning("Failed to process upload %r with %r: %s", file.filename, params, exc)
        raise HTTPException(status_code=HTTPStatus.UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    return Response(
        content=result.data,
        media_type=result.mime_type,
        headers={"Cache-Control": CACHE_CONTROL},
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    pool = _get_processing_pool(request)
    return HealthResponse(
        status="ok",
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
        rejected_requests=pool.rejected_count,
    )


@router.get(
    "/formats",
    response_model=FormatsResponse,
    summary="List supported image formats",
)
async def list_formats() -> FormatsResponse:
    """Return the supported formats and what the pipeline can do with each."""
    formats = [
        FormatInfo(
            name=str(spec.format),
            mime_type=spec.mime_type,
            encode=spec.encodable,
            shrink_on_load=sorted(spec.load_shrink_steps),
        )
        for spec in FORMAT_REGISTRY.values()
    ]
    return FormatsResponse(formats=formats)
