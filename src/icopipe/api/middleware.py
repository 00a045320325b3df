"""Request guards: API key authentication and upload size limits."""

from __future__ import annotations

import logging
import secrets
from http import HTTPStatus
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from icopipe.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def request_settings(request: Request) -> Settings:
    """Return the settings stored on the application state."""
    settings: Settings = request.app.state.settings
    return settings


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against ICOPIPE_API_KEY.

    Without a configured key every request passes.
    """
    expected = request_settings(request).api_key
    if expected is None:
        return

    supplied = b"" if credentials is None else credentials.credentials.encode()
    if not secrets.compare_digest(supplied, expected.encode()):
        logger.warning("Rejected request to %s: invalid or missing API key", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def limit_upload_size(request: Request) -> None:
    """Reject requests whose declared body exceeds ICOPIPE_MAX_FILE_SIZE."""
    declared = request.headers.get("content-length")
    if declared is None or not declared.isdigit():
        return

    limit = request_settings(request).max_file_size
    if int(declared) > limit:
        raise HTTPException(
            status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
            detail=f"Upload exceeds the limit of {limit} bytes",
        )
