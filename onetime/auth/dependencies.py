"""FastAPI dependencies for API-key auth and service lookup."""

import hmac
import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader

from onetime.config import Settings
from onetime.files.service import FileService
from onetime.links.service import LinkService

API_KEY_HEADER = "X-Api-Key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)
log = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_file_service(request: Request) -> FileService:
    return request.app.state.file_service


def get_link_service(request: Request) -> LinkService:
    return request.app.state.link_service


def _check_api_key(provided: Optional[str], expected: str, scope: str) -> None:
    """Raise 401 unless provided matches expected. An empty expected key rejects everything."""
    valid = bool(expected) and bool(provided) and hmac.compare_digest(
        provided.encode("utf-8"), expected.encode("utf-8")
    )
    if not valid:
        log.debug("Invalid or missing api key for scope=%s", scope)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing api key",
            headers={"WWW-Authenticate": API_KEY_HEADER},
        )


async def require_files_key(
    api_key: Annotated[Optional[str], Depends(api_key_header)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> None:
    """Authorize add/list files."""
    _check_api_key(api_key, settings.files_api_key, "files")


async def require_links_key(
    api_key: Annotated[Optional[str], Depends(api_key_header)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> None:
    """Authorize issuing, listing and inspecting links."""
    _check_api_key(api_key, settings.links_api_key, "links")


async def require_download_key(
    api_key: Annotated[Optional[str], Depends(api_key_header)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> None:
    """Downloads use the links scope unless download_requires_api_key is off."""
    if not settings.download_requires_api_key:
        return
    _check_api_key(api_key, settings.links_api_key, "links")
