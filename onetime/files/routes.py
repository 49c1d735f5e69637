"""File API routes: list and upload."""

import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from onetime.auth.dependencies import get_file_service, require_files_key
from onetime.errors import FileAlreadyExists, InvalidFile
from onetime.files.service import FileService
from onetime.schemas import FileInfoResponse

router = APIRouter(
    prefix="/api/files", tags=["files"], dependencies=[Depends(require_files_key)]
)
log = logging.getLogger(__name__)


def _declared_length(request: Request) -> int:
    """Content-Length header as int, or -1 when absent or malformed."""
    try:
        return int(request.headers.get("content-length", "-1"))
    except ValueError:
        return -1


@router.get("", response_model=List[FileInfoResponse])
async def list_files(
    service: Annotated[FileService, Depends(get_file_service)],
) -> List[FileInfoResponse]:
    """List stored files (metadata only)."""
    files = await service.list_files()
    log.info("list_files count=%d", len(files))
    return [FileInfoResponse.model_validate(f) for f in files]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=FileInfoResponse)
async def add_file(
    request: Request,
    service: Annotated[FileService, Depends(get_file_service)],
) -> FileInfoResponse:
    """
    Add a file. Query param: filename. Body: raw file bytes.
    An existing filename is rejected; files are never overwritten.
    """
    filename = request.query_params.get("filename") or ""
    if _declared_length(request) > service.settings.max_file_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File larger than {service.settings.max_file_bytes} bytes",
        )
    body = await request.body()
    try:
        info = await service.add_file(filename, body)
    except InvalidFile as e:
        log.warning("add_file rejected filename=%r: %s", filename, e)
        raise HTTPException(
            status_code=413 if e.too_large else status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    except FileAlreadyExists as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return FileInfoResponse.model_validate(info)
