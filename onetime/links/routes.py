"""Link API routes: issue, list, inspect; and the public-facing one-time download."""

import logging
from typing import Annotated, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from onetime.auth.dependencies import get_link_service, require_download_key, require_links_key
from onetime.errors import AlreadyClaimed, FileNotFound, LinkNotFound
from onetime.links.service import LinkService
from onetime.schemas import CreateLink, IssuedLink, LinkResponse

router = APIRouter(
    prefix="/api/links", tags=["links"], dependencies=[Depends(require_links_key)]
)
download_router = APIRouter(tags=["download"])
log = logging.getLogger(__name__)


def download_url(token: str) -> str:
    return f"/download/{token}"


def _content_disposition(filename: str) -> str:
    """inline disposition; non-ASCII names use the RFC 5987 filename* form."""
    quoted = quote(filename)
    if quoted != filename:
        return f"inline; filename*=utf-8''{quoted}"
    return f'inline; filename="{filename}"'


@router.get("", response_model=List[LinkResponse])
async def list_links(
    service: Annotated[LinkService, Depends(get_link_service)],
    filename: Optional[str] = None,
) -> List[LinkResponse]:
    """List all links, or only those for ?filename=."""
    if filename is None:
        links = await service.list_links()
    else:
        links = await service.list_links_for_file(filename)
    log.info("list_links filename=%s count=%d", filename, len(links))
    return [LinkResponse.model_validate(link) for link in links]


@router.post("", status_code=status.HTTP_201_CREATED, response_model=IssuedLink)
async def issue_link(
    body: CreateLink,
    service: Annotated[LinkService, Depends(get_link_service)],
) -> IssuedLink:
    """Issue a one-time link for a stored file."""
    try:
        link = await service.issue_link(body.filename)
    except FileNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return IssuedLink(
        token=link.token,
        url=download_url(link.token),
        filename=link.filename,
        created_at=link.created_at,
    )


@router.get("/{token}", response_model=LinkResponse)
async def get_link(
    token: str,
    service: Annotated[LinkService, Depends(get_link_service)],
) -> LinkResponse:
    """Link status. Use after a failed or interrupted download to see whether it was claimed."""
    try:
        link = await service.get_link(token)
    except LinkNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Link not found")
    return LinkResponse.model_validate(link)


@download_router.get("/download/{token}", dependencies=[Depends(require_download_key)])
async def download(
    token: str,
    request: Request,
    service: Annotated[LinkService, Depends(get_link_service)],
) -> Response:
    """Redeem a link: the first request gets the file, every later one gets 410."""
    ip_address = request.client.host if request.client else None
    try:
        file = await service.redeem(token, ip_address)
    except LinkNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Could not find file for link",
        )
    except AlreadyClaimed:
        log.info("download token=%s... already downloaded (ip=%s)", token[:8], ip_address)
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Already downloaded")
    except FileNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Could not find contents for link",
        )
    return Response(
        content=file.contents,
        media_type="application/octet-stream",
        headers={"Content-Disposition": _content_disposition(file.filename)},
    )
