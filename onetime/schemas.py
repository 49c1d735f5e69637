"""Pydantic schemas for API requests and responses."""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class FileInfoResponse(BaseModel):
    """File metadata as returned by API (no contents)."""

    model_config = ConfigDict(from_attributes=True)

    filename: str
    size: int
    created_at: int
    updated_at: int


class LinkResponse(BaseModel):
    """Link as returned by API. downloaded_at is null while the link is unused."""

    model_config = ConfigDict(from_attributes=True)

    token: str
    filename: str
    created_at: int
    downloaded_at: Optional[int] = None
    ip_address: Optional[str] = None


class CreateLink(BaseModel):
    """Request body for issuing a link."""

    filename: str


class IssuedLink(BaseModel):
    """Response for a newly issued link."""

    token: str
    url: str
    filename: str
    created_at: int
