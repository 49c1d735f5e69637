"""Storage provider contract: FileStore and LinkStore capabilities every backend implements."""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, List, Optional, TypeVar

from onetime.errors import StorageError

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class File:
    """Stored file with contents. Immutable once written."""

    filename: str
    contents: bytes
    created_at: int
    updated_at: int

    @property
    def size(self) -> int:
        return len(self.contents)


@dataclass(frozen=True)
class FileInfo:
    """File metadata for listings (no contents)."""

    filename: str
    size: int
    created_at: int
    updated_at: int


@dataclass(frozen=True)
class Link:
    """One-time link. downloaded_at is None until the link is claimed."""

    token: str
    filename: str
    created_at: int
    downloaded_at: Optional[int] = None
    ip_address: Optional[str] = None

    @property
    def claimed(self) -> bool:
        return self.downloaded_at is not None


class StorageProvider(ABC):
    """
    Backend for files and links. All mutation goes through three single-key conditional
    writes: put_file and put_link (create if absent) and claim_link (update if unclaimed).
    Implementations convert their native errors into StorageError.
    """

    name = "abstract"

    async def init(self) -> None:
        """Prepare the backend (create tables etc). Called once at startup."""

    async def close(self) -> None:
        """Release connections. Called once at shutdown."""

    # FileStore

    @abstractmethod
    async def put_file(self, filename: str, contents: bytes, now: int) -> None:
        """Insert a new file. Raises FileAlreadyExists if filename is taken."""

    @abstractmethod
    async def get_file(self, filename: str) -> File:
        """Return file with contents. Raises FileNotFound."""

    @abstractmethod
    async def list_files(self) -> List[FileInfo]:
        """Return metadata of all files."""

    # LinkStore

    @abstractmethod
    async def put_link(self, token: str, filename: str, now: int) -> Link:
        """Insert an unclaimed link. Raises FileNotFound or TokenCollision."""

    @abstractmethod
    async def get_link(self, token: str) -> Link:
        """Return the link by token. Raises LinkNotFound."""

    @abstractmethod
    async def list_links(self) -> List[Link]:
        """Return all links."""

    @abstractmethod
    async def list_links_for_file(self, filename: str) -> List[Link]:
        """Return links referencing filename."""

    @abstractmethod
    async def claim_link(self, token: str, now: int, ip_address: Optional[str]) -> File:
        """
        Atomically mark the link downloaded and return its file.
        Raises LinkNotFound if absent, AlreadyClaimed if downloaded_at was already set.
        Exactly one of any number of concurrent callers gets the file.
        """


async def call_with_deadline(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """Await a storage call under a deadline; expiry surfaces as StorageError."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        log.warning("Storage call %s timed out after %.1fs", operation, timeout)
        raise StorageError(f"{operation} timed out after {timeout}s; outcome unknown") from e
