"""Placeholder provider used when the configured backend cannot be built."""

from typing import List, NoReturn, Optional

from onetime.errors import StorageError
from onetime.storage.base import File, FileInfo, Link, StorageProvider


class UnavailableStorage(StorageProvider):
    """Fails every operation with StorageError so the process still serves /health."""

    name = "unavailable"

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def _fail(self) -> NoReturn:
        raise StorageError(self.reason)

    async def put_file(self, filename: str, contents: bytes, now: int) -> None:
        self._fail()

    async def get_file(self, filename: str) -> File:
        self._fail()

    async def list_files(self) -> List[FileInfo]:
        self._fail()

    async def put_link(self, token: str, filename: str, now: int) -> Link:
        self._fail()

    async def get_link(self, token: str) -> Link:
        self._fail()

    async def list_links(self) -> List[Link]:
        self._fail()

    async def list_links_for_file(self, filename: str) -> List[Link]:
        self._fail()

    async def claim_link(self, token: str, now: int, ip_address: Optional[str]) -> File:
        self._fail()
