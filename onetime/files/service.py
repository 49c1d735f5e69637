"""File service: validate uploads and store them; list stored files."""

import logging
import re
import unicodedata
from typing import List

from onetime.clock import Clock, unix_ms
from onetime.config import Settings
from onetime.errors import InvalidFile
from onetime.storage import FileInfo, StorageProvider, call_with_deadline

log = logging.getLogger(__name__)

# Safe filename: letters, numbers, common punctuation. No / \ (traversal) and no quotes,
# since the name ends up in a Content-Disposition header.
_SAFE_FILENAME_ASCII = re.compile(r"^[a-zA-Z0-9_. \-()+~#!&,;=\[\]@]+$")


def _is_safe_filename_char(c: str) -> bool:
    """True if char is allowed in a filename (no separators, quotes or control chars)."""
    if c in "/\\\"%":
        return False
    if ord(c) < 32 or ord(c) == 127:
        return False
    cat = unicodedata.category(c)
    # Letter, Number, Punctuation or plain space (e.g. "Bericht Ä（1）.pdf")
    return c == " " or cat[0] in ("L", "N", "P")


def sanitize_filename(filename: str, max_length: int) -> str:
    """
    Return the filename stripped of surrounding whitespace if it is a single safe name.
    Allows Unicode letters and numbers. Raises InvalidFile otherwise.
    """
    name = filename.strip()
    if not name or name in (".", ".."):
        raise InvalidFile("Filename is required")
    if len(name) > max_length:
        raise InvalidFile(f"Filename longer than {max_length} characters")
    if _SAFE_FILENAME_ASCII.match(name):
        return name
    if not all(_is_safe_filename_char(c) for c in name):
        raise InvalidFile(f"Unsafe filename: {filename!r}")
    return name


class FileService:
    """Adds files and lists them. Holds no state besides its collaborators."""

    def __init__(self, storage: StorageProvider, settings: Settings, clock: Clock = unix_ms) -> None:
        self.storage = storage
        self.settings = settings
        self.clock = clock

    @property
    def _timeout(self) -> float:
        return self.settings.storage_timeout_seconds

    async def add_file(self, filename: str, contents: bytes) -> FileInfo:
        """
        Store a new file. Raises InvalidFile for a bad name or body and FileAlreadyExists
        if the name is taken, even when the contents are identical.
        """
        name = sanitize_filename(filename, self.settings.max_filename_length)
        if not contents:
            raise InvalidFile("File contents are empty")
        if len(contents) > self.settings.max_file_bytes:
            raise InvalidFile(
                f"File larger than {self.settings.max_file_bytes} bytes", too_large=True
            )
        now = self.clock()
        await call_with_deadline(
            self.storage.put_file(name, contents, now), self._timeout, "put_file"
        )
        log.info("add_file filename=%s size=%d", name, len(contents))
        return FileInfo(filename=name, size=len(contents), created_at=now, updated_at=now)

    async def list_files(self) -> List[FileInfo]:
        return await call_with_deadline(self.storage.list_files(), self._timeout, "list_files")
