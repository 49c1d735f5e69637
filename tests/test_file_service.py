"""Tests for upload validation in the file service."""

import pytest

from onetime.errors import InvalidFile
from onetime.files.service import FileService, sanitize_filename


def test_sanitize_filename_accepts_common_names() -> None:
    """Spaces, parentheses and Unicode letters are allowed."""
    assert sanitize_filename("report.pdf", 80) == "report.pdf"
    assert sanitize_filename("My File (1).txt", 80) == "My File (1).txt"
    assert sanitize_filename("Bericht Größe.pdf", 80) == "Bericht Größe.pdf"
    assert sanitize_filename("  padded.txt ", 80) == "padded.txt"


@pytest.mark.parametrize(
    "name",
    ["", "   ", ".", "..", "../etc/passwd", "dir/file.txt", "a\\b.txt", 'quote".txt', "nul\x00.txt"],
)
def test_sanitize_filename_rejects_unsafe(name) -> None:
    with pytest.raises(InvalidFile):
        sanitize_filename(name, 80)


def test_sanitize_filename_length_limit() -> None:
    assert sanitize_filename("a" * 10, 10) == "a" * 10
    with pytest.raises(InvalidFile, match="longer than 10"):
        sanitize_filename("a" * 11, 10)


@pytest.mark.asyncio
async def test_add_file_rejects_empty_and_oversized(sql_storage, settings, clock):
    service = FileService(sql_storage, settings.model_copy(update={"max_file_bytes": 4}), clock)
    with pytest.raises(InvalidFile) as empty:
        await service.add_file("a.txt", b"")
    assert not empty.value.too_large
    with pytest.raises(InvalidFile) as big:
        await service.add_file("a.txt", b"12345")
    assert big.value.too_large
    assert await service.list_files() == []


@pytest.mark.asyncio
async def test_add_file_returns_info(sql_storage, settings, clock):
    service = FileService(sql_storage, settings, clock)
    info = await service.add_file("report.pdf", b"abc")
    assert info.filename == "report.pdf"
    assert info.size == 3
    assert info.created_at == clock()
    assert await service.list_files() == [info]
