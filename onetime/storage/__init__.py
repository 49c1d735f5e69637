"""Storage providers and the factory that picks one from settings."""

import logging

from onetime.config import Settings
from onetime.storage.base import File, FileInfo, Link, StorageProvider, call_with_deadline
from onetime.storage.unavailable import UnavailableStorage

log = logging.getLogger(__name__)

__all__ = [
    "File",
    "FileInfo",
    "Link",
    "StorageProvider",
    "UnavailableStorage",
    "build_storage",
    "call_with_deadline",
]


def build_storage(settings: Settings) -> StorageProvider:
    """
    Build the provider named by settings.provider. A misconfigured provider yields
    UnavailableStorage, which answers every call with StorageError.
    """
    try:
        if settings.provider == "sql":
            from onetime.storage.sql import SqlStorage

            storage: StorageProvider = SqlStorage.from_settings(settings)
        elif settings.provider == "dynamodb":
            from onetime.storage.dynamodb import DynamoStorage

            storage = DynamoStorage.from_settings(settings)
        else:
            storage = UnavailableStorage(
                f"Invalid or no storage provider given: {settings.provider!r}"
            )
    except Exception as e:
        log.exception("Could not build %s storage provider", settings.provider)
        storage = UnavailableStorage(f"Invalid {settings.provider} storage provider: {e}")
    log.info("Created storage: %s", storage.name)
    return storage
