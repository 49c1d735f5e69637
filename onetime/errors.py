"""Error taxonomy shared by storage backends, services and routes."""


class OnetimeError(Exception):
    """Base class for all errors raised by the core."""


class NotFound(OnetimeError):
    """A token or filename is absent."""


class LinkNotFound(NotFound):
    def __init__(self, token: str) -> None:
        super().__init__(f"Link not found: {token[:8]}...")
        self.token = token


class FileNotFound(NotFound):
    def __init__(self, filename: str) -> None:
        super().__init__(f"File not found: {filename}")
        self.filename = filename


class Conflict(OnetimeError):
    """A create-if-absent write found the key already present."""


class FileAlreadyExists(Conflict):
    def __init__(self, filename: str) -> None:
        super().__init__(f"File already exists: {filename}")
        self.filename = filename


class TokenCollision(Conflict):
    def __init__(self, token: str) -> None:
        super().__init__("Token already exists")
        self.token = token


class AlreadyClaimed(OnetimeError):
    """The link was already redeemed. Expected outcome of a reused link or a lost race."""

    def __init__(self, token: str) -> None:
        super().__init__("Link already downloaded")
        self.token = token


class StorageError(OnetimeError):
    """Backend unreachable, timed out, or returned something we could not read."""


class EntropySourceUnavailable(OnetimeError):
    """The OS randomness source could not be read."""


class ExhaustedRetries(OnetimeError):
    """Token generation kept colliding with existing links."""


class InvalidFile(OnetimeError):
    """Upload rejected before reaching storage (bad name, empty or oversized body)."""

    def __init__(self, message: str, too_large: bool = False) -> None:
        super().__init__(message)
        self.too_large = too_large
