"""Link issuance and one-time redemption."""

import logging
from typing import Callable, List, Optional

from onetime.clock import Clock, unix_ms
from onetime.config import Settings
from onetime.errors import ExhaustedRetries, TokenCollision
from onetime.storage import File, Link, StorageProvider, call_with_deadline
from onetime.tokens import generate_token

log = logging.getLogger(__name__)


class LinkService:
    """
    Issues links and redeems them. Redemption delegates the one-time guarantee to the
    backend's conditional claim; this class keeps no state and takes no locks, so any
    number of processes may share one backend.
    """

    def __init__(
        self,
        storage: StorageProvider,
        settings: Settings,
        clock: Clock = unix_ms,
        token_factory: Callable[[], str] = generate_token,
    ) -> None:
        self.storage = storage
        self.settings = settings
        self.clock = clock
        self.token_factory = token_factory

    @property
    def _timeout(self) -> float:
        return self.settings.storage_timeout_seconds

    async def issue_link(self, filename: str, now: Optional[int] = None) -> Link:
        """
        Create an unclaimed link for an existing file.
        A colliding token is replaced by a fresh one up to link_issue_attempts times in
        total, then ExhaustedRetries. FileNotFound and StorageError propagate.
        """
        if now is None:
            now = self.clock()
        attempts = self.settings.link_issue_attempts
        for attempt in range(1, attempts + 1):
            token = self.token_factory()
            try:
                link = await call_with_deadline(
                    self.storage.put_link(token, filename, now), self._timeout, "put_link"
                )
            except TokenCollision:
                log.warning("Token collision for %s (attempt %d/%d)", filename, attempt, attempts)
                continue
            log.info("issue_link filename=%s token=%s...", filename, token[:8])
            return link
        raise ExhaustedRetries(f"No unique token for {filename} after {attempts} attempts")

    async def redeem(
        self, token: str, ip_address: Optional[str] = None, now: Optional[int] = None
    ) -> File:
        """
        Claim the link and return its file. Raises LinkNotFound or AlreadyClaimed, never
        retried. A StorageError (including a timeout) means the claim may or may not have
        committed: check get_link before trying again.
        """
        if now is None:
            now = self.clock()
        file = await call_with_deadline(
            self.storage.claim_link(token, now, ip_address), self._timeout, "claim_link"
        )
        log.info("redeem token=%s... filename=%s ip=%s", token[:8], file.filename, ip_address)
        return file

    async def get_link(self, token: str) -> Link:
        return await call_with_deadline(self.storage.get_link(token), self._timeout, "get_link")

    async def list_links(self) -> List[Link]:
        return await call_with_deadline(self.storage.list_links(), self._timeout, "list_links")

    async def list_links_for_file(self, filename: str) -> List[Link]:
        return await call_with_deadline(
            self.storage.list_links_for_file(filename), self._timeout, "list_links_for_file"
        )
