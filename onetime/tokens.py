"""Unguessable link tokens."""

import secrets

from onetime.errors import EntropySourceUnavailable

# 24 random bytes -> 32 URL-safe characters, 192 bits of entropy
TOKEN_BYTES = 24


def generate_token() -> str:
    """Return a fresh URL-safe token. Raises EntropySourceUnavailable if the OS RNG fails."""
    try:
        return secrets.token_urlsafe(TOKEN_BYTES)
    except (NotImplementedError, OSError) as e:
        raise EntropySourceUnavailable(f"Could not read randomness source: {e}") from e
