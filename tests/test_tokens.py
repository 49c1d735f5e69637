"""Tests for token generation."""

import re

import pytest

from onetime.errors import EntropySourceUnavailable
from onetime.tokens import generate_token


def test_generate_token_is_url_safe() -> None:
    """Token is 32 URL-safe characters (192 bits)."""
    token = generate_token()
    assert len(token) == 32
    assert re.fullmatch(r"[A-Za-z0-9_-]+", token)


def test_generate_token_unique() -> None:
    """No collisions across many draws."""
    tokens = {generate_token() for _ in range(1000)}
    assert len(tokens) == 1000


def test_generate_token_entropy_unavailable(monkeypatch) -> None:
    """A failing randomness source surfaces as EntropySourceUnavailable."""
    from onetime import tokens

    def broken(nbytes):
        raise NotImplementedError("no randomness source")

    monkeypatch.setattr(tokens.secrets, "token_urlsafe", broken)
    with pytest.raises(EntropySourceUnavailable):
        generate_token()
