"""Identity verification boundary.

The service does not implement an authentication scheme. Login tokens are
handed to an ``IdentityVerifier``, which returns the verified identity or
raises ``ExternalServiceError``.
"""

from __future__ import annotations

import hmac
from collections.abc import Mapping
from typing import Protocol

from sitios.exceptions import ExternalServiceError


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> str: ...


def parse_token_map(raw: str) -> dict[str, str]:
    """Parse ``token=identity,token=identity`` into a mapping.

    Examples
    --------
    >>> parse_token_map("abc=alice@sitios, def=bob")
    {'abc': 'alice@sitios', 'def': 'bob'}
    """
    tokens: dict[str, str] = {}
    for item in raw.split(","):
        token, sep, identity = item.strip().partition("=")
        if sep and token and identity:
            tokens[token.strip()] = identity.strip()
    return tokens


class StaticTokenVerifier:
    """Verify tokens against a fixed token -> identity table."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    async def verify(self, token: str) -> str:
        token = token.strip()
        for known, identity in self._tokens.items():
            if token and hmac.compare_digest(known, token):
                return identity
        raise ExternalServiceError("invalid auth token", transient=False)
