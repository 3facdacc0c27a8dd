"""Authenticated API client context for request processing."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ClientContext:
    """Authenticated API client, injected into protected requests.

    Resolved from the ``X-API-Key`` header against configured clients.
    """

    key_prefix: str
    scopes: tuple[str, ...]
