"""One-time upgrade tokens for the token-based bridge variant.

``POST /exotel/stream-endpoint`` provisions the upstream call ahead of the
WebSocket upgrade and hands the telephony provider a ``/ws/<token>`` URL.
The token maps to the provisioned upstream address and is consumed by the
first upgrade that presents it.
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from loguru import logger


@dataclass
class PendingUpstream:
    """A provisioned upstream address waiting for its telephony upgrade."""

    upstream_url: str
    created_at: float = field(default_factory=time.monotonic)
    # Rate the upstream call was provisioned at; None if unknown
    sample_rate: int | None = None


class TokenRegistry:
    """Thread-safe token -> PendingUpstream table with bounded lifetime.

    Tokens are removed on first consumption, on explicit eviction (the
    owning session closed) or once older than ``ttl_seconds``. Expired
    entries are swept on every insert and consume.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"Token TTL must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, PendingUpstream] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._entries

    def insert(self, upstream_url: str, sample_rate: int | None = None) -> str:
        """Register an upstream address and return its fresh token."""
        token = secrets.token_hex(16)
        with self._lock:
            self._sweep_locked()
            self._entries[token] = PendingUpstream(
                upstream_url, created_at=self._clock(), sample_rate=sample_rate
            )
            pending = len(self._entries)
        logger.debug(f"Token registered ({pending} pending)")
        return token

    def consume(self, token: str) -> PendingUpstream | None:
        """Remove and return the entry for ``token``.

        Returns None for unknown, already consumed or expired tokens.
        """
        with self._lock:
            self._sweep_locked()
            return self._entries.pop(token, None)

    def evict(self, token: str) -> bool:
        """Drop a token without using it. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(token, None) is not None

    def sweep(self) -> int:
        """Remove expired tokens. Returns the number removed."""
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [
            token for token, entry in self._entries.items()
            if now - entry.created_at >= self.ttl_seconds
        ]
        for token in expired:
            del self._entries[token]
        if expired:
            logger.info(f"Expired {len(expired)} unused upgrade token(s)")
        return len(expired)
