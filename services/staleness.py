"""Derive reading liveness from elapsed time since receipt."""

from __future__ import annotations

from models.records import ReadingStatus

DEFAULT_TTL_MS = 30_000


def evaluate(now: float, received_at: float, ttl_ms: int = DEFAULT_TTL_MS) -> ReadingStatus:
    """Return ``active`` iff the reading was observed within ``ttl_ms``.

    ``now`` and ``received_at`` are monotonic readings in seconds.
    """

    elapsed_ms = (now - received_at) * 1000.0
    if elapsed_ms <= ttl_ms:
        return ReadingStatus.active
    return ReadingStatus.inactive
