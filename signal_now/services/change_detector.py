"""Activity fingerprinting and snapshot freshness checks."""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime, timedelta
from typing import Optional, Sequence

from signal_now.config.settings import settings
from signal_now.sources.activity import ActivityEvent

DEFAULT_WINDOW = 10


def fingerprint(events: Sequence[ActivityEvent], *, window: Optional[int] = None) -> str:
    """Stable SHA-256 over the first `window` events (most recent first)."""

    size = window if window is not None else (settings.FINGERPRINT_WINDOW or DEFAULT_WINDOW)
    lines = [
        f"{event.kind.value}:{event.repository}:{event.timestamp.astimezone(UTC).isoformat()}"
        for event in list(events)[:size]
    ]
    return hashlib.sha256("\n".join(lines).encode("utf-8")).hexdigest()


def is_fresh(
    last_checked_at: Optional[datetime],
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> bool:
    if last_checked_at is None:
        return False
    now = now or datetime.now(UTC)
    ttl = ttl if ttl is not None else timedelta(minutes=settings.SNAPSHOT_TTL_MINUTES)
    checked = last_checked_at if last_checked_at.tzinfo else last_checked_at.replace(tzinfo=UTC)
    return now - checked < ttl


def can_reuse_snapshot(
    previous_fingerprint: Optional[str],
    last_checked_at: Optional[datetime],
    current_fingerprint: str,
    *,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> bool:
    """Only an identical fingerprint inside the TTL short-circuits reprocessing."""

    if not previous_fingerprint or previous_fingerprint != current_fingerprint:
        return False
    return is_fresh(last_checked_at, now=now, ttl=ttl)
