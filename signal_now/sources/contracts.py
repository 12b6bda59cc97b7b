"""Typed response contracts returned by the GitHub client."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FetchState(str, enum.Enum):
    """Outcome of a single upstream request."""

    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(slots=True)
class FetchResult(Generic[T]):
    """Response payload plus transport metadata."""

    state: FetchState
    data: Optional[T] = None
    etag: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.state == FetchState.OK

    @property
    def is_failed(self) -> bool:
        return self.state == FetchState.FAILED

    @property
    def is_not_found(self) -> bool:
        return self.is_failed and self.status_code == 404

    @property
    def is_rate_limited(self) -> bool:
        return self.is_failed and self.status_code == 429
