"""Error taxonomy shared by sources, services and orchestration."""

from __future__ import annotations

from typing import Optional


class SignalNowError(Exception):
    """Base class for all domain errors."""


class ActivitySourceError(SignalNowError):
    """Upstream activity source failed for a reason other than 404 or quota."""

    def __init__(self, message: str, *, identifier: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.identifier = identifier
        self.status_code = status_code


class NotFoundError(ActivitySourceError):
    """Upstream source reports no such user, organization or repository."""


class RateLimitedError(ActivitySourceError):
    """Upstream quota exhausted after the client's bounded retries."""


class MalformedModelOutputError(SignalNowError):
    """Text-generation output could not be parsed or failed schema validation."""

    def __init__(self, message: str, *, stage: Optional[str] = None, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.raw = raw


class StoreUnavailableError(SignalNowError):
    """Persistence layer could not be reached or rejected the operation."""


class MissingConfigurationError(SignalNowError):
    """Required configuration (profile, source identity, credentials) is absent."""


class DuplicateWatchTargetError(SignalNowError):
    """Watch target already exists for this user."""
