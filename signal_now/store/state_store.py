"""Persistence of assessment snapshots and history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from signal_now.config.database import SessionLocal
from signal_now.errors import StoreUnavailableError
from signal_now.models.assessment import AssessmentHistory, AssessmentSnapshot
from signal_now.sources.github_client import sanitize_log_extra

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SnapshotRecord:
    """Last-known state for one (user, target) pair."""

    activity_fingerprint: str
    readiness_score: int
    readiness_level: str
    decision: str
    last_checked_at: datetime
    bridge: Optional[str] = None
    reasoning: Optional[str] = None
    focus_areas: list[str] = field(default_factory=list)
    icebreaker_text: Optional[str] = None
    next_step_text: Optional[str] = None


@dataclass(slots=True)
class HistoryEntry:
    user_id: str
    target_handle: str
    created_at: datetime
    readiness_score: int
    decision: str
    reasoning: Optional[str] = None
    bridge: Optional[str] = None
    trace: dict[str, Any] = field(default_factory=dict)


class StateStore(Protocol):
    async def get_snapshot(self, user_id: str, target_handle: str) -> Optional[SnapshotRecord]: ...

    async def upsert_snapshot(self, user_id: str, target_handle: str, snapshot: SnapshotRecord) -> None: ...

    async def append_history(self, entry: HistoryEntry) -> None: ...


def normalize_handle(target_handle: str) -> str:
    return target_handle.strip().strip("/").lower()


def _as_utc(value: datetime) -> datetime:
    """Some backends (SQLite) hand back naive datetimes; stored values are UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SQLAlchemyStateStore:
    """State store over SQLAlchemy sessions; one session per operation."""

    def __init__(self, session_factory: Callable[[], Any] = SessionLocal) -> None:
        self._session_factory = session_factory

    async def get_snapshot(self, user_id: str, target_handle: str) -> Optional[SnapshotRecord]:
        db = self._open_session()
        try:
            row = (
                db.query(AssessmentSnapshot)
                .filter_by(user_id=user_id, target_handle=normalize_handle(target_handle))
                .first()
            )
            if row is None:
                return None
            return SnapshotRecord(
                activity_fingerprint=row.activity_fingerprint,
                readiness_score=int(row.readiness_score or 0),
                readiness_level=row.readiness_level,
                decision=row.decision,
                last_checked_at=_as_utc(row.last_checked_at),
                bridge=row.bridge,
                reasoning=row.reasoning,
                focus_areas=list(row.focus_areas or []),
                icebreaker_text=row.icebreaker_text,
                next_step_text=row.next_step_text,
            )
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"snapshot read failed: {exc}") from exc
        finally:
            db.close()

    async def upsert_snapshot(self, user_id: str, target_handle: str, snapshot: SnapshotRecord) -> None:
        handle = normalize_handle(target_handle)
        db = self._open_session()
        try:
            row = db.query(AssessmentSnapshot).filter_by(user_id=user_id, target_handle=handle).first()
            if row is None:
                row = AssessmentSnapshot(user_id=user_id, target_handle=handle)
                db.add(row)

            row.activity_fingerprint = snapshot.activity_fingerprint
            row.readiness_score = snapshot.readiness_score
            row.readiness_level = snapshot.readiness_level
            row.decision = snapshot.decision
            row.bridge = snapshot.bridge
            row.reasoning = snapshot.reasoning
            row.focus_areas = list(snapshot.focus_areas)
            row.icebreaker_text = snapshot.icebreaker_text
            row.next_step_text = snapshot.next_step_text
            row.last_checked_at = snapshot.last_checked_at
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"snapshot upsert failed: {exc}") from exc
        finally:
            db.close()

    async def append_history(self, entry: HistoryEntry) -> None:
        db = self._open_session()
        try:
            db.add(
                AssessmentHistory(
                    user_id=entry.user_id,
                    target_handle=normalize_handle(entry.target_handle),
                    readiness_score=entry.readiness_score,
                    decision=entry.decision,
                    reasoning=entry.reasoning,
                    bridge=entry.bridge,
                    trace=entry.trace,
                    created_at=entry.created_at,
                )
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"history append failed: {exc}") from exc
        finally:
            db.close()

    def _open_session(self) -> Any:
        try:
            return self._session_factory()
        except SQLAlchemyError as exc:
            logger.warning("State store session could not be opened", extra=sanitize_log_extra(error=str(exc)))
            raise StoreUnavailableError(f"state store unavailable: {exc}") from exc
