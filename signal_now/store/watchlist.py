"""Watchlist repository over the `user_watchlist` table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from signal_now.config.database import SessionLocal
from signal_now.errors import DuplicateWatchTargetError, StoreUnavailableError
from signal_now.models.watchlist import TargetType, WatchlistItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class WatchTarget:
    target_type: TargetType
    target_value: str

    @classmethod
    def of(cls, target_type: str | TargetType, target_value: str) -> "WatchTarget":
        """Validate the type and normalize the value to lowercase."""

        try:
            kind = TargetType(str(getattr(target_type, "value", target_type)).strip().lower())
        except ValueError as exc:
            raise ValueError(f"unsupported target type: {target_type!r}") from exc

        value = (target_value or "").strip().strip("/").lower()
        if not value:
            raise ValueError("target value must not be empty")
        if kind is TargetType.REPO and value.count("/") != 1:
            raise ValueError(f"repository targets must look like owner/name: {target_value!r}")
        return cls(target_type=kind, target_value=value)

    def to_dict(self) -> dict[str, str]:
        return {"target_type": self.target_type.value, "target_value": self.target_value}


def _item_to_dict(item: WatchlistItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "target_type": item.target_type,
        "target_value": item.target_value,
        "is_active": bool(item.is_active),
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


class WatchlistRepository:
    """CRUD over a user's watch targets."""

    def __init__(self, session_factory: Callable[[], Any] = SessionLocal) -> None:
        self._session_factory = session_factory

    def list_watchlist(self, user_id: str, *, active_only: bool = True) -> list[dict[str, Any]]:
        db = self._session_factory()
        try:
            query = db.query(WatchlistItem).filter_by(user_id=user_id)
            if active_only:
                query = query.filter_by(is_active=True)
            rows = query.order_by(WatchlistItem.created_at.desc(), WatchlistItem.id.desc()).all()
            return [_item_to_dict(row) for row in rows]
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"watchlist read failed: {exc}") from exc
        finally:
            db.close()

    def list_targets(self, user_id: str) -> list[WatchTarget]:
        return [
            WatchTarget(target_type=TargetType(row["target_type"]), target_value=row["target_value"])
            for row in self.list_watchlist(user_id, active_only=True)
        ]

    def add_to_watchlist(self, user_id: str, target_type: str, target_value: str) -> dict[str, Any]:
        target = WatchTarget.of(target_type, target_value)
        db = self._session_factory()
        try:
            existing = (
                db.query(WatchlistItem)
                .filter_by(user_id=user_id, target_type=target.target_type.value, target_value=target.target_value)
                .first()
            )
            if existing is not None:
                raise DuplicateWatchTargetError(
                    f"{target.target_type.value}:{target.target_value} is already on the watchlist"
                )

            item = WatchlistItem(
                user_id=user_id,
                target_type=target.target_type.value,
                target_value=target.target_value,
                is_active=True,
            )
            db.add(item)
            db.commit()
            db.refresh(item)
            return _item_to_dict(item)
        except IntegrityError as exc:
            db.rollback()
            raise DuplicateWatchTargetError(
                f"{target.target_type.value}:{target.target_value} is already on the watchlist"
            ) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"watchlist insert failed: {exc}") from exc
        finally:
            db.close()

    def remove_from_watchlist(self, user_id: str, target_value: str) -> bool:
        db = self._session_factory()
        try:
            deleted = (
                db.query(WatchlistItem)
                .filter_by(user_id=user_id, target_value=target_value.strip().lower())
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted > 0
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"watchlist delete failed: {exc}") from exc
        finally:
            db.close()

    def set_watchlist_active(self, user_id: str, target_value: str, is_active: bool) -> bool:
        db = self._session_factory()
        try:
            rows = db.query(WatchlistItem).filter_by(user_id=user_id, target_value=target_value.strip().lower()).all()
            for row in rows:
                row.is_active = is_active
            db.commit()
            return bool(rows)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"watchlist update failed: {exc}") from exc
        finally:
            db.close()

    def bulk_add_to_watchlist(self, user_id: str, targets: Iterable[WatchTarget]) -> int:
        """Insert targets that are not already tracked; returns how many were added."""

        db = self._session_factory()
        inserted = 0
        try:
            existing = {
                (row.target_type, row.target_value)
                for row in db.query(WatchlistItem).filter_by(user_id=user_id).all()
            }
            for target in targets:
                key = (target.target_type.value, target.target_value)
                if key in existing:
                    continue
                existing.add(key)
                db.add(
                    WatchlistItem(
                        user_id=user_id,
                        target_type=target.target_type.value,
                        target_value=target.target_value,
                        is_active=True,
                    )
                )
                inserted += 1
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"watchlist bulk insert failed: {exc}") from exc
        finally:
            db.close()

        logger.info("Watchlist bulk add finished", extra={"user_id": user_id, "inserted": inserted})
        return inserted

