"""Requester profiles: source identity, goal and onboarding lists."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from signal_now.config.database import SessionLocal
from signal_now.errors import StoreUnavailableError
from signal_now.models.profile import UserProfile
from signal_now.models.watchlist import TargetType
from signal_now.store.watchlist import WatchTarget

logger = logging.getLogger(__name__)


def _split_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _join_list(values: Any) -> str:
    if values is None:
        return ""
    if isinstance(values, str):
        return ",".join(_split_list(values))
    return ",".join(str(value).strip() for value in values if str(value).strip())


def profile_to_dict(profile: UserProfile) -> dict[str, Any]:
    return {
        "user_id": profile.id,
        "github_username": profile.github_username,
        "goal": profile.goal or "",
        "repositories": _split_list(profile.repositories),
        "organizations": _split_list(profile.organizations),
        "people": _split_list(profile.people),
    }


def targets_from_profile(profile: dict[str, Any]) -> list[WatchTarget]:
    """Turn onboarding lists into watch targets, skipping unparseable entries."""

    targets: list[WatchTarget] = []
    groups = (
        (TargetType.REPO, profile.get("repositories") or []),
        (TargetType.ORG, profile.get("organizations") or []),
        (TargetType.USERNAME, profile.get("people") or []),
    )
    for target_type, values in groups:
        if isinstance(values, str):
            values = _split_list(values)
        for value in values:
            try:
                targets.append(WatchTarget.of(target_type, value))
            except ValueError as exc:
                logger.warning("Skipping onboarding target", extra={"target": value, "error": str(exc)})
    return targets


class ProfileRepository:
    """Goal source backed by the `profiles` table."""

    def __init__(self, session_factory: Callable[[], Any] = SessionLocal) -> None:
        self._session_factory = session_factory

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        db = self._session_factory()
        try:
            profile = db.query(UserProfile).filter_by(id=user_id).first()
            return profile_to_dict(profile) if profile is not None else None
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"profile read failed: {exc}") from exc
        finally:
            db.close()

    def get_goal(self, user_id: str) -> str:
        profile = self.get_profile(user_id)
        if profile is None:
            return ""
        return profile["goal"].strip()

    def upsert_profile(
        self,
        user_id: str,
        *,
        github_username: Optional[str] = None,
        goal: Optional[str] = None,
        repositories: Any = None,
        organizations: Any = None,
        people: Any = None,
    ) -> dict[str, Any]:
        """Create or update a profile; fields left as None keep their stored value."""

        db = self._session_factory()
        try:
            profile = db.query(UserProfile).filter_by(id=user_id).first()
            if profile is None:
                profile = UserProfile(id=user_id, goal="", repositories="", organizations="", people="")
                db.add(profile)

            if github_username is not None:
                profile.github_username = github_username.strip().lstrip("@") or None
            if goal is not None:
                profile.goal = goal.strip()
            if repositories is not None:
                profile.repositories = _join_list(repositories)
            if organizations is not None:
                profile.organizations = _join_list(organizations)
            if people is not None:
                profile.people = _join_list(people)
            profile.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(profile)
            return profile_to_dict(profile)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreUnavailableError(f"profile upsert failed: {exc}") from exc
        finally:
            db.close()
