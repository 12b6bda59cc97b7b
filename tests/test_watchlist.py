from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from signal_now.config.database import Base
from signal_now.errors import DuplicateWatchTargetError
from signal_now.models.watchlist import TargetType
from signal_now.store.profiles import ProfileRepository, targets_from_profile
from signal_now.store.watchlist import WatchlistRepository, WatchTarget


@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def test_add_lowercases_and_rejects_duplicates(session_factory) -> None:
    repo = WatchlistRepository(session_factory=session_factory)

    item = repo.add_to_watchlist("user-1", "repo", "Oven-Sh/Bun")

    assert item["target_value"] == "oven-sh/bun"
    assert item["is_active"] is True
    with pytest.raises(DuplicateWatchTargetError):
        repo.add_to_watchlist("user-1", "repo", "oven-sh/bun")


def test_add_validates_target_type_and_shape(session_factory) -> None:
    repo = WatchlistRepository(session_factory=session_factory)

    with pytest.raises(ValueError):
        repo.add_to_watchlist("user-1", "team", "acme")
    with pytest.raises(ValueError):
        repo.add_to_watchlist("user-1", "repo", "no-slash")


def test_toggle_remove_and_active_listing(session_factory) -> None:
    repo = WatchlistRepository(session_factory=session_factory)
    repo.add_to_watchlist("user-1", "username", "alice")
    repo.add_to_watchlist("user-1", "org", "acme")

    assert repo.set_watchlist_active("user-1", "ALICE", False) is True
    assert [item["target_value"] for item in repo.list_watchlist("user-1")] == ["acme"]
    assert len(repo.list_watchlist("user-1", active_only=False)) == 2
    assert repo.list_targets("user-1") == [WatchTarget(TargetType.ORG, "acme")]

    assert repo.remove_from_watchlist("user-1", "acme") is True
    assert repo.remove_from_watchlist("user-1", "acme") is False
    assert repo.set_watchlist_active("user-1", "missing", True) is False


def test_bulk_add_skips_existing_and_repeated_targets(session_factory) -> None:
    repo = WatchlistRepository(session_factory=session_factory)
    repo.add_to_watchlist("user-1", "username", "alice")

    inserted = repo.bulk_add_to_watchlist(
        "user-1",
        [
            WatchTarget.of("username", "alice"),
            WatchTarget.of("username", "bob"),
            WatchTarget.of("username", "Bob"),
            WatchTarget.of("repo", "acme/demo"),
        ],
    )

    assert inserted == 2
    assert len(repo.list_watchlist("user-1")) == 3


def test_profile_upsert_and_goal(session_factory) -> None:
    profiles = ProfileRepository(session_factory=session_factory)

    assert profiles.get_profile("user-1") is None
    assert profiles.get_goal("user-1") == ""

    profiles.upsert_profile(
        "user-1",
        github_username="@me",
        goal="  Find developers migrating to Bun ",
        repositories=["oven-sh/bun"],
        people="alice, bob",
    )
    profile = profiles.upsert_profile("user-1", organizations=["acme"])

    assert profile["github_username"] == "me"
    assert profile["goal"] == "Find developers migrating to Bun"
    assert profile["repositories"] == ["oven-sh/bun"]
    assert profile["organizations"] == ["acme"]
    assert profile["people"] == ["alice", "bob"]
    assert profiles.get_goal("user-1") == "Find developers migrating to Bun"


def test_targets_from_profile_skips_invalid_entries() -> None:
    targets = targets_from_profile(
        {"repositories": ["Acme/Demo", "not-a-repo"], "organizations": "acme", "people": ["Alice"]}
    )

    assert targets == [
        WatchTarget(TargetType.REPO, "acme/demo"),
        WatchTarget(TargetType.ORG, "acme"),
        WatchTarget(TargetType.USERNAME, "alice"),
    ]
