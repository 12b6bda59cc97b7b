from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

import pytest

from signal_now.errors import MissingConfigurationError, NotFoundError
from signal_now.jobs.watchlist_sync import parse_user_ids, run_target_analysis, run_watchlist_sync
from signal_now.models.watchlist import TargetType
from signal_now.orchestrator import WatchlistOrchestrator
from signal_now.services.prompts import EXTRACTION_SYSTEM_MESSAGE, SCORING_SYSTEM_MESSAGE
from signal_now.services.ranker import Candidate
from signal_now.sources.contracts import FetchResult, FetchState
from signal_now.store.state_store import HistoryEntry, SnapshotRecord
from signal_now.store.watchlist import WatchTarget

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FakeGitHubClient:
    def __init__(self, events: Optional[dict[str, FetchResult[Any]]] = None) -> None:
        self.events = events or {}
        self.entered = False
        self.requested: list[str] = []

    async def __aenter__(self) -> "FakeGitHubClient":
        self.entered = True
        return self

    async def __aexit__(self, *_: Any) -> None:
        return None

    async def list_user_events(self, handle: str) -> FetchResult[list[dict[str, Any]]]:
        self.requested.append(handle)
        return self.events.get(handle, FetchResult(state=FetchState.EMPTY, data=[]))


class FakeDiscovery:
    def __init__(self, outcomes: dict[str, Any]) -> None:
        self.outcomes = outcomes

    def __call__(self, github_client: Any, *, goal: str = "") -> "FakeDiscovery":
        return self

    async def resolve_target(self, target: WatchTarget) -> list[Candidate]:
        outcome = self.outcomes[target.target_value]
        if isinstance(outcome, Exception):
            raise outcome
        return [Candidate(handle=handle, origin_repository=target.target_value) for handle in outcome]


class FakeGenerator:
    def __init__(self) -> None:
        self.calls: list[Optional[str]] = []

    async def generate(self, prompt: str, *, expect_json: bool = False, system: Optional[str] = None) -> str:
        self.calls.append(system)
        if system == EXTRACTION_SYSTEM_MESSAGE:
            return json.dumps({"summary": "Shipping Bun support.", "activity_pattern": "active"})
        if system == SCORING_SYSTEM_MESSAGE:
            return json.dumps(
                {
                    "readiness_score": 88,
                    "readiness_level": "high",
                    "timing_analysis": "Pushed minutes ago.",
                    "bridge": "Bun migration",
                    "reasoning": "Fresh and aligned.",
                }
            )
        return "Saw your Bun commit. Curious how the lockfile change went."


class InMemoryStateStore:
    def __init__(self) -> None:
        self.snapshots: dict[tuple[str, str], SnapshotRecord] = {}
        self.history: list[HistoryEntry] = []

    async def get_snapshot(self, user_id: str, target_handle: str) -> Optional[SnapshotRecord]:
        return self.snapshots.get((user_id, target_handle))

    async def upsert_snapshot(self, user_id: str, target_handle: str, snapshot: SnapshotRecord) -> None:
        self.snapshots[(user_id, target_handle)] = snapshot

    async def append_history(self, entry: HistoryEntry) -> None:
        self.history.append(entry)


class FakeProfiles:
    def __init__(self, profile: Optional[dict[str, Any]]) -> None:
        self.profile = profile
        self.upserts: list[dict[str, Any]] = []

    def get_profile(self, user_id: str) -> Optional[dict[str, Any]]:
        return self.profile

    def upsert_profile(self, user_id: str, **fields: Any) -> dict[str, Any]:
        self.upserts.append(fields)
        self.profile = {"user_id": user_id, **fields}
        return self.profile


class FakeWatchlist:
    def __init__(self, targets: list[WatchTarget]) -> None:
        self.targets = targets
        self.bulk_added: list[WatchTarget] = []

    def list_targets(self, user_id: str) -> list[WatchTarget]:
        return list(self.targets)

    def bulk_add_to_watchlist(self, user_id: str, targets: list[WatchTarget]) -> int:
        self.bulk_added.extend(targets)
        return len(targets)


def _recent_push(minutes_ago: int = 5) -> FetchResult[list[dict[str, Any]]]:
    return FetchResult(
        state=FetchState.OK,
        data=[
            {
                "type": "PushEvent",
                "repo": {"name": "oven-sh/bun"},
                "created_at": (NOW - timedelta(minutes=minutes_ago)).isoformat(),
                "payload": {"commits": [{"message": "add bun support"}]},
            }
        ],
    )


def _orchestrator(
    *,
    targets: list[WatchTarget],
    outcomes: dict[str, Any],
    client: Optional[FakeGitHubClient] = None,
    profile: Optional[dict[str, Any]] = None,
    batch_cap: Optional[int] = None,
    generator: Optional[FakeGenerator] = None,
) -> tuple[WatchlistOrchestrator, FakeGitHubClient, FakeGenerator, InMemoryStateStore]:
    client = client or FakeGitHubClient()
    generator = generator or FakeGenerator()
    store = InMemoryStateStore()
    orchestrator = WatchlistOrchestrator(
        github_client_factory=lambda: client,
        text_generator_factory=lambda: generator,
        discovery_factory=FakeDiscovery(outcomes),
        state_store=store,
        profile_repository=FakeProfiles(profile if profile is not None else {"github_username": "me", "goal": "bun"}),
        watchlist_repository=FakeWatchlist(targets),
        now_provider=lambda: NOW,
        batch_cap=batch_cap,
    )
    return orchestrator, client, generator, store


def _usernames(*values: str) -> list[WatchTarget]:
    return [WatchTarget(TargetType.USERNAME, value) for value in values]


def test_one_failing_target_becomes_a_warning_and_the_batch_continues() -> None:
    orchestrator, _, _, _ = _orchestrator(
        targets=_usernames("a", "b", "c", "d", "e"),
        outcomes={"a": ["a"], "b": ["b"], "c": NotFoundError("gone", identifier="c"), "d": ["d"], "e": ["e"]},
        batch_cap=5,
    )

    result = asyncio.run(orchestrator.analyze_watchlist("user-1"))

    assert len(result["results"]) == 4
    assert len(result["warnings"]) == 1
    assert result["warnings"][0]["target"] == "username:c"
    assert result["warnings"][0]["error_type"] == "NotFoundError"
    assert result["errors"] == []
    assert result["success"] is False


def test_candidates_are_deduplicated_and_capped_with_deferred_report() -> None:
    orchestrator, _, _, store = _orchestrator(
        targets=[WatchTarget(TargetType.REPO, "acme/one"), WatchTarget(TargetType.REPO, "acme/two")],
        outcomes={"acme/one": ["alice", "bob"], "acme/two": ["Bob", "carol", "dana"]},
    )

    result = asyncio.run(orchestrator.analyze_watchlist("user-1"))

    assert result["candidates"] == 4
    assert [item["target"] for item in result["results"]] == ["alice", "bob", "carol"]
    assert result["deferred"] == ["dana"]
    assert result["results"][1]["candidate"]["origin_repository"] == "acme/one"
    assert len(store.history) == 3


def test_requester_is_not_assessed_as_their_own_candidate() -> None:
    orchestrator, _, _, _ = _orchestrator(
        targets=[WatchTarget(TargetType.REPO, "me/tools")],
        outcomes={"me/tools": ["Me", "alice"]},
    )

    result = asyncio.run(orchestrator.analyze_watchlist("user-1"))

    assert [item["target"] for item in result["results"]] == ["alice"]


def test_results_are_sorted_by_decision_priority_and_errors_reported_separately() -> None:
    client = FakeGitHubClient(
        {
            "hot": _recent_push(),
            "ghost": FetchResult(state=FetchState.FAILED, status_code=404, error="Not Found"),
        }
    )
    orchestrator, _, generator, _ = _orchestrator(
        targets=_usernames("quiet", "ghost", "hot"),
        outcomes={"quiet": ["quiet"], "ghost": ["ghost"], "hot": ["hot"]},
        client=client,
    )

    result = asyncio.run(orchestrator.analyze_watchlist("user-1"))

    assert [(item["target"], item["decision"]) for item in result["results"]] == [("hot", "ENGAGE"), ("quiet", "WAIT")]
    assert result["results"][0]["icebreaker"] == "Saw your Bun commit. Curious how the lockfile change went."
    assert [(error["target"], error["error_type"]) for error in result["errors"]] == [("ghost", "NotFoundError")]
    assert len(generator.calls) == 3


def test_requester_window_is_fetched_once_per_batch() -> None:
    client = FakeGitHubClient({"a": _recent_push(), "b": _recent_push(), "c": _recent_push()})
    orchestrator, _, generator, _ = _orchestrator(
        targets=_usernames("a", "b", "c"),
        outcomes={"a": ["a"], "b": ["b"], "c": ["c"]},
        client=client,
    )

    result = asyncio.run(orchestrator.analyze_watchlist("user-1"))

    assert len(result["results"]) == 3
    assert client.requested.count("me") == 1
    assert sorted(handle for handle in client.requested if handle != "me") == ["a", "b", "c"]
    assert generator.calls.count(SCORING_SYSTEM_MESSAGE) == 3


@pytest.mark.parametrize("profile", [{}, {"github_username": "", "goal": "bun"}])
def test_missing_source_identity_fails_before_external_calls(profile: dict[str, Any]) -> None:
    orchestrator, client, generator, _ = _orchestrator(targets=_usernames("a"), outcomes={"a": ["a"]}, profile=profile)

    with pytest.raises(MissingConfigurationError):
        asyncio.run(orchestrator.analyze_watchlist("user-1"))

    assert client.entered is False
    assert generator.calls == []


def test_missing_profile_fails_before_external_calls() -> None:
    orchestrator, client, _, _ = _orchestrator(targets=[], outcomes={})
    orchestrator._profiles = FakeProfiles(None)

    with pytest.raises(MissingConfigurationError):
        asyncio.run(orchestrator.analyze_target("user-1", "alice"))
    assert client.entered is False


def test_empty_watchlist_returns_empty_summary() -> None:
    orchestrator, client, _, _ = _orchestrator(targets=[], outcomes={})

    result = asyncio.run(run_watchlist_sync("user-1", orchestrator=orchestrator))

    assert result["results"] == []
    assert result["success"] is True
    assert client.entered is False


def test_single_target_analysis_propagates_errors_and_serializes_results() -> None:
    client = FakeGitHubClient(
        {"hot": _recent_push(), "ghost": FetchResult(state=FetchState.FAILED, status_code=404, error="Not Found")}
    )
    orchestrator, _, _, _ = _orchestrator(targets=[], outcomes={}, client=client)

    payload = asyncio.run(run_target_analysis("user-1", "hot", orchestrator=orchestrator))
    assert payload["decision"] == "ENGAGE"
    assert payload["checked_at"] == NOW.isoformat()

    with pytest.raises(NotFoundError):
        asyncio.run(orchestrator.analyze_target("user-1", "ghost"))


def test_onboarding_saves_profile_and_seeds_watchlist() -> None:
    orchestrator, _, _, _ = _orchestrator(targets=[], outcomes={})

    result = orchestrator.onboard_user(
        "user-1",
        github_username="me",
        goal="Find developers migrating to Bun",
        repositories=["oven-sh/bun"],
        organizations=["acme"],
        people=["alice"],
    )

    assert result["targets_added"] == 3
    assert orchestrator.watchlist.bulk_added == [
        WatchTarget(TargetType.REPO, "oven-sh/bun"),
        WatchTarget(TargetType.ORG, "acme"),
        WatchTarget(TargetType.USERNAME, "alice"),
    ]


def test_parse_user_ids() -> None:
    assert parse_user_ids("a, b,,a") == ["a", "b"]
    assert parse_user_ids(["x", " y "]) == ["x", "y"]
    assert parse_user_ids(None) == []
