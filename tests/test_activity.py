from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from signal_now.errors import ActivitySourceError, NotFoundError, RateLimitedError
from signal_now.sources.activity import (
    ActivityFetcher,
    EventKind,
    humanize_age,
    normalize_commit,
    normalize_github_event,
)
from signal_now.sources.contracts import FetchResult, FetchState


class FakeClient:
    def __init__(self) -> None:
        self.user_result: FetchResult[list[dict[str, Any]]] = FetchResult(state=FetchState.EMPTY, data=[])
        self.repo_result: FetchResult[list[dict[str, Any]]] = FetchResult(state=FetchState.EMPTY, data=[])
        self.calls: list[tuple[str, Any]] = []

    async def list_user_events(self, handle: str) -> FetchResult[list[dict[str, Any]]]:
        self.calls.append(("user", handle))
        return self.user_result

    async def list_repo_events(self, owner: str, repo: str, *, per_page: int = 30) -> FetchResult[list[dict[str, Any]]]:
        self.calls.append(("repo", (owner, repo, per_page)))
        return self.repo_result


def test_push_event_uses_first_commit_message() -> None:
    event = normalize_github_event(
        {
            "type": "PushEvent",
            "repo": {"name": "oven-sh/bun"},
            "created_at": "2026-03-01T10:00:00Z",
            "payload": {"commits": [{"message": "add bun support"}, {"message": "second"}]},
        }
    )

    assert event is not None
    assert event.kind is EventKind.PUSH
    assert event.repository == "oven-sh/bun"
    assert event.message == "add bun support"
    assert event.timestamp == datetime(2026, 3, 1, 10, 0, tzinfo=UTC)


def test_issue_and_pull_request_events_use_titles() -> None:
    issue = normalize_github_event(
        {
            "type": "IssueCommentEvent",
            "repo": {"name": "a/b"},
            "created_at": "2026-03-01T10:00:00Z",
            "payload": {"issue": {"title": "Crash on start"}},
        }
    )
    pull = normalize_github_event(
        {
            "type": "PullRequestReviewEvent",
            "repo": {"name": "a/b"},
            "created_at": "2026-03-01T10:00:00Z",
            "payload": {"pull_request": {"title": "Speed up install"}},
        }
    )

    assert issue is not None and issue.kind is EventKind.ISSUE and issue.message == "Crash on start"
    assert pull is not None and pull.kind is EventKind.PULL_REQUEST and pull.message == "Speed up install"


def test_unknown_event_types_map_to_other_with_action_message() -> None:
    event = normalize_github_event({"type": "WatchEvent", "repo": {"name": "a/b"}, "created_at": "2026-03-01T10:00:00Z"})

    assert event is not None
    assert event.kind is EventKind.OTHER
    assert event.message == "Action: WatchEvent"


def test_events_without_timestamp_are_dropped() -> None:
    assert normalize_github_event({"type": "PushEvent", "repo": {"name": "a/b"}}) is None


def test_commit_normalizes_to_push() -> None:
    event = normalize_commit(
        {"commit": {"message": "fix: lockfile", "author": {"date": "2026-03-01T09:00:00+02:00"}}},
        "a/b",
    )

    assert event is not None
    assert event.kind is EventKind.PUSH
    assert event.timestamp == datetime(2026, 3, 1, 7, 0, tzinfo=UTC)


def test_humanize_age_buckets() -> None:
    now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    assert humanize_age(now - timedelta(seconds=20), now) == "just now"
    assert humanize_age(now - timedelta(minutes=1), now) == "1 minute ago"
    assert humanize_age(now - timedelta(minutes=5), now) == "5 minutes ago"
    assert humanize_age(now - timedelta(hours=3), now) == "3 hours ago"
    assert humanize_age(now - timedelta(days=8), now) == "8 days ago"


@pytest.mark.asyncio
async def test_fetcher_routes_repositories_and_sorts_most_recent_first() -> None:
    client = FakeClient()
    client.repo_result = FetchResult(
        state=FetchState.OK,
        data=[
            {"type": "WatchEvent", "repo": {"name": "a/b"}, "created_at": "2026-03-01T08:00:00Z"},
            {"type": "ForkEvent", "repo": {"name": "a/b"}, "created_at": "2026-03-01T11:00:00Z"},
        ],
    )

    events = await ActivityFetcher(client).fetch_events("a/b")

    assert client.calls == [("repo", ("a", "b", 30))]
    assert [event.message for event in events] == ["Action: ForkEvent", "Action: WatchEvent"]


@pytest.mark.asyncio
async def test_fetcher_returns_empty_list_for_quiet_user() -> None:
    client = FakeClient()

    events = await ActivityFetcher(client).fetch_events("quiet-dev")

    assert events == []
    assert client.calls == [("user", "quiet-dev")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "error_type"),
    [(404, NotFoundError), (429, RateLimitedError), (500, ActivitySourceError), (403, ActivitySourceError)],
)
async def test_fetcher_maps_failures_to_domain_errors(status_code: int, error_type: type[Exception]) -> None:
    client = FakeClient()
    client.user_result = FetchResult(state=FetchState.FAILED, status_code=status_code, error="boom")

    with pytest.raises(error_type) as excinfo:
        await ActivityFetcher(client).fetch_events("someone")

    assert excinfo.value.identifier == "someone"
    if error_type is ActivitySourceError:
        assert not isinstance(excinfo.value, (NotFoundError, RateLimitedError))
