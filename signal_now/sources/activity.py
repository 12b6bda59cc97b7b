"""Activity fetching and normalization into a uniform event shape."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional

from dateutil import parser as date_parser

from signal_now.config.settings import settings
from signal_now.errors import ActivitySourceError, NotFoundError, RateLimitedError
from signal_now.sources.contracts import FetchResult
from signal_now.sources.github_client import sanitize_log_extra

logger = logging.getLogger(__name__)


class EventKind(str, enum.Enum):
    PUSH = "push"
    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    OTHER = "other"


_KIND_BY_GITHUB_TYPE: dict[str, EventKind] = {
    "PushEvent": EventKind.PUSH,
    "IssuesEvent": EventKind.ISSUE,
    "IssueCommentEvent": EventKind.ISSUE,
    "PullRequestEvent": EventKind.PULL_REQUEST,
    "PullRequestReviewEvent": EventKind.PULL_REQUEST,
    "PullRequestReviewCommentEvent": EventKind.PULL_REQUEST,
}


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    """One observed action by an actor."""

    kind: EventKind
    repository: str
    message: str
    timestamp: datetime

    def to_prompt_dict(self, now: datetime) -> dict[str, str]:
        return {
            "type": self.kind.value,
            "repo": self.repository,
            "msg": self.message,
            "time": self.timestamp.isoformat(),
            "age": humanize_age(self.timestamp, now),
        }


def is_repository_identifier(identifier: str) -> bool:
    return "/" in identifier.strip().strip("/")


def parse_timestamp(raw: Any) -> Optional[datetime]:
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str) and raw.strip():
        try:
            value = date_parser.isoparse(raw.strip())
        except (TypeError, ValueError):
            return None
    else:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def humanize_age(timestamp: datetime, now: Optional[datetime] = None) -> str:
    """Render an instant as a coarse relative-time string."""

    now = now or datetime.now(UTC)
    seconds = max(int((now - timestamp).total_seconds()), 0)
    if seconds < 60:
        return "just now"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def normalize_github_event(payload: dict[str, Any]) -> Optional[ActivityEvent]:
    """Map a GitHub events-API item to an ActivityEvent; None when unusable."""

    timestamp = parse_timestamp(payload.get("created_at"))
    if timestamp is None:
        return None

    github_type = str(payload.get("type") or "")
    kind = _KIND_BY_GITHUB_TYPE.get(github_type, EventKind.OTHER)
    repo = payload.get("repo") if isinstance(payload.get("repo"), dict) else {}
    body = payload.get("payload") if isinstance(payload.get("payload"), dict) else {}

    message = ""
    if kind == EventKind.PUSH:
        commits = body.get("commits") if isinstance(body.get("commits"), list) else []
        if commits and isinstance(commits[0], dict):
            message = str(commits[0].get("message") or "")
    elif kind == EventKind.ISSUE:
        issue = body.get("issue") if isinstance(body.get("issue"), dict) else {}
        message = str(issue.get("title") or "")
    elif kind == EventKind.PULL_REQUEST:
        pull_request = body.get("pull_request") if isinstance(body.get("pull_request"), dict) else {}
        message = str(pull_request.get("title") or "")
    if not message:
        message = f"Action: {github_type or 'unknown'}"

    return ActivityEvent(
        kind=kind,
        repository=str(repo.get("name") or ""),
        message=message.strip(),
        timestamp=timestamp,
    )


def normalize_commit(payload: dict[str, Any], repository: str) -> Optional[ActivityEvent]:
    """Map a repository commit-list item to a push ActivityEvent."""

    commit = payload.get("commit") if isinstance(payload.get("commit"), dict) else {}
    author = commit.get("author") if isinstance(commit.get("author"), dict) else {}
    timestamp = parse_timestamp(author.get("date"))
    if timestamp is None:
        return None
    return ActivityEvent(
        kind=EventKind.PUSH,
        repository=repository,
        message=str(commit.get("message") or "").strip(),
        timestamp=timestamp,
    )


def raise_for_fetch_failure(result: FetchResult[Any], *, identifier: str) -> None:
    """Translate a failed FetchResult into the domain error taxonomy."""

    if not result.is_failed:
        return
    if result.is_not_found:
        raise NotFoundError(f"GitHub target not found: {identifier}", identifier=identifier, status_code=404)
    if result.is_rate_limited:
        raise RateLimitedError(
            f"GitHub rate limit exhausted while fetching {identifier}",
            identifier=identifier,
            status_code=result.status_code,
        )
    raise ActivitySourceError(
        f"GitHub request failed for {identifier}: {result.error or 'unknown error'}",
        identifier=identifier,
        status_code=result.status_code,
    )


class ActivityFetcher:
    """Fetches a bounded, most-recent-first activity window for a target."""

    def __init__(self, github_client: Any, *, repo_page_size: Optional[int] = None) -> None:
        self._client = github_client
        self._repo_page_size = repo_page_size or settings.REPO_EVENTS_PAGE_SIZE

    async def fetch_events(self, identifier: str) -> list[ActivityEvent]:
        target = identifier.strip().strip("/")
        if is_repository_identifier(target):
            owner, repo = target.split("/", 1)
            result = await self._client.list_repo_events(owner, repo, per_page=self._repo_page_size)
        else:
            result = await self._client.list_user_events(target)

        raise_for_fetch_failure(result, identifier=target)

        events = [event for event in (normalize_github_event(item) for item in (result.data or [])) if event]
        if is_repository_identifier(target):
            events = events[: self._repo_page_size]
        events.sort(key=lambda event: event.timestamp, reverse=True)

        logger.debug(
            "Fetched activity window",
            extra=sanitize_log_extra(target=target, events=len(events)),
        )
        return events
