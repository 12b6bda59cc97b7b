"""Resolve watch targets (repos, orgs, people) into ranked candidates."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Optional

from signal_now.config.settings import settings
from signal_now.models.watchlist import TargetType
from signal_now.services.ranker import Candidate, dedupe_candidates, rank_candidates
from signal_now.sources.activity import normalize_commit, raise_for_fetch_failure
from signal_now.sources.github_client import sanitize_log_extra
from signal_now.store.watchlist import WatchTarget

logger = logging.getLogger(__name__)

GITHUB_PROFILE_URL = "https://github.com/{handle}"


def candidate_from_commit(payload: dict[str, Any], repository: str) -> Optional[Candidate]:
    """Commit authors with a linked personal account become candidates; bots are skipped."""

    author = payload.get("author") if isinstance(payload.get("author"), dict) else {}
    login = str(author.get("login") or "").strip()
    if not login or author.get("type") != "User":
        return None

    event = normalize_commit(payload, repository)
    message = event.message.splitlines() if event else []
    return Candidate(
        handle=login,
        origin_repository=repository,
        last_activity_message=message[0] if message else "",
        last_activity_time=event.timestamp if event else None,
        avatar_url=author.get("avatar_url"),
        profile_url=author.get("html_url") or GITHUB_PROFILE_URL.format(handle=login),
    )


def apply_profile(candidate: Candidate, profile: dict[str, Any]) -> Candidate:
    try:
        followers = int(profile.get("followers") or 0)
    except (TypeError, ValueError):
        followers = 0
    return replace(
        candidate,
        bio=profile.get("bio") or candidate.bio,
        follower_count=followers,
        has_email=bool(profile.get("email")),
        has_website=bool(profile.get("blog") or profile.get("twitter_username")),
        avatar_url=profile.get("avatar_url") or candidate.avatar_url,
        profile_url=profile.get("html_url") or candidate.profile_url,
    )


class CandidateDiscovery:
    """Turns a watch target into the people worth assessing."""

    def __init__(
        self,
        github_client: Any,
        *,
        goal: str = "",
        concurrency: Optional[int] = None,
        commits_page_size: Optional[int] = None,
        repo_candidate_limit: Optional[int] = None,
        org_repo_count: Optional[int] = None,
        org_repo_candidate_limit: Optional[int] = None,
        org_candidate_limit: Optional[int] = None,
    ) -> None:
        self._client = github_client
        self._goal = goal or ""
        self._semaphore = asyncio.Semaphore(concurrency or settings.GITHUB_CONCURRENCY)
        self._commits_page_size = commits_page_size or settings.REPO_COMMITS_PAGE_SIZE
        self._repo_candidate_limit = repo_candidate_limit or settings.REPO_CANDIDATE_LIMIT
        self._org_repo_count = org_repo_count or settings.ORG_REPO_COUNT
        self._org_repo_candidate_limit = org_repo_candidate_limit or settings.ORG_REPO_CANDIDATE_LIMIT
        self._org_candidate_limit = org_candidate_limit or settings.ORG_CANDIDATE_LIMIT

    async def resolve_target(self, target: WatchTarget) -> list[Candidate]:
        if target.target_type is TargetType.REPO:
            return await self.resolve_repository(target.target_value)
        if target.target_type is TargetType.ORG:
            return await self.resolve_org(target.target_value)
        return self.resolve_handle(target.target_value)

    def resolve_handle(self, handle: str) -> list[Candidate]:
        handle = handle.strip().lstrip("@")
        return [Candidate(handle=handle, profile_url=GITHUB_PROFILE_URL.format(handle=handle))]

    async def resolve_repository(self, full_name: str, limit: Optional[int] = None) -> list[Candidate]:
        """Recent unique commit authors of a repository, enriched and ranked."""

        full_name = full_name.strip().strip("/")
        owner, repo = full_name.split("/", 1)
        result = await self._client.list_repo_commits(owner, repo, per_page=self._commits_page_size)
        raise_for_fetch_failure(result, identifier=full_name)

        authors = dedupe_candidates(
            candidate
            for candidate in (candidate_from_commit(item, full_name) for item in (result.data or []))
            if candidate is not None
        )
        enriched = await asyncio.gather(*(self._enrich(candidate) for candidate in authors))
        ranked = rank_candidates(enriched, self._goal, limit or self._repo_candidate_limit)

        logger.info(
            "Resolved repository candidates",
            extra=sanitize_log_extra(repository=full_name, authors=len(authors), selected=len(ranked)),
        )
        return ranked

    async def resolve_org(self, org: str) -> list[Candidate]:
        """Candidates from the organization's most recently pushed repositories, re-ranked."""

        org = org.strip().strip("/")
        result = await self._client.list_org_repos(org, per_page=self._org_repo_count)
        raise_for_fetch_failure(result, identifier=org)

        repo_names = [
            str(item.get("full_name"))
            for item in (result.data or [])[: self._org_repo_count]
            if item.get("full_name") and not item.get("archived")
        ]
        if not repo_names:
            return []

        resolved = await asyncio.gather(
            *(self.resolve_repository(name, self._org_repo_candidate_limit) for name in repo_names),
            return_exceptions=True,
        )

        merged: list[Candidate] = []
        failures: list[BaseException] = []
        for name, outcome in zip(repo_names, resolved):
            if isinstance(outcome, BaseException):
                failures.append(outcome)
                logger.warning(
                    "Skipping organization repository",
                    extra=sanitize_log_extra(org=org, repository=name, error=str(outcome)),
                )
                continue
            merged.extend(outcome)

        if failures and len(failures) == len(repo_names):
            raise failures[0]
        return rank_candidates(merged, self._goal, self._org_candidate_limit)

    async def _enrich(self, candidate: Candidate) -> Candidate:
        async with self._semaphore:
            result = await self._client.get_user(candidate.handle)
        if not result.is_ok or not isinstance(result.data, dict):
            logger.debug(
                "Profile enrichment skipped",
                extra=sanitize_log_extra(handle=candidate.handle, status_code=result.status_code),
            )
            return candidate
        return apply_profile(candidate, result.data)
