"""Watchlist orchestration: discovery, batch assessment and onboarding."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Callable, Optional, Sequence

from signal_now.config.settings import settings
from signal_now.errors import MissingConfigurationError
from signal_now.services.assessment import AssessmentPipeline, AssessmentResult, TargetError
from signal_now.services.decision_policy import PolicyConfig, decision_sort_key
from signal_now.services.ranker import Candidate, dedupe_candidates
from signal_now.services.text_generation import LLMTextGenerator
from signal_now.sources.activity import ActivityFetcher
from signal_now.sources.discovery import CandidateDiscovery
from signal_now.sources.github_client import GitHubClient, sanitize_for_log, sanitize_log_extra
from signal_now.store.profiles import ProfileRepository, targets_from_profile
from signal_now.store.state_store import SQLAlchemyStateStore, StateStore
from signal_now.store.watchlist import WatchlistRepository, WatchTarget

logger = logging.getLogger(__name__)


def _target_label(target: WatchTarget) -> str:
    return f"{target.target_type.value}:{target.target_value}"


def _candidate_summary(candidate: Candidate) -> dict[str, Any]:
    return {
        "handle": candidate.handle,
        "origin_repository": candidate.origin_repository,
        "heuristic_score": candidate.heuristic_score,
        "avatar_url": candidate.avatar_url,
        "profile_url": candidate.profile_url,
    }


class WatchlistOrchestrator:
    """Coordinates requester lookup, candidate discovery and assessment."""

    def __init__(
        self,
        *,
        github_client_factory: Callable[[], Any] = GitHubClient,
        text_generator_factory: Callable[[], Any] = LLMTextGenerator,
        discovery_factory: Callable[..., Any] = CandidateDiscovery,
        state_store: Optional[StateStore] = None,
        profile_repository: Optional[ProfileRepository] = None,
        watchlist_repository: Optional[WatchlistRepository] = None,
        policy_config: Optional[PolicyConfig] = None,
        now_provider: Optional[Callable[[], datetime]] = None,
        batch_cap: Optional[int] = None,
    ) -> None:
        self._github_client_factory = github_client_factory
        self._text_generator_factory = text_generator_factory
        self._discovery_factory = discovery_factory
        self._state_store = state_store or SQLAlchemyStateStore()
        self._profiles = profile_repository or ProfileRepository()
        self._watchlist = watchlist_repository or WatchlistRepository()
        self._policy_config = policy_config
        self._now = now_provider or (lambda: datetime.now(UTC))
        self._batch_cap = batch_cap or settings.ASSESSMENT_BATCH_CAP

    @property
    def profiles(self) -> ProfileRepository:
        return self._profiles

    @property
    def watchlist(self) -> WatchlistRepository:
        return self._watchlist

    def load_requester(self, user_id: str) -> tuple[str, str]:
        """Return (source handle, goal); raises before any external call when unset."""

        profile = self._profiles.get_profile(user_id)
        if profile is None:
            raise MissingConfigurationError(f"No profile found for user {user_id}")
        source_handle = (profile.get("github_username") or "").strip()
        if not source_handle:
            raise MissingConfigurationError(f"User {user_id} has no GitHub username configured")
        return source_handle, (profile.get("goal") or "").strip()

    def onboard_user(
        self,
        user_id: str,
        *,
        github_username: str,
        goal: str = "",
        repositories: Sequence[str] | str = (),
        organizations: Sequence[str] | str = (),
        people: Sequence[str] | str = (),
    ) -> dict[str, Any]:
        """Save the onboarding profile and seed the watchlist from it."""

        profile = self._profiles.upsert_profile(
            user_id,
            github_username=github_username,
            goal=goal,
            repositories=repositories,
            organizations=organizations,
            people=people,
        )
        added = self._watchlist.bulk_add_to_watchlist(user_id, targets_from_profile(profile))
        logger.info("User onboarded", extra=sanitize_log_extra(user_id=user_id, targets_added=added))
        return {"profile": profile, "targets_added": added}

    def record_engagement(self, user_id: str, target: str, action: str, message: Optional[str] = None) -> dict[str, Any]:
        """Log an outreach action the user took on a target; nothing is persisted."""

        target = (target or "").strip().strip("/").lower()
        action = (action or "").strip().lower()
        if not target or not action:
            raise ValueError("target and action are required")

        recorded_at = self._now()
        logger.info(
            "Engagement recorded",
            extra=sanitize_log_extra(
                user_id=user_id,
                target=target,
                action=action,
                message_chars=len(message or ""),
            ),
        )
        return {
            "success": True,
            "user_id": user_id,
            "target": target,
            "action": action,
            "recorded_at": recorded_at.isoformat(),
        }

    async def analyze_target(self, user_id: str, target: str) -> AssessmentResult:
        """Assess a single identifier; errors propagate to the caller."""

        source_handle, goal = self.load_requester(user_id)
        text_generator = self._text_generator_factory()
        async with self._github_client_factory() as github_client:
            pipeline = self._build_pipeline(github_client, text_generator)
            return await pipeline.assess(user_id=user_id, source_handle=source_handle, target=target, goal=goal)

    async def analyze_watchlist(self, user_id: str) -> dict[str, Any]:
        """Resolve every active watch target, then assess up to the batch cap."""

        source_handle, goal = self.load_requester(user_id)
        targets = self._watchlist.list_targets(user_id)
        text_generator = self._text_generator_factory()

        run: dict[str, Any] = {
            "user_id": user_id,
            "started_at": self._now().isoformat(),
            "targets": len(targets),
            "candidates": 0,
            "results": [],
            "errors": [],
            "warnings": [],
            "deferred": [],
        }
        logger.info(
            "Watchlist analysis started",
            extra=sanitize_log_extra(user_id=user_id, targets=len(targets)),
        )

        if targets:
            async with self._github_client_factory() as github_client:
                candidates = await self._discover(github_client, targets, goal=goal, run=run)
                candidates = [c for c in candidates if c.handle.lower() != source_handle.lower()]
                run["candidates"] = len(candidates)

                selected = candidates[: self._batch_cap]
                run["deferred"] = [candidate.handle for candidate in candidates[self._batch_cap :]]

                pipeline = self._build_pipeline(github_client, text_generator)
                requester_events = await pipeline.fetch_requester_events(source_handle) if selected else []
                outcomes = await asyncio.gather(
                    *(
                        pipeline.assess(
                            user_id=user_id,
                            source_handle=source_handle,
                            target=c.handle,
                            goal=goal,
                            requester_events=requester_events,
                        )
                        for c in selected
                    ),
                    return_exceptions=True,
                )
                self._collect(run, selected, outcomes)

        run["completed_at"] = self._now().isoformat()
        run["success"] = not run["errors"] and not run["warnings"]
        logger.info(
            "Watchlist analysis completed",
            extra=sanitize_log_extra(
                user_id=user_id,
                results=len(run["results"]),
                errors=len(run["errors"]),
                warnings=len(run["warnings"]),
                deferred=len(run["deferred"]),
            ),
        )
        return run

    async def _discover(
        self,
        github_client: Any,
        targets: Sequence[WatchTarget],
        *,
        goal: str,
        run: dict[str, Any],
    ) -> list[Candidate]:
        discovery = self._discovery_factory(github_client, goal=goal)
        resolutions = await asyncio.gather(
            *(discovery.resolve_target(target) for target in targets),
            return_exceptions=True,
        )

        discovered: list[Candidate] = []
        for target, outcome in zip(targets, resolutions):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                warning = TargetError.from_exception(_target_label(target), outcome, now=self._now())
                run["warnings"].append(warning.to_dict())
                logger.warning(
                    "Watch target resolution failed",
                    extra=sanitize_log_extra(target=warning.target, error=warning.error),
                )
                continue
            discovered.extend(outcome)
        return dedupe_candidates(discovered)

    def _collect(self, run: dict[str, Any], selected: Sequence[Candidate], outcomes: Sequence[Any]) -> None:
        results: list[tuple[AssessmentResult, Candidate]] = []
        for candidate, outcome in zip(selected, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                record = TargetError.from_exception(candidate.handle, outcome, now=self._now())
                run["errors"].append(record.to_dict())
                logger.warning(
                    "Candidate assessment failed",
                    extra=sanitize_log_extra(target=candidate.handle, error=sanitize_for_log(str(outcome))),
                )
                continue
            results.append((outcome, candidate))

        results.sort(key=lambda pair: (decision_sort_key(pair[0].decision.value), -pair[0].readiness_score))
        for result, candidate in results:
            payload = result.to_dict()
            payload["candidate"] = _candidate_summary(candidate)
            run["results"].append(payload)

    def _build_pipeline(self, github_client: Any, text_generator: Any) -> AssessmentPipeline:
        return AssessmentPipeline(
            activity_fetcher=ActivityFetcher(github_client),
            text_generator=text_generator,
            state_store=self._state_store,
            policy_config=self._policy_config,
            now_provider=self._now,
        )
