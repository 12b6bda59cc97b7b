"""Three-stage outreach assessment: extraction, scoring and drafting."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Optional, Sequence

from signal_now.config.settings import settings
from signal_now.errors import ActivitySourceError, MalformedModelOutputError, StoreUnavailableError
from signal_now.services.change_detector import can_reuse_snapshot, fingerprint, is_fresh
from signal_now.services.decision_policy import NEXT_STEPS, Decision, PolicyConfig, decide, readiness_level_for
from signal_now.services.prompts import (
    DRAFTING_SYSTEM_MESSAGE,
    EXTRACTION_SYSTEM_MESSAGE,
    SCORING_SYSTEM_MESSAGE,
    build_drafting_prompt,
    build_extraction_prompt,
    build_scoring_prompt,
)
from signal_now.services.schemas import ExtractionResult, ScoringResult, validate_stage
from signal_now.services.text_generation import parse_json_payload
from signal_now.sources.activity import ActivityEvent, humanize_age
from signal_now.sources.github_client import sanitize_for_log, sanitize_log_extra
from signal_now.store.state_store import HistoryEntry, SnapshotRecord, StateStore

logger = logging.getLogger(__name__)

STAGE_EXTRACTION = "extraction"
STAGE_SCORING = "scoring"
STAGE_DRAFTING = "drafting"

MAX_ICEBREAKER_SENTENCES = 2
IDLE_REASONING = "No recent activity to assess."

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(slots=True)
class AssessmentResult:
    target: str
    decision: Decision
    readiness_score: int
    readiness_level: str
    reasoning: str
    bridge: str
    focus_areas: list[str]
    icebreaker: Optional[str]
    next_step: str
    cached: bool
    checked_at: datetime
    trace: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "decision": self.decision.value,
            "readiness_score": self.readiness_score,
            "readiness_level": self.readiness_level,
            "reasoning": self.reasoning,
            "bridge": self.bridge,
            "focus_areas": list(self.focus_areas),
            "icebreaker": self.icebreaker,
            "next_step": self.next_step,
            "cached": self.cached,
            "checked_at": self.checked_at.isoformat(),
            "trace": self.trace,
        }


@dataclass(slots=True)
class TargetError:
    """A per-target failure in a batch; distinct from an IGNORE result."""

    target: str
    error: str
    error_type: str
    timestamp: datetime

    @classmethod
    def from_exception(cls, target: str, exc: BaseException, *, now: Optional[datetime] = None) -> "TargetError":
        return cls(
            target=target,
            error=str(sanitize_for_log(str(exc), key="error")),
            error_type=type(exc).__name__,
            timestamp=now or datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "error": self.error,
            "error_type": self.error_type,
            "timestamp": self.timestamp.isoformat(),
        }


def trim_to_sentences(text: str, limit: int = MAX_ICEBREAKER_SENTENCES) -> str:
    cleaned = " ".join((text or "").strip().strip('"').split())
    if not cleaned:
        return ""
    sentences = _SENTENCE_BOUNDARY.split(cleaned)
    return " ".join(sentences[:limit]).strip()


def cap_for_recency(score: int, latest_activity: Optional[datetime], now: datetime) -> int:
    """Clamp a model score by how long the target has been quiet."""

    score = max(0, min(100, int(score)))
    if latest_activity is None:
        return score
    age = now - latest_activity
    if age > timedelta(days=settings.DORMANT_AFTER_DAYS):
        return min(score, settings.DORMANT_SCORE_CAP)
    if age > timedelta(days=settings.STALE_AFTER_DAYS):
        return min(score, settings.STALE_SCORE_CAP)
    return score


class AssessmentPipeline:
    """Runs one target through fetch, change detection, the three stages and persistence."""

    def __init__(
        self,
        *,
        activity_fetcher: Any,
        text_generator: Any,
        state_store: StateStore,
        policy_config: Optional[PolicyConfig] = None,
        now_provider: Optional[Callable[[], datetime]] = None,
        target_window: Optional[int] = None,
        requester_window: Optional[int] = None,
    ) -> None:
        self._fetcher = activity_fetcher
        self._generator = text_generator
        self._store = state_store
        self._policy = policy_config or PolicyConfig()
        self._now = now_provider or (lambda: datetime.now(UTC))
        self._target_window = target_window or settings.TARGET_ACTIVITY_WINDOW
        self._requester_window = requester_window or settings.REQUESTER_ACTIVITY_WINDOW

    async def assess(
        self,
        *,
        user_id: str,
        source_handle: str,
        target: str,
        goal: str = "",
        requester_events: Optional[Sequence[ActivityEvent]] = None,
    ) -> AssessmentResult:
        """Assess one target.

        The requester window is fetched only once the run reaches scoring; batch
        callers pass a window fetched once with `fetch_requester_events`.
        """

        target = target.strip().strip("/")
        target_events = await self._fetcher.fetch_events(target)

        now = self._now()
        current_fingerprint = fingerprint(target_events)
        previous = await self._load_previous(user_id, target)

        if previous is not None and can_reuse_snapshot(
            previous.activity_fingerprint,
            previous.last_checked_at,
            current_fingerprint,
            now=now,
        ):
            logger.info("Activity unchanged, reusing snapshot", extra=sanitize_log_extra(target=target))
            return self._cached_result(target, previous)

        window = list(target_events)[: self._target_window]
        if not window:
            result = self._idle_result(target, now, trace={"fingerprint": current_fingerprint, "events": 0})
            await self._persist(user_id, target, current_fingerprint, result)
            return result

        extraction = await self._run_extraction(window, now)
        if extraction.activity_pattern == "idle":
            result = self._idle_result(
                target,
                now,
                reasoning=extraction.summary,
                focus_areas=extraction.primary_technologies,
                trace={
                    "fingerprint": current_fingerprint,
                    "events": len(window),
                    STAGE_EXTRACTION: extraction.model_dump(),
                },
            )
            await self._persist(user_id, target, current_fingerprint, result)
            return result

        if requester_events is None:
            requester_events = await self.fetch_requester_events(source_handle)

        scoring = await self._run_scoring(
            extraction,
            requester_events=list(requester_events)[: self._requester_window],
            goal=goal,
            previous=previous,
            latest=window[0],
            now=now,
        )
        score = cap_for_recency(scoring.readiness_score, window[0].timestamp, now)
        level = scoring.readiness_level if score == scoring.readiness_score else readiness_level_for(score)

        decision = decide(
            score,
            previous_score=previous.readiness_score if previous else None,
            previous_fresh=previous is not None and is_fresh(previous.last_checked_at, now=now),
            config=self._policy,
        )

        icebreaker: Optional[str] = None
        if decision is Decision.ENGAGE:
            icebreaker = await self._run_drafting(scoring, score=score, level=level)

        result = AssessmentResult(
            target=target,
            decision=decision,
            readiness_score=score,
            readiness_level=level,
            reasoning=scoring.reasoning,
            bridge=scoring.bridge,
            focus_areas=list(extraction.primary_technologies),
            icebreaker=icebreaker,
            next_step=NEXT_STEPS[decision],
            cached=False,
            checked_at=now,
            trace={
                "fingerprint": current_fingerprint,
                "events": len(window),
                STAGE_EXTRACTION: extraction.model_dump(),
                STAGE_SCORING: scoring.model_dump(),
                "model_score": scoring.readiness_score,
                STAGE_DRAFTING: icebreaker,
            },
        )
        await self._persist(user_id, target, current_fingerprint, result)
        logger.info(
            "Assessment completed",
            extra=sanitize_log_extra(target=target, decision=decision.value, score=score),
        )
        return result

    async def fetch_requester_events(self, source_handle: str) -> list[ActivityEvent]:
        try:
            return await self._fetcher.fetch_events(source_handle)
        except ActivitySourceError as exc:
            logger.warning(
                "Requester activity unavailable, scoring without it",
                extra=sanitize_log_extra(source_handle=source_handle, error=str(exc)),
            )
            return []

    async def _load_previous(self, user_id: str, target: str) -> Optional[SnapshotRecord]:
        try:
            return await self._store.get_snapshot(user_id, target)
        except StoreUnavailableError as exc:
            logger.warning(
                "Snapshot lookup failed, assessing without history",
                extra=sanitize_log_extra(target=target, error=str(exc)),
            )
            return None

    async def _run_extraction(self, window: Sequence[ActivityEvent], now: datetime) -> ExtractionResult:
        prompt = build_extraction_prompt([event.to_prompt_dict(now) for event in window])
        raw = await self._generator.generate(prompt, expect_json=True, system=EXTRACTION_SYSTEM_MESSAGE)
        payload = parse_json_payload(raw, stage=STAGE_EXTRACTION)
        return validate_stage(ExtractionResult, payload, stage=STAGE_EXTRACTION)

    async def _run_scoring(
        self,
        extraction: ExtractionResult,
        *,
        requester_events: Sequence[ActivityEvent],
        goal: str,
        previous: Optional[SnapshotRecord],
        latest: ActivityEvent,
        now: datetime,
    ) -> ScoringResult:
        previous_payload = None
        if previous is not None:
            previous_payload = {
                "readiness_score": previous.readiness_score,
                "readiness_level": previous.readiness_level,
                "decision": previous.decision,
                "bridge": previous.bridge,
                "reasoning": previous.reasoning,
                "last_checked": humanize_age(previous.last_checked_at, now),
            }

        prompt = build_scoring_prompt(
            extraction=extraction.model_dump(),
            requester_activity=[event.to_prompt_dict(now) for event in requester_events],
            goal=goal or "",
            previous=previous_payload,
            latest_activity_age=humanize_age(latest.timestamp, now),
        )
        raw = await self._generator.generate(prompt, expect_json=True, system=SCORING_SYSTEM_MESSAGE)
        payload = parse_json_payload(raw, stage=STAGE_SCORING)
        return validate_stage(ScoringResult, payload, stage=STAGE_SCORING)

    async def _run_drafting(self, scoring: ScoringResult, *, score: int, level: str) -> str:
        scoring_input = scoring.model_dump()
        scoring_input.update(readiness_score=score, readiness_level=level)
        raw = await self._generator.generate(build_drafting_prompt(scoring_input), system=DRAFTING_SYSTEM_MESSAGE)
        icebreaker = trim_to_sentences(raw)
        if not icebreaker:
            raise MalformedModelOutputError("Drafting produced an empty message", stage=STAGE_DRAFTING, raw=raw)
        return icebreaker

    def _idle_result(
        self,
        target: str,
        now: datetime,
        *,
        reasoning: str = IDLE_REASONING,
        focus_areas: Sequence[str] = (),
        trace: Optional[dict[str, Any]] = None,
    ) -> AssessmentResult:
        return AssessmentResult(
            target=target,
            decision=Decision.WAIT,
            readiness_score=0,
            readiness_level="low",
            reasoning=reasoning or IDLE_REASONING,
            bridge="",
            focus_areas=list(focus_areas),
            icebreaker=None,
            next_step=NEXT_STEPS[Decision.WAIT],
            cached=False,
            checked_at=now,
            trace={"idle": True, **(trace or {})},
        )

    @staticmethod
    def _cached_result(target: str, previous: SnapshotRecord) -> AssessmentResult:
        try:
            decision = Decision(previous.decision)
        except ValueError:
            decision = Decision.NO_CHANGE
        return AssessmentResult(
            target=target,
            decision=decision,
            readiness_score=previous.readiness_score,
            readiness_level=previous.readiness_level,
            reasoning=previous.reasoning or "",
            bridge=previous.bridge or "",
            focus_areas=list(previous.focus_areas),
            icebreaker=previous.icebreaker_text,
            next_step=previous.next_step_text or NEXT_STEPS[decision],
            cached=True,
            checked_at=previous.last_checked_at,
            trace={"cached": True, "fingerprint": previous.activity_fingerprint},
        )

    async def _persist(self, user_id: str, target: str, activity_fingerprint: str, result: AssessmentResult) -> None:
        snapshot = SnapshotRecord(
            activity_fingerprint=activity_fingerprint,
            readiness_score=result.readiness_score,
            readiness_level=result.readiness_level,
            decision=result.decision.value,
            last_checked_at=result.checked_at,
            bridge=result.bridge,
            reasoning=result.reasoning,
            focus_areas=list(result.focus_areas),
            icebreaker_text=result.icebreaker,
            next_step_text=result.next_step,
        )
        history = HistoryEntry(
            user_id=user_id,
            target_handle=target,
            created_at=result.checked_at,
            readiness_score=result.readiness_score,
            decision=result.decision.value,
            reasoning=result.reasoning,
            bridge=result.bridge,
            trace=result.trace,
        )
        try:
            await self._store.upsert_snapshot(user_id, target, snapshot)
            await self._store.append_history(history)
        except StoreUnavailableError as exc:
            result.trace["store_error"] = sanitize_for_log(str(exc), key="error")
            logger.warning(
                "Assessment could not be persisted",
                extra=sanitize_log_extra(target=target, error=str(exc)),
            )
