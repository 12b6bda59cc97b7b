"""Outreach decision policy."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from signal_now.config.settings import settings


class Decision(str, enum.Enum):
    ENGAGE = "ENGAGE"
    WAIT = "WAIT"
    IGNORE = "IGNORE"
    NO_CHANGE = "NO_CHANGE"


DECISION_PRIORITY: dict[str, int] = {
    Decision.ENGAGE.value: 0,
    Decision.WAIT.value: 1,
    Decision.IGNORE.value: 2,
    Decision.NO_CHANGE.value: 3,
}

NEXT_STEPS: dict[Decision, str] = {
    Decision.ENGAGE: "Send message now",
    Decision.WAIT: "Check back in a few days",
    Decision.IGNORE: "No action needed",
    Decision.NO_CHANGE: "No new activity since last check",
}


@dataclass(slots=True)
class PolicyConfig:
    engage_threshold: int = field(default_factory=lambda: settings.ENGAGE_THRESHOLD)
    wait_threshold: int = field(default_factory=lambda: settings.WAIT_THRESHOLD)
    no_change_delta: int = field(default_factory=lambda: settings.NO_CHANGE_DELTA)


def decide(
    score: int,
    *,
    previous_score: Optional[int] = None,
    previous_fresh: bool = False,
    config: Optional[PolicyConfig] = None,
) -> Decision:
    """Map a readiness score and the previous snapshot to an outreach status.

    ENGAGE is checked first, so a high score engages even when unchanged.
    NO_CHANGE requires a previous snapshot that is still fresh.
    """

    config = config or PolicyConfig()
    if score >= config.engage_threshold:
        return Decision.ENGAGE

    has_previous = previous_score is not None
    delta = abs(score - (previous_score or 0))
    if has_previous and previous_fresh and delta < config.no_change_delta:
        return Decision.NO_CHANGE

    if score >= config.wait_threshold:
        return Decision.WAIT
    return Decision.IGNORE


def readiness_level_for(score: int) -> str:
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def decision_sort_key(decision: Optional[str]) -> int:
    return DECISION_PRIORITY.get(decision or "", 99)
