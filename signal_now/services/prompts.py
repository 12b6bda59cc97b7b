"""Prompt templates for the three assessment stages."""

from __future__ import annotations

import json
from typing import Any, Optional

EXTRACTION_SYSTEM_MESSAGE = (
    "You extract factual, evidence-based signals from GitHub activity. "
    "Never speculate. Return valid JSON only."
)
SCORING_SYSTEM_MESSAGE = (
    "You decide whether now is a good moment for one developer to contact another. "
    "Base every claim on the supplied evidence. Return valid JSON only."
)
DRAFTING_SYSTEM_MESSAGE = "You write short, casual, human messages between developers. Plain text only."

GOAL_LED_WEIGHTS = "goal alignment 50%, timing/recency 30%, momentum 20%"
TIMING_LED_WEIGHTS = "timing/recency 40%, stack overlap 30%, momentum 30%"


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def build_extraction_prompt(activity: list[dict[str, str]]) -> str:
    return f"""Analyze raw GitHub activity and extract observable signals.

INPUT: recent events, newest first. Each has type, repo, msg, time and a relative age.

Return a JSON object:
{{
  "summary": "1-2 sentence factual summary of what the user has been doing",
  "primary_technologies": ["tech1", "tech2"],
  "activity_pattern": "idle | active | highly_active",
  "notable_signals": ["short factual observation", "short factual observation"]
}}

RULES:
- Do NOT guess intent, emotion or personality
- Do NOT use adjectives like "exciting", "interesting" or "impressive"
- Only list technologies that appear in repo names or messages
- If evidence for a field is thin, write "insufficient data" instead of guessing
- Use "idle" when nothing happened in the last two weeks

DATA:
{_dump(activity)}"""


def build_scoring_prompt(
    *,
    extraction: dict[str, Any],
    requester_activity: list[dict[str, str]],
    goal: str,
    previous: Optional[dict[str, Any]],
    latest_activity_age: str,
) -> str:
    weights = GOAL_LED_WEIGHTS if goal.strip() else TIMING_LED_WEIGHTS
    goal_block = goal.strip() or "(no goal set: weigh timing and stack overlap instead)"
    previous_block = _dump(previous) if previous else "(first assessment)"

    return f"""Decide whether this is a good moment to contact the target.

TARGET PROFILE (factual extraction):
{_dump(extraction)}

TARGET LATEST ACTIVITY: {latest_activity_age}

MY RECENT ACTIVITY:
{_dump(requester_activity)}

MY GOAL:
{goal_block}

PREVIOUS ASSESSMENT:
{previous_block}

SCORING WEIGHTS: {weights}

Return a JSON object:
{{
  "readiness_score": 0-100,
  "readiness_level": "low | medium | high",
  "timing_analysis": "One concrete reason based on activity timing",
  "bridge": "One specific shared repo, tool, stack or problem",
  "the_hook": "The concrete detail a message should open with",
  "reasoning": "2-3 sentences tying the score to the evidence",
  "confidence": "low | medium | high"
}}

RULES:
- Readiness depends heavily on recency; activity older than one week caps the score at 70
- Inactivity caps the score lower still
- Do NOT inflate the score without a concrete bridge
- The bridge must name a repo, tool, stack or problem; never "shared interests"
- If no good bridge exists, say so explicitly and keep the score low"""


def build_drafting_prompt(scoring: dict[str, Any]) -> str:
    return f"""Write a direct message from one developer to another.

INPUT:
{_dump(scoring)}

RULES:
- Max 2 sentences
- Reference the concrete technical detail in the bridge or hook
- No greetings like "Hope you're doing well"
- No emojis, buzzwords or corporate language
- Must sound like a real person, not a pitch

OUTPUT: plain text only."""
