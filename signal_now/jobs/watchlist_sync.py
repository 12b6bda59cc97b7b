"""Scheduled and on-demand assessment entrypoints."""

from __future__ import annotations

from typing import Any, Iterable

from signal_now.orchestrator import WatchlistOrchestrator


async def run_watchlist_sync(
    user_id: str,
    *,
    orchestrator: WatchlistOrchestrator | None = None,
) -> dict[str, Any]:
    """Assess the active watchlist of one user."""
    job_orchestrator = orchestrator or WatchlistOrchestrator()
    return await job_orchestrator.analyze_watchlist(user_id)


async def run_target_analysis(
    user_id: str,
    target: str,
    *,
    orchestrator: WatchlistOrchestrator | None = None,
) -> dict[str, Any]:
    """Assess one identifier on demand and return the serialized result."""
    job_orchestrator = orchestrator or WatchlistOrchestrator()
    result = await job_orchestrator.analyze_target(user_id, target)
    return result.to_dict()


def parse_user_ids(raw: Any) -> list[str]:
    """Parse user IDs from event payloads: a string, comma list or sequence."""
    if raw is None:
        return []

    if isinstance(raw, str):
        values: Iterable[Any] = raw.split(",")
    elif isinstance(raw, (list, tuple, set)):
        values = raw
    else:
        values = [raw]

    parsed: list[str] = []
    for value in values:
        text = str(value).strip()
        if text and text not in parsed:
            parsed.append(text)
    return parsed
