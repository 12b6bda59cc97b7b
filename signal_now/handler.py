"""
Event-driven entrypoint for Signal Now

Triggered by a scheduler or queue with a small JSON event.
No HTTP server logic - just direct orchestrator invocation.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from signal_now.errors import SignalNowError
from signal_now.jobs.watchlist_sync import parse_user_ids, run_target_analysis, run_watchlist_sync
from signal_now.orchestrator import WatchlistOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

_orchestrator: Optional[WatchlistOrchestrator] = None


def get_orchestrator() -> WatchlistOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = WatchlistOrchestrator()
    return _orchestrator


def handler(event: Optional[Dict[str, Any]], context: Any) -> Dict[str, Any]:
    """
    Dispatch on `event["action"]`.

    Expected event payloads:
    - {"action": "analyze_watchlist", "user_id": "..."}
      (`user_id` may also be a list or comma-separated string)
    - {"action": "analyze", "user_id": "...", "target": "owner/repo" | "handle"}
    - {"action": "engagement", "user_id": "...", "target": "...", "engagement": "messaged", "message": "..."}

    Default action is "analyze_watchlist".

    Returns:
        Dictionary with statusCode, action, and result or error
    """
    event = event or {}
    action = event.get("action", "analyze_watchlist")
    logger.info(f"Handler invoked with action: {action}")

    try:
        orchestrator = get_orchestrator()

        if action == "analyze_watchlist":
            user_ids = parse_user_ids(event.get("user_id"))
            if not user_ids:
                raise ValueError("analyze_watchlist requires user_id")
            result: Any = {
                user_id: asyncio.run(run_watchlist_sync(user_id, orchestrator=orchestrator))
                for user_id in user_ids
            }
            if len(user_ids) == 1:
                result = result[user_ids[0]]

        elif action == "analyze":
            user_id = str(event.get("user_id") or "").strip()
            target = str(event.get("target") or "").strip()
            if not user_id or not target:
                raise ValueError("analyze requires user_id and target")
            result = asyncio.run(run_target_analysis(user_id, target, orchestrator=orchestrator))

        elif action == "engagement":
            user_id = str(event.get("user_id") or "").strip()
            if not user_id:
                raise ValueError("engagement requires user_id")
            result = orchestrator.record_engagement(
                user_id,
                str(event.get("target") or ""),
                str(event.get("engagement") or ""),
                event.get("message"),
            )

        else:
            error_msg = f"Unknown action: {action}"
            logger.error(error_msg)
            raise ValueError(error_msg)

        logger.info(f"Action {action} completed")
        return {
            "statusCode": 200,
            "action": action,
            "result": result,
        }

    except ValueError as e:
        return {
            "statusCode": 400,
            "action": action,
            "error": str(e),
        }
    except SignalNowError as e:
        logger.error(f"Handler execution failed: {e}", exc_info=True)
        return {
            "statusCode": 500,
            "action": action,
            "error": str(e),
            "error_type": type(e).__name__,
        }
