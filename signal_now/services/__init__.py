"""Scoring, decision and assessment services."""

from signal_now.services.decision_policy import Decision, PolicyConfig, decide
from signal_now.services.ranker import Candidate, heuristic_score, rank_candidates

__all__ = [
    "Candidate",
    "Decision",
    "PolicyConfig",
    "decide",
    "heuristic_score",
    "rank_candidates",
]
