"""Heuristic goal-relevance ranking for discovered candidates."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, Optional, Sequence

BIO_POINTS_PER_KEYWORD = 10
BIO_CAP = 40
COMMIT_POINTS_PER_KEYWORD = 10
COMMIT_CAP = 30
FOLLOWERS_PER_POINT = 10
SOCIAL_CAP = 20
EMAIL_POINTS = 5
WEBSITE_POINTS = 5
CONTACT_CAP = 10
MAX_SCORE = 100

MIN_TOKEN_LENGTH = 3

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "that", "this", "from", "into", "about", "are",
        "was", "were", "been", "being", "have", "has", "had", "does", "did", "will",
        "would", "could", "should", "can", "may", "might", "must", "who", "what",
        "which", "when", "where", "why", "how", "find", "looking", "look", "want",
        "need", "some", "any", "all", "people", "person", "developer", "developers",
        "engineer", "engineers", "dev", "devs", "someone", "folks", "working", "work",
        "interested", "using", "use", "them", "they", "their", "our", "your",
    }
)

_PUNCTUATION = re.compile(r"[^\w\s]")


@dataclass(slots=True)
class Candidate:
    """A person discovered from a watch target, not yet assessed."""

    handle: str
    origin_repository: str = ""
    last_activity_message: str = ""
    last_activity_time: Optional[datetime] = None
    avatar_url: Optional[str] = None
    profile_url: Optional[str] = None
    bio: Optional[str] = None
    follower_count: int = 0
    has_email: bool = False
    has_website: bool = False
    heuristic_score: int = 0


def tokenize_goal(goal_text: str) -> list[str]:
    """Distinct goal keywords in first-seen order."""

    cleaned = _PUNCTUATION.sub(" ", (goal_text or "").lower())
    keywords: list[str] = []
    for token in cleaned.split():
        if len(token) < MIN_TOKEN_LENGTH or token in STOP_WORDS or token in keywords:
            continue
        keywords.append(token)
    return keywords


def _keyword_points(text: Optional[str], keywords: Sequence[str], per_keyword: int, cap: int) -> int:
    if not text or not keywords:
        return 0
    haystack = text.lower()
    matches = sum(1 for keyword in keywords if keyword in haystack)
    return min(matches * per_keyword, cap)


def bio_relevance(candidate: Candidate, keywords: Sequence[str]) -> int:
    return _keyword_points(candidate.bio, keywords, BIO_POINTS_PER_KEYWORD, BIO_CAP)


def commit_relevance(candidate: Candidate, keywords: Sequence[str]) -> int:
    return _keyword_points(candidate.last_activity_message, keywords, COMMIT_POINTS_PER_KEYWORD, COMMIT_CAP)


def social_proof(candidate: Candidate) -> int:
    return min(max(candidate.follower_count, 0) // FOLLOWERS_PER_POINT, SOCIAL_CAP)


def contactability(candidate: Candidate) -> int:
    points = (EMAIL_POINTS if candidate.has_email else 0) + (WEBSITE_POINTS if candidate.has_website else 0)
    return min(points, CONTACT_CAP)


def heuristic_score(candidate: Candidate, goal_text: str = "", *, keywords: Optional[Sequence[str]] = None) -> int:
    """Bounded 0-100 relevance score; each component is capped before summing."""

    if keywords is None:
        keywords = tokenize_goal(goal_text)
    total = (
        bio_relevance(candidate, keywords)
        + commit_relevance(candidate, keywords)
        + social_proof(candidate)
        + contactability(candidate)
    )
    return max(0, min(total, MAX_SCORE))


def dedupe_candidates(candidates: Iterable[Candidate]) -> list[Candidate]:
    """Drop repeated handles; the first occurrence wins."""

    seen: set[str] = set()
    unique: list[Candidate] = []
    for candidate in candidates:
        key = candidate.handle.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)
    return unique


def rank_candidates(candidates: Iterable[Candidate], goal_text: str, limit: int) -> list[Candidate]:
    """Score, stable-sort descending and truncate. Inputs are not mutated."""

    if limit <= 0:
        return []
    keywords = tokenize_goal(goal_text)
    scored = [
        replace(candidate, heuristic_score=heuristic_score(candidate, keywords=keywords))
        for candidate in dedupe_candidates(candidates)
    ]
    scored.sort(key=lambda candidate: -candidate.heuristic_score)
    return scored[:limit]
