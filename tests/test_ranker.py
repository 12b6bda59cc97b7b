from __future__ import annotations

from signal_now.services.ranker import (
    Candidate,
    bio_relevance,
    contactability,
    dedupe_candidates,
    heuristic_score,
    rank_candidates,
    social_proof,
    tokenize_goal,
)


def test_tokenize_goal_drops_short_tokens_stop_words_and_punctuation() -> None:
    keywords = tokenize_goal("Find developers who are migrating to Bun, and Rust!")

    assert "bun" in keywords
    assert "rust" in keywords
    assert "migrating" in keywords
    assert "to" not in keywords
    assert "and" not in keywords
    assert all(len(token) >= 3 for token in keywords)
    assert len(keywords) == len(set(keywords))


def test_bio_relevance_is_capped_at_forty() -> None:
    candidate = Candidate(handle="a", bio="rust python golang kotlin swift typescript")
    keywords = ["rust", "python", "golang", "kotlin", "swift", "typescript"]

    assert bio_relevance(candidate, keywords) == 40


def test_social_proof_and_contactability_caps() -> None:
    assert social_proof(Candidate(handle="a", follower_count=95)) == 9
    assert social_proof(Candidate(handle="a", follower_count=100_000)) == 20
    assert contactability(Candidate(handle="a", has_email=True, has_website=True)) == 10
    assert contactability(Candidate(handle="a", has_email=True)) == 5


def test_heuristic_score_stays_in_bounds() -> None:
    maxed = Candidate(
        handle="maxed",
        bio="bun rust wasm edge runtime",
        last_activity_message="bun rust wasm edge runtime",
        follower_count=10_000,
        has_email=True,
        has_website=True,
    )
    empty = Candidate(handle="empty")

    assert heuristic_score(maxed, "bun rust wasm edge runtime") == 100
    assert heuristic_score(empty, "") == 0


def test_dedupe_keeps_first_occurrence_case_insensitively() -> None:
    first = Candidate(handle="Alice", origin_repository="a/one")
    second = Candidate(handle="alice", origin_repository="a/two")

    unique = dedupe_candidates([first, second, Candidate(handle="bob")])

    assert [c.handle for c in unique] == ["Alice", "bob"]
    assert unique[0].origin_repository == "a/one"


def test_rank_candidates_is_stable_on_ties_and_truncates() -> None:
    candidates = [
        Candidate(handle="first", follower_count=50),
        Candidate(handle="second", follower_count=50),
        Candidate(handle="top", bio="bun maintainer", follower_count=50),
        Candidate(handle="third", follower_count=50),
    ]

    ranked = rank_candidates(candidates, "bun", limit=3)

    assert [c.handle for c in ranked] == ["top", "first", "second"]
    assert ranked[0].heuristic_score == 15
    assert candidates[2].heuristic_score == 0


def test_rank_candidates_with_zero_limit_returns_nothing() -> None:
    assert rank_candidates([Candidate(handle="a")], "bun", limit=0) == []
