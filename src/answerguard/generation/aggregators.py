# src/answerguard/generation/aggregators.py
"""Aggregators pick a final candidate and report a vote distribution.

Vote counts depend only on the multiset of extracted answers, so consensus
is independent of the order in which candidates arrived. Ties between
answers resolve to the answer whose first candidate appears earliest.
"""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from answerguard.core.candidate import Candidate
from answerguard.errors import AccuracyError, ErrorCode, Result

_QUOTED = re.compile(r'"([^"]+)"')
_ANSWER_PREFIXES = ("Answer:", "Therefore:", "Thus:", "So:", "The answer is:", "Result:")
_TRAILING_PUNCT = re.compile(r"""[.,!?;:()\[\]{}"']+$""")

_PARAGRAPH_MARKERS = [re.compile(r"\n\n" + re.escape(p)) for p in _ANSWER_PREFIXES]
_LINE_MARKERS = [re.compile(r"\n" + re.escape(p) + r"\s*", re.IGNORECASE) for p in _ANSWER_PREFIXES]
_LEADING_MARKERS = [re.compile(r"^" + re.escape(p) + r"\s*", re.IGNORECASE) for p in _ANSWER_PREFIXES]


def _after_marker(content: str, marker: "re.Pattern[str]") -> str:
    match = marker.search(content)
    if not match:
        return ""
    rest = content[match.end():]
    return rest.split("\n", 1)[0].strip()


def extract_answer(content: str) -> str:
    """Pull the final answer out of free-form model output.

    Tries quoted text, then a paragraph-level answer marker, a line-level
    marker, a marker at the very start, and finally the last non-empty line.
    """
    quoted = _QUOTED.search(content)
    if quoted:
        return quoted.group(1).strip()

    for markers in (_PARAGRAPH_MARKERS, _LINE_MARKERS, _LEADING_MARKERS):
        for marker in markers:
            answer = _after_marker(content, marker)
            if answer:
                return answer

    lines = [line.strip() for line in content.splitlines() if line.strip()]
    return lines[-1] if lines else content.strip()


def normalize_answer(answer: str) -> str:
    text = answer.strip().lower()
    return _TRAILING_PUNCT.sub("", text).strip()


def answer_key(candidate: Candidate) -> str:
    return normalize_answer(extract_answer(candidate.content))


def distribution(candidates: Sequence[Candidate]) -> Dict[str, int]:
    """Vote count per normalized answer."""
    return dict(Counter(answer_key(c) for c in candidates))


@dataclass(frozen=True)
class Aggregation:
    best: Candidate
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def vote_distribution(self) -> Dict[str, int]:
        return dict(self.metadata.get("vote_distribution") or {})

    @property
    def agreement(self) -> float:
        votes = self.vote_distribution
        total = sum(votes.values())
        return max(votes.values()) / total if total else 0.0


class Aggregator:
    """Strategy that reduces candidates to one best candidate."""

    name: str = "base"

    def aggregate(self, candidates: Sequence[Candidate], **opts: Any) -> Result[Aggregation]:
        raise NotImplementedError


def _check_candidates(candidates: Sequence[Candidate]) -> Result[List[Candidate]]:
    items = list(candidates or [])
    if not items:
        return Result.failure(ErrorCode.INVALID_INPUT, "no_candidates", "cannot aggregate an empty list")
    if not all(isinstance(c, Candidate) for c in items):
        return Result.failure(ErrorCode.INVALID_INPUT, "invalid_candidate")
    return Result.success(items)


class MajorityVote(Aggregator):
    """Most common normalized answer wins."""

    name = "majority_vote"

    def aggregate(self, candidates: Sequence[Candidate], **opts: Any) -> Result[Aggregation]:
        checked = _check_candidates(candidates)
        if not checked.ok:
            return Result.from_failure(checked.error)
        items = checked.value

        keys = [answer_key(c) for c in items]
        votes = Counter(keys)
        total = len(items)
        if total == 1:
            return Result.success(Aggregation(
                best=items[0],
                metadata={
                    "confidence": 1.0,
                    "vote_distribution": dict(votes),
                    "total_votes": 1,
                    "winning_votes": 1,
                    "aggregator": self.name,
                },
            ))

        top = max(votes.values())
        # earliest candidate among the most-voted answers
        winner_idx = next(i for i, key in enumerate(keys) if votes[key] == top)
        return Result.success(Aggregation(
            best=items[winner_idx],
            metadata={
                "confidence": top / total,
                "vote_distribution": dict(votes),
                "total_votes": total,
                "winning_votes": top,
                "winning_answer": keys[winner_idx],
                "aggregator": self.name,
            },
        ))


class BestOfN(Aggregator):
    """Highest-scored candidate wins; unscored candidates rank last."""

    name = "best_of_n"

    def aggregate(self, candidates: Sequence[Candidate], **opts: Any) -> Result[Aggregation]:
        checked = _check_candidates(candidates)
        if not checked.ok:
            return Result.from_failure(checked.error)
        items = checked.value

        scored = [c for c in items if c.score is not None]
        best = max(scored, key=lambda c: c.score) if scored else items[0]
        votes = distribution(items)
        best_key = answer_key(best)
        return Result.success(Aggregation(
            best=best,
            metadata={
                "confidence": votes[best_key] / len(items),
                "vote_distribution": votes,
                "total_votes": len(items),
                "winning_votes": votes[best_key],
                "best_score": best.score,
                "scored_candidates": len(scored),
                "aggregator": self.name,
            },
        ))


Strategy = Tuple[Aggregator, float]


def _normalize_strategies(strategies: Sequence[Strategy]) -> Result[List[Strategy]]:
    items = list(strategies or [])
    if not items:
        return Result.failure(ErrorCode.INVALID_CONFIG, "no_strategies")
    for entry in items:
        if (
            not isinstance(entry, tuple)
            or len(entry) != 2
            or not isinstance(entry[0], Aggregator)
            or isinstance(entry[1], bool)
            or not isinstance(entry[1], (int, float))
            or entry[1] < 0
        ):
            return Result.failure(ErrorCode.INVALID_CONFIG, "invalid_strategy", "expected (Aggregator, weight >= 0) pairs")
    total = float(sum(w for _, w in items))
    if total <= 0.0:
        # all-zero weights count equally
        return Result.success([(agg, 1.0 / len(items)) for agg, _ in items])
    return Result.success([(agg, w / total) for agg, w in items])


class Weighted(Aggregator):
    """Combines several aggregators by weighted selection.

    Each strategy picks one candidate; a candidate's weighted score is the
    sum of the normalized weights of the strategies that picked it. The
    highest score wins, earliest candidate on ties, and that score is the
    reported confidence. A strategy that fails is skipped; if all fail the
    aggregation fails. Pass ``strategies=[(aggregator, weight), ...]`` per
    call to override the configured mix.
    """

    name = "weighted"

    def __init__(self, strategies: Optional[Sequence[Strategy]] = None):
        if strategies is None:
            strategies = [(MajorityVote(), 0.5), (BestOfN(), 0.5)]
        normalized = _normalize_strategies(strategies)
        if not normalized.ok:
            raise AccuracyError(normalized.error)
        self.strategies = normalized.value

    def aggregate(self, candidates: Sequence[Candidate], **opts: Any) -> Result[Aggregation]:
        checked = _check_candidates(candidates)
        if not checked.ok:
            return Result.from_failure(checked.error)
        items = checked.value

        strategies = self.strategies
        if "strategies" in opts:
            normalized = _normalize_strategies(opts["strategies"])
            if not normalized.ok:
                return Result.from_failure(normalized.error)
            strategies = normalized.value

        votes = distribution(items)
        if len(items) == 1:
            return Result.success(Aggregation(
                best=items[0],
                metadata={
                    "confidence": 1.0,
                    "vote_distribution": votes,
                    "total_votes": 1,
                    "winning_votes": 1,
                    "strategy_weights": [],
                    "aggregator": self.name,
                },
            ))

        scores = [0.0] * len(items)
        picks: List[Optional[int]] = []
        for agg, weight in strategies:
            res = agg.aggregate(items)
            idx = _position(items, res.value.best) if res.ok else None
            picks.append(idx)
            if idx is not None:
                scores[idx] += weight
        if all(idx is None for idx in picks):
            return Result.failure(ErrorCode.INVALID_INPUT, "aggregation_failed", "every strategy failed")

        top = max(scores)
        winner = scores.index(top)
        best_key = answer_key(items[winner])
        return Result.success(Aggregation(
            best=items[winner],
            metadata={
                "confidence": top,
                "vote_distribution": votes,
                "total_votes": len(items),
                "winning_votes": votes[best_key],
                "weighted_scores": scores,
                "strategy_weights": [(agg.name, weight) for agg, weight in strategies],
                "strategy_picks": picks,
                "total_strategies": len(strategies),
                "aggregator": self.name,
            },
        ))


def _position(items: List[Candidate], chosen: Candidate) -> Optional[int]:
    for i, c in enumerate(items):
        if c is chosen:
            return i
    # strategies that return a copy still match by value
    return next((i for i, c in enumerate(items) if c == chosen), None)
