"""Value types: construction, validation and to_dict/from_dict."""
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from answerguard.core.budget import ComputeBudget
from answerguard.core.candidate import Candidate
from answerguard.core.confidence import ConfidenceEstimate
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import (
    ConfidenceLevel,
    Decision,
    DifficultyLevel,
    RoutingAction,
    SuggestedAction,
    UncertaintyType,
)
from answerguard.core.results import DecisionResult, RoutingResult, UncertaintyResult
from answerguard.core.thresholds import (
    all_thresholds,
    confidence_level,
    level_to_score,
    score_to_level,
)
from answerguard.core.validation import parse_enum
from answerguard.errors import AccuracyError, ErrorCode, Result


# ── Thresholds ───────────────────────────────────────────────────

def test_score_to_level_bands():
    assert score_to_level(0.0) == DifficultyLevel.EASY
    assert score_to_level(0.349) == DifficultyLevel.EASY
    assert score_to_level(0.35) == DifficultyLevel.MEDIUM
    assert score_to_level(0.65) == DifficultyLevel.MEDIUM
    assert score_to_level(0.651) == DifficultyLevel.HARD
    assert score_to_level(1.0) == DifficultyLevel.HARD


def test_level_to_score_is_band_midpoint():
    for level in DifficultyLevel:
        assert score_to_level(level_to_score(level)) == level
    assert level_to_score(DifficultyLevel.MEDIUM) == 0.5


def test_confidence_level_bands():
    assert confidence_level(0.7) == ConfidenceLevel.HIGH
    assert confidence_level(0.69) == ConfidenceLevel.MEDIUM
    assert confidence_level(0.4) == ConfidenceLevel.MEDIUM
    assert confidence_level(0.39) == ConfidenceLevel.LOW


def test_all_thresholds_lists_constants():
    t = all_thresholds()
    assert t["early_stop_threshold"] == 0.8
    assert t["easy_threshold"] < t["hard_threshold"]


# ── Enum whitelists ──────────────────────────────────────────────

def test_parse_enum_accepts_members_and_values():
    assert parse_enum(DifficultyLevel, "hard", "level").value == DifficultyLevel.HARD
    assert parse_enum(DifficultyLevel, DifficultyLevel.EASY, "level").value == DifficultyLevel.EASY


def test_parse_enum_rejects_unknown_strings():
    res = parse_enum(DifficultyLevel, "HARD", "level")
    assert not res.ok
    assert res.error.code == ErrorCode.INVALID_INPUT
    assert res.error.reason == "invalid_level"
    assert not parse_enum(RoutingAction, "delete_everything", "action").ok


# ── Candidate ────────────────────────────────────────────────────

def test_candidate_defaults_and_unique_ids():
    a = Candidate(content="4")
    b = Candidate(content="4")
    assert a.id and b.id and a.id != b.id
    assert a.metadata == {}
    assert a.logprobs is None


def test_candidate_rejects_non_text_content():
    with pytest.raises(AccuracyError) as exc:
        Candidate(content=42)
    assert exc.value.reason == "invalid_content"
    assert not Candidate.create(content=None).ok


def test_candidate_replace_keeps_id():
    c = Candidate(content="x", metadata={"a": 1})
    d = c.replace(content="y")
    e = c.with_metadata(b=2)
    assert d.id == c.id and d.content == "y"
    assert e.metadata == {"a": 1, "b": 2}
    assert c.metadata == {"a": 1}


def test_candidate_dict_omits_empty_fields():
    c = Candidate(content="Paris")
    d = c.to_dict()
    assert d == {"id": c.id, "content": "Paris"}


def test_candidate_from_dict():
    res = Candidate.from_dict({"content": "Paris", "score": 0.9, "unknown": "ignored"})
    assert res.ok and res.value.score == 0.9
    assert Candidate.from_dict({"score": 0.9}).error.reason == "missing_content"
    assert Candidate.from_dict("nope").error.reason == "invalid_candidate"


# ── DifficultyEstimate ───────────────────────────────────────────

def test_difficulty_level_derived_from_score():
    assert DifficultyEstimate(score=0.2).level == DifficultyLevel.EASY
    assert DifficultyEstimate(score=0.9).is_hard


def test_difficulty_defaults_to_medium():
    est = DifficultyEstimate()
    assert est.level == DifficultyLevel.MEDIUM
    assert est.is_medium


def test_difficulty_explicit_level_is_trusted():
    est = DifficultyEstimate(level="easy", score=0.9)
    assert est.level == DifficultyLevel.EASY


def test_difficulty_rejects_out_of_range():
    res = DifficultyEstimate.create(score=1.5)
    assert not res.ok and res.error.reason == "invalid_score"
    res = DifficultyEstimate.create(level="extreme")
    assert not res.ok and res.error.reason == "invalid_level"


def test_difficulty_from_dict_roundtrip():
    est = DifficultyEstimate(level="hard", score=0.8, confidence=0.9, reasoning="long proof")
    back = DifficultyEstimate.from_dict(est.to_dict())
    assert back.ok
    assert back.value.level == DifficultyLevel.HARD
    assert back.value.score == 0.8
    assert DifficultyEstimate.from_dict({"level": "impossible"}).error.reason == "invalid_level"


# ── ComputeBudget ────────────────────────────────────────────────

def test_budget_preset_costs():
    assert ComputeBudget.easy().cost == 3.0
    assert ComputeBudget.medium().cost == 8.5
    assert ComputeBudget.hard().cost == 17.5


def test_budget_search_defaults_iterations():
    b = ComputeBudget(num_candidates=2, use_search=True)
    assert b.search_iterations == 50
    assert b.cost == pytest.approx(2.5)


def test_budget_validation():
    assert ComputeBudget.create(num_candidates=0).error.reason == "invalid_num_candidates"
    assert ComputeBudget.create(num_candidates=True).error.reason == "invalid_num_candidates"
    assert ComputeBudget.create(num_candidates=3, cost=1.0).error.reason == "unexpected_field"


def test_budget_for_level():
    assert ComputeBudget.for_level("hard").value.num_candidates == 10
    assert ComputeBudget.for_level("extreme").error.reason == "invalid_level"


def test_budget_from_dict_checks_cost():
    d = ComputeBudget.medium().to_dict()
    assert ComputeBudget.from_dict(d).value.cost == 8.5
    d["cost"] = 1.0
    assert ComputeBudget.from_dict(d).error.reason == "cost_mismatch"


# ── ConfidenceEstimate ───────────────────────────────────────────

def test_confidence_levels():
    assert ConfidenceEstimate(score=0.9, method="t").is_high
    assert ConfidenceEstimate(score=0.5, method="t").is_medium
    assert ConfidenceEstimate(score=0.1, method="t").level == ConfidenceLevel.LOW


def test_confidence_validation():
    assert ConfidenceEstimate.create(score=1.2, method="t").error.reason == "invalid_score"
    assert ConfidenceEstimate.create(score=0.5, method="").error.reason == "invalid_method"
    assert ConfidenceEstimate.from_dict({"score": 0.5}).error.reason == "missing_method"


# ── Result types ─────────────────────────────────────────────────

def test_routing_result_from_dict_whitelists_action():
    data = {
        "action": "direct",
        "candidate": {"content": "4"},
        "original_score": 0.9,
        "confidence_level": "high",
    }
    res = RoutingResult.from_dict(data)
    assert res.ok and res.value.is_direct
    bad = dict(data, action="shutdown")
    assert RoutingResult.from_dict(bad).error.reason == "invalid_action"
    assert RoutingResult.from_dict({"action": "direct"}).error.reason == "missing_candidate"


def test_decision_result_properties():
    d = DecisionResult(decision="abstain", candidate=Candidate(content="-"), confidence=0.2, ev_answer=-0.6)
    assert d.abstained and not d.answered
    assert d.decision == Decision.ABSTAIN
    back = DecisionResult.from_dict(d.to_dict())
    assert back.ok and back.value.ev_answer == -0.6


def test_uncertainty_result_roundtrip():
    u = UncertaintyResult(
        uncertainty_type=UncertaintyType.EPISTEMIC,
        confidence=0.8,
        suggested_action=SuggestedAction.ABSTAIN,
    )
    assert u.is_epistemic
    back = UncertaintyResult.from_dict(u.to_dict())
    assert back.ok and back.value.suggested_action == SuggestedAction.ABSTAIN
    assert UncertaintyResult.from_dict(
        {"uncertainty_type": "cosmic", "confidence": 0.1, "suggested_action": "abstain"}
    ).error.reason == "invalid_uncertainty_type"


def test_result_unwrap_raises_accuracy_error():
    res = Result.failure(ErrorCode.TIMEOUT, "run_timeout")
    with pytest.raises(AccuracyError) as exc:
        res.unwrap()
    assert exc.value.code == ErrorCode.TIMEOUT
    assert Result.success(3).unwrap() == 3
