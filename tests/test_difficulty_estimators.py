"""Heuristic, LLM-backed and ensemble difficulty estimators."""
import asyncio
import os
import sys
import time

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from answerguard.adapters.base import AdapterTransient
from answerguard.adapters.mock_adapter import MockAdapter
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import DifficultyLevel
from answerguard.errors import ErrorCode, Result
from answerguard.estimators.difficulty import DifficultyEstimator
from answerguard.estimators.ensemble_difficulty import (
    DifficultyCombination,
    EnsembleDifficulty,
    EnsembleDifficultyConfig,
)
from answerguard.estimators import heuristic_difficulty
from answerguard.estimators.heuristic_difficulty import (
    HeuristicDifficulty,
    HeuristicDifficultyConfig,
    confidence_from_variance,
    domain_feature,
    length_feature,
    question_type_feature,
)
from answerguard.estimators.llm_difficulty import (
    LLMDifficulty,
    LLMDifficultyConfig,
    parse_response,
    sanitize_query,
)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


HARD_QUERY = "Explain why and analyze how the derivative and integral of this equation relate. " * 4


class Fixed(DifficultyEstimator):
    def __init__(self, level, score, confidence=0.8):
        self._est = DifficultyEstimate(level=level, score=score, confidence=confidence)

    async def estimate(self, query, context=None):
        return Result.success(self._est)


class Failing(DifficultyEstimator):
    async def estimate(self, query, context=None):
        return Result.failure(ErrorCode.MODEL_CALL_FAILED, "llm_failed")


class Raising(DifficultyEstimator):
    async def estimate(self, query, context=None):
        raise RuntimeError("bug")


# ── Heuristic features ───────────────────────────────────────────

def test_length_buckets():
    assert length_feature("x" * 10)["score"] == 0.0
    assert length_feature("x" * 60)["score"] == 0.2
    assert length_feature("x" * 150)["score"] == 0.5
    assert length_feature("x" * 250)["score"] == 0.7
    assert length_feature("x" * 400)["score"] == 1.0


def test_domain_hits_and_custom_indicators():
    assert domain_feature("solve this equation with calculus", {})["score"] == 1.0
    assert domain_feature("hello there", {})["score"] == 0.0
    custom = domain_feature("check the tort and the plaintiff", {"legal": ["tort", "plaintiff"]})
    assert custom["score"] == 0.7
    assert custom["custom"] == {"legal": 2}


def test_question_type():
    assert question_type_feature("Explain why the sky is blue and analyze it")["score"] == 1.0
    assert question_type_feature("What is the capital?")["score"] == 0.2


def test_confidence_from_variance_bands():
    assert confidence_from_variance([0.5, 0.5, 0.5, 0.5])[0] == 0.95
    assert confidence_from_variance([0.0, 1.0, 0.0, 1.0])[0] == 0.6


# ── HeuristicDifficulty ──────────────────────────────────────────

def test_heuristic_simple_query_is_easy():
    res = _run(HeuristicDifficulty().estimate("What is 2+2?"))
    assert res.ok
    est = res.value
    assert est.level == DifficultyLevel.EASY
    assert est.metadata["estimator"] == "heuristic"
    assert set(est.features) == {"length", "complexity", "domain", "question_type"}
    assert est.reasoning.startswith("Simple")


def test_heuristic_long_analytical_query_is_hard():
    est = _run(HeuristicDifficulty().estimate(HARD_QUERY)).value
    assert est.level == DifficultyLevel.HARD
    assert est.score > 0.65


def test_heuristic_is_deterministic():
    a = _run(HeuristicDifficulty().estimate(HARD_QUERY)).value
    b = _run(HeuristicDifficulty().estimate(HARD_QUERY)).value
    assert (a.level, a.score, a.confidence) == (b.level, b.score, b.confidence)


def test_heuristic_rejects_empty_and_oversized_queries():
    assert _run(HeuristicDifficulty().estimate("")).error.reason == "invalid_query"
    res = _run(HeuristicDifficulty().estimate("a" * 50_001))
    assert res.error.code == ErrorCode.INVALID_INPUT
    assert res.error.reason == "query_too_long"


def test_heuristic_weights_must_sum_to_one():
    res = HeuristicDifficultyConfig.create(length_weight=0.9)
    assert not res.ok
    assert res.error.reason == "weights_dont_sum_to_1"


def test_heuristic_timeout_bounds():
    assert HeuristicDifficultyConfig.create(timeout_s=0.5).error.reason == "invalid_timeout_s"
    assert HeuristicDifficultyConfig.create(timeout_s=31).error.reason == "invalid_timeout_s"


def test_heuristic_feature_extraction_timeout(monkeypatch):
    def slow(query, custom_indicators=None):
        time.sleep(1.5)

    monkeypatch.setattr(heuristic_difficulty, "extract_features", slow)
    res = _run(HeuristicDifficulty(HeuristicDifficultyConfig(timeout_s=1)).estimate("What is 2+2?"))
    assert res.error.code == ErrorCode.TIMEOUT
    assert res.error.reason == "estimation_timeout"


def test_heuristic_batch_stops_on_first_failure():
    res = _run(HeuristicDifficulty().estimate_batch(["What is 2+2?", "", "Why?"]))
    assert not res.ok and res.error.reason == "invalid_query"
    ok = _run(HeuristicDifficulty().estimate_batch(["What is 2+2?", "Why?"]))
    assert len(ok.value) == 2


# ── LLM response parsing ─────────────────────────────────────────

def test_parse_json_response():
    res = parse_response('Sure! {"level": "hard", "score": 0.9, "confidence": 0.95, "reasoning": "multi-step"}')
    est = res.value
    assert est.level == DifficultyLevel.HARD
    assert est.score == 0.9 and est.confidence == 0.95
    assert est.metadata["parse_mode"] == "json"


def test_parse_json_defaults_score_and_confidence():
    est = parse_response('{"level": "easy"}').value
    assert est.score == 0.175
    assert est.confidence == 0.8


def test_parse_regex_fallback_has_lower_confidence():
    est = parse_response('level is {"level": "medium", broken').value
    assert est.level == DifficultyLevel.MEDIUM
    assert est.confidence == 0.7
    assert est.metadata["parse_mode"] == "regex"


def test_parse_out_of_range_values_are_clamped():
    est = parse_response('{"level": "hard", "score": 1.7, "confidence": -2}').value
    assert est.score == 1.0 and est.confidence == 0.0


def test_parse_rejects_unknown_level_and_garbage():
    res = parse_response('{"level": "trivial"}')
    assert res.error.code == ErrorCode.INVALID_MODEL_RESPONSE
    assert res.error.reason == "invalid_level"
    assert parse_response("no idea").error.reason == "unparseable_response"
    assert parse_response('{"level": "easy", "score": "high"}').error.reason == "invalid_score"


def test_parse_rejects_oversized_response():
    res = parse_response("x" * 50_001)
    assert res.error.code == ErrorCode.INVALID_INPUT
    assert res.error.reason == "response_too_large"


def test_sanitize_query_truncates_and_flattens():
    out = sanitize_query("line one\nline two\r\n" + "z" * 20_000)
    assert "\n" not in out
    assert len(out) <= 10_000


# ── LLMDifficulty ────────────────────────────────────────────────

def test_llm_difficulty_with_mock_adapter():
    adapter = MockAdapter(responses=['{"level": "medium", "score": 0.5, "confidence": 0.9}'])
    est = _run(LLMDifficulty(adapter=adapter).estimate("Summarize the causes of WW1")).value
    assert est.level == DifficultyLevel.MEDIUM
    assert est.metadata["model"] == "anthropic:claude-haiku-4-5"
    assert "Summarize the causes of WW1" in adapter.prompts[0]


def test_llm_difficulty_propagates_model_failure():
    adapter = MockAdapter(responses=[AdapterTransient("503")])
    res = _run(LLMDifficulty(adapter=adapter).estimate("q"))
    assert res.error.code == ErrorCode.MODEL_CALL_FAILED


def test_llm_difficulty_contains_unexpected_adapter_exception():
    adapter = MockAdapter(responses=[ConnectionResetError("peer reset")])
    res = _run(LLMDifficulty(adapter=adapter).estimate("q"))
    assert res.error.code == ErrorCode.MODEL_CALL_FAILED
    assert res.error.reason == "llm_failed"


def test_llm_difficulty_timeout():
    adapter = MockAdapter(delay_s=2.0)
    res = _run(LLMDifficulty(LLMDifficultyConfig(timeout_s=0.05), adapter=adapter).estimate("q"))
    assert res.error.code == ErrorCode.TIMEOUT


def test_llm_config_requires_query_placeholder():
    res = LLMDifficultyConfig.create(prompt_template="Rate this.")
    assert res.error.reason == "missing_query_placeholder"


# ── Ensemble ─────────────────────────────────────────────────────

def test_ensemble_weighted_average():
    cfg = EnsembleDifficultyConfig(estimators=[Fixed("easy", 0.0), Fixed("hard", 1.0)], weights=[0.8, 0.2])
    est = _run(EnsembleDifficulty(cfg).estimate("q")).value
    assert abs(est.score - 0.2) < 1e-9
    assert est.level == DifficultyLevel.EASY
    assert est.metadata["failed_estimators"] == 0


def test_ensemble_majority_vote_ties_toward_easier():
    cfg = EnsembleDifficultyConfig(
        estimators=[Fixed("hard", 0.9), Fixed("easy", 0.1)],
        combination=DifficultyCombination.MAJORITY_VOTE,
    )
    est = _run(EnsembleDifficulty(cfg).estimate("q")).value
    assert est.level == DifficultyLevel.EASY
    assert est.confidence == 0.5


def test_ensemble_max_confidence():
    cfg = EnsembleDifficultyConfig(
        estimators=[Fixed("easy", 0.2, 0.6), Fixed("hard", 0.9, 0.95)],
        combination="max_confidence",
    )
    assert _run(EnsembleDifficulty(cfg).estimate("q")).value.level == DifficultyLevel.HARD


def test_ensemble_excludes_failures():
    cfg = EnsembleDifficultyConfig(estimators=[Failing(), Raising(), Fixed("hard", 0.8)], combination="average")
    est = _run(EnsembleDifficulty(cfg).estimate("q")).value
    assert est.level == DifficultyLevel.HARD
    assert est.metadata["failed_estimators"] == 2


def test_ensemble_zero_weight_survivors_fall_back_to_mean():
    cfg = EnsembleDifficultyConfig(
        estimators=[Failing(), Fixed("medium", 0.6), Fixed("hard", 0.8)],
        weights=[1.0, 0.0, 0.0],
    )
    est = _run(EnsembleDifficulty(cfg).estimate("q")).value
    assert abs(est.score - 0.7) < 1e-9
    assert est.metadata["weight_fallback"] == "unweighted_mean"
    assert est.metadata["failed_estimators"] == 1


def test_ensemble_all_failed():
    cfg = EnsembleDifficultyConfig(estimators=[Failing(), Raising()])
    res = _run(EnsembleDifficulty(cfg).estimate("q"))
    assert res.error.code == ErrorCode.ALL_ESTIMATORS_FAILED
    assert len(res.error.details["failures"]) == 2


def test_ensemble_fallback():
    cfg = EnsembleDifficultyConfig(estimators=[Failing()], fallback=Fixed("medium", 0.5))
    assert _run(EnsembleDifficulty(cfg).estimate("q")).value.level == DifficultyLevel.MEDIUM


def test_ensemble_config_validation():
    assert EnsembleDifficultyConfig.create(estimators=[]).error.code == ErrorCode.INVALID_CONFIG
    assert EnsembleDifficultyConfig.create(estimators=[object()]).error.reason == "invalid_estimator"
    res = EnsembleDifficultyConfig.create(estimators=[Fixed("easy", 0.1)], weights=[0.5, 0.5])
    assert res.error.reason == "weights_length_mismatch"
