"""Token-probability and ensemble confidence estimators."""
import asyncio
import math
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from answerguard.core.candidate import Candidate
from answerguard.core.confidence import ConfidenceEstimate
from answerguard.errors import ErrorCode, Result
from answerguard.estimators.confidence import ConfidenceEstimator
from answerguard.estimators.ensemble_confidence import (
    EnsembleConfidence,
    EnsembleConfidenceConfig,
    disagreement_score,
)
from answerguard.estimators.token_confidence import TokenProbabilityConfidence, TokenProbabilityConfig


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _with_logprobs(*probs):
    return Candidate(content="Answer: 4", metadata={"logprobs": [math.log(p) for p in probs]})


class Fixed(ConfidenceEstimator):
    def __init__(self, score, method="fixed"):
        self.score = score
        self.method = method

    async def estimate(self, candidate, context=None):
        return Result.success(ConfidenceEstimate(score=self.score, method=self.method))


class Failing(ConfidenceEstimator):
    async def estimate(self, candidate, context=None):
        return Result.failure(ErrorCode.MODEL_CALL_FAILED, "llm_failed")


class Slow(ConfidenceEstimator):
    async def estimate(self, candidate, context=None):
        await asyncio.sleep(5)
        return Result.success(ConfidenceEstimate(score=1.0, method="slow"))


# ── Token probability ────────────────────────────────────────────

def test_token_product():
    est = _run(TokenProbabilityConfidence().estimate(_with_logprobs(0.9, 0.8))).value
    assert est.score == pytest.approx(0.72)
    assert est.method == "token_probability"
    assert est.metadata["aggregation"] == "product"
    assert est.metadata["token_count"] == 2
    assert "consistent" in est.reasoning


def test_token_mean_and_min_from_context():
    cand = _with_logprobs(0.9, 0.5)
    mean = _run(TokenProbabilityConfidence().estimate(cand, {"aggregation": "mean"})).value
    low = _run(TokenProbabilityConfidence().estimate(cand, {"aggregation": "min"})).value
    assert mean.score == pytest.approx(0.7)
    assert low.score == pytest.approx(0.5)
    assert "variable" in mean.reasoning


def test_token_floor_applies():
    cand = Candidate(content="x", metadata={"logprobs": [-50.0]})
    est = _run(TokenProbabilityConfidence(TokenProbabilityConfig(aggregation="min")).estimate(cand)).value
    assert est.score == pytest.approx(0.01)


def test_token_errors():
    est = TokenProbabilityConfidence()
    assert _run(est.estimate(Candidate(content="x"))).error.code == ErrorCode.NO_LOGPROBS
    empty = Candidate(content="x", metadata={"logprobs": []})
    assert _run(est.estimate(empty)).error.reason == "empty_logprobs"
    positive = Candidate(content="x", metadata={"logprobs": [0.5]})
    assert _run(est.estimate(positive)).error.reason == "invalid_logprobs"
    bad_mode = _run(est.estimate(_with_logprobs(0.9), {"aggregation": "geometric"}))
    assert bad_mode.error.reason == "invalid_aggregation"


def test_token_batch():
    res = _run(TokenProbabilityConfidence().estimate_batch([_with_logprobs(0.9), _with_logprobs(0.5)]))
    assert [round(e.score, 3) for e in res.value] == [0.9, 0.5]


# ── Ensemble ─────────────────────────────────────────────────────

def test_disagreement_score():
    assert disagreement_score([0.5, 0.5], 0.5) == 0.0
    assert disagreement_score([0.2, 0.8], 0.5) == pytest.approx(0.3)
    assert disagreement_score([], 0.5) == 0.0


def test_ensemble_mean():
    cfg = EnsembleConfidenceConfig(estimators=[Fixed(0.8), Fixed(0.6)], combination_method="mean")
    est = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x"))).value
    assert est.score == pytest.approx(0.7)
    assert est.metadata["estimator_count"] == 2
    assert est.metadata["disagreement"] == pytest.approx(0.1)


def test_ensemble_weighted_mean():
    cfg = EnsembleConfidenceConfig(estimators=[Fixed(1.0), Fixed(0.0)], weights=[0.75, 0.25])
    est = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x"))).value
    assert est.score == pytest.approx(0.75)


def test_ensemble_voting_tie_goes_to_higher_band():
    cfg = EnsembleConfidenceConfig(estimators=[Fixed(0.9), Fixed(0.1)], combination_method="voting")
    est = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x"))).value
    assert est.score == 0.85
    assert est.metadata["vote_distribution"] == {"high": 1, "medium": 0, "low": 1}


def test_ensemble_context_overrides_method():
    cfg = EnsembleConfidenceConfig(estimators=[Fixed(0.9), Fixed(0.5), Fixed(0.45)])
    est = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x"), {"combination_method": "voting"})).value
    assert est.score == 0.55
    bad = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x"), {"combination_method": "median"}))
    assert bad.error.reason == "invalid_combination_method"


def test_ensemble_excludes_failures_and_timeouts():
    cfg = EnsembleConfidenceConfig(
        estimators=[Fixed(0.6), Failing(), Slow()],
        estimator_timeout_s=0.05,
    )
    est = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x"))).value
    assert est.score == pytest.approx(0.6)
    assert est.metadata["failed_count"] == 2


def test_ensemble_one_of_three_failing_uses_the_two_survivors():
    cfg = EnsembleConfidenceConfig(estimators=[Fixed(0.9), Failing(), Fixed(0.5)], combination_method="mean")
    est = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x"))).value
    assert est.score == pytest.approx(0.7)
    assert est.metadata["failed_count"] == 1
    assert est.metadata["estimator_count"] == 2
    assert est.metadata["disagreement"] == pytest.approx(0.2)


def test_ensemble_zero_weight_survivors_fall_back_to_mean():
    cfg = EnsembleConfidenceConfig(estimators=[Failing(), Fixed(0.6), Fixed(0.8)], weights=[1.0, 0.0, 0.0])
    est = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x"))).value
    assert est.score == pytest.approx(0.7)
    assert est.metadata["weight_fallback"] == "unweighted_mean"
    assert est.metadata["failed_count"] == 1


def test_ensemble_all_failed():
    cfg = EnsembleConfidenceConfig(estimators=[Failing(), Failing()])
    res = _run(EnsembleConfidence(cfg).estimate(Candidate(content="x")))
    assert res.error.code == ErrorCode.ALL_ESTIMATORS_FAILED


def test_ensemble_builds_class_entries_per_call():
    cfg = EnsembleConfidenceConfig(
        estimators=[
            (TokenProbabilityConfidence, {"aggregation": "mean"}),
            (TokenProbabilityConfidence, {"aggregation": "not-a-mode"}),
        ],
        combination_method="mean",
    )
    est = _run(EnsembleConfidence(cfg).estimate(_with_logprobs(0.9, 0.5))).value
    assert est.score == pytest.approx(0.7)
    assert est.metadata["failed_count"] == 1
    assert est.metadata["individual_methods"] == ["token_probability"]


def test_ensemble_disagreement_helpers():
    cfg = EnsembleConfidenceConfig(estimators=[Fixed(1.0), Fixed(0.0)], combination_method="mean")
    ens = EnsembleConfidence(cfg)
    est, d = _run(ens.estimate_with_disagreement(Candidate(content="x"))).value
    assert est.score == pytest.approx(0.5)
    assert d == pytest.approx(0.5)
    assert _run(ens.disagreement(Candidate(content="x"))).value == pytest.approx(0.5)


def test_ensemble_config_validation():
    assert EnsembleConfidenceConfig.create(estimators=[]).error.code == ErrorCode.INVALID_CONFIG
    assert EnsembleConfidenceConfig.create(estimators=["nope"]).error.reason == "invalid_estimator"
    res = EnsembleConfidenceConfig.create(estimators=[Fixed(0.5)], weights=[0.5, 0.5])
    assert res.error.reason == "weights_length_mismatch"
