"""Adaptive self-consistency: planning, early stopping, bounds and failures."""
import asyncio
import itertools
import os
import sys
import time

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from answerguard.core.budget import ComputeBudget
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import DifficultyLevel
from answerguard.errors import AccuracyError, ErrorCode, Result
from answerguard.estimators.heuristic_difficulty import HeuristicDifficulty
from answerguard.generation.controller import (
    AdaptiveSelfConsistency,
    SelfConsistencyConfig,
    initial_n_for_level,
    max_n_for_level,
)
from answerguard.generation.generator import FunctionGenerator


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _constant(answer="Answer: 42"):
    return FunctionGenerator(lambda q, ctx: answer)


def _all_different():
    counter = itertools.count()
    return FunctionGenerator(lambda q, ctx: f"Answer: {next(counter)}")


# ── Config ───────────────────────────────────────────────────────

def test_config_defaults():
    cfg = SelfConsistencyConfig()
    assert (cfg.min_candidates, cfg.max_candidates, cfg.batch_size) == (3, 20, 3)
    assert cfg.early_stop_threshold == 0.8
    assert not cfg.batch_size_explicit


def test_config_min_exceeds_max():
    res = SelfConsistencyConfig.create(min_candidates=10, max_candidates=5)
    assert not res.ok
    assert res.error.code == ErrorCode.INVALID_CONFIG
    assert res.error.reason == "min_exceeds_max"


def test_config_rejects_bad_threshold_and_timeout():
    assert SelfConsistencyConfig.create(early_stop_threshold=1.5).error.reason == "invalid_early_stop_threshold"
    assert SelfConsistencyConfig.create(timeout_s=301).error.reason == "invalid_timeout_s"
    assert SelfConsistencyConfig.create(unknown=1).error.code == ErrorCode.INVALID_CONFIG


def test_controller_requires_generator():
    with pytest.raises(AccuracyError) as exc:
        AdaptiveSelfConsistency(object())
    assert exc.value.code == ErrorCode.INVALID_CONFIG
    res = AdaptiveSelfConsistency.create(None)
    assert not res.ok and res.error.reason == "invalid_generator"


# ── Planning ─────────────────────────────────────────────────────

def test_level_tables():
    assert initial_n_for_level(DifficultyLevel.EASY) == 3
    assert initial_n_for_level(DifficultyLevel.HARD) == 10
    assert max_n_for_level(DifficultyLevel.MEDIUM) == 10
    assert max_n_for_level(DifficultyLevel.HARD) == 20


def test_plan_respects_config_bounds():
    ctl = AdaptiveSelfConsistency(_constant(), config=SelfConsistencyConfig(min_candidates=6, max_candidates=8))
    initial_n, max_n, batch = ctl.plan(DifficultyLevel.EASY)
    assert max_n == 6  # raised to min_candidates
    assert initial_n == 6
    initial_n, max_n, batch = ctl.plan(DifficultyLevel.HARD)
    assert max_n == 8 and initial_n == 8
    assert batch == 5


def test_plan_budget_caps_max_n():
    ctl = AdaptiveSelfConsistency(_constant())
    initial_n, max_n, batch = ctl.plan(DifficultyLevel.HARD, ComputeBudget(num_candidates=4))
    assert max_n == 4
    assert initial_n <= max_n
    assert batch <= max_n


def test_explicit_batch_size_overrides_level():
    ctl = AdaptiveSelfConsistency(_constant(), config=SelfConsistencyConfig(batch_size=2))
    assert ctl.plan(DifficultyLevel.HARD)[2] == 2


def test_adjust_n_never_exceeds_max():
    ctl = AdaptiveSelfConsistency(_constant())
    assert ctl.adjust_n(DifficultyLevel.EASY, 3) == 5
    assert ctl.adjust_n(DifficultyLevel.EASY, 5) == 5
    assert ctl.adjust_n(DifficultyLevel.HARD, 12) == 17
    assert ctl.adjust_n(DifficultyLevel.HARD, 12, max_n=14) == 14


# ── Consensus ────────────────────────────────────────────────────

def test_check_consensus_and_consensus_reached():
    from answerguard.core.candidate import Candidate

    ctl = AdaptiveSelfConsistency(_constant())
    cands = [Candidate(content=f"Answer: {a}") for a in ("4", "4", "4", "5")]
    assert ctl.check_consensus(cands).value == 0.75
    assert ctl.consensus_reached(cands).value is False
    assert ctl.consensus_reached(cands, threshold=0.7).value is True
    assert not ctl.check_consensus([]).ok


# ── Runs ─────────────────────────────────────────────────────────

def test_unanimous_easy_query_stops_after_first_batch():
    ctl = AdaptiveSelfConsistency(_constant())
    res = _run(ctl.run("What is 6 * 7?", difficulty_level="easy"))
    assert res.ok, res.error
    out = res.value
    assert out.actual_n == 3
    assert out.early_stopped is True
    assert out.consensus == 1.0
    assert out.metadata["difficulty_level"] == "easy"
    assert out.metadata["initial_n"] == 3
    assert out.metadata["max_n"] == 5
    assert out.metadata["batches"] == 1
    assert "42" in out.candidate.content


def test_disagreement_runs_to_max_n():
    ctl = AdaptiveSelfConsistency(_all_different())
    res = _run(ctl.run("Pick a number", difficulty_level=DifficultyLevel.HARD))
    out = res.value
    assert out.actual_n == 20
    assert out.early_stopped is False
    assert out.metadata["batches"] == 4
    assert out.consensus == pytest.approx(1 / 20)


def test_actual_n_bounded_by_min_and_max():
    for level in DifficultyLevel:
        ctl = AdaptiveSelfConsistency(_all_different(), config=SelfConsistencyConfig(min_candidates=3, max_candidates=7))
        out = _run(ctl.run("q", difficulty_level=level)).value
        assert 3 <= out.actual_n <= 7


def test_budget_caps_samples():
    ctl = AdaptiveSelfConsistency(_all_different())
    res = _run(ctl.run("q", difficulty_level="hard", budget=ComputeBudget(num_candidates=4)))
    out = res.value
    assert out.actual_n == 4
    assert out.metadata["budget_capped"] is True


def test_consensus_not_checked_below_min_candidates():
    ctl = AdaptiveSelfConsistency(
        _constant(),
        config=SelfConsistencyConfig(min_candidates=4, max_candidates=10, batch_size=2),
    )
    out = _run(ctl.run("q", difficulty_level="medium")).value
    assert out.actual_n == 4
    assert out.metadata["batches"] == 2


def test_partial_sample_failures_are_excluded():
    counter = itertools.count()

    def flaky(q, ctx):
        i = next(counter)
        if i % 2:
            raise RuntimeError("provider hiccup")
        return "Answer: yes"

    ctl = AdaptiveSelfConsistency(FunctionGenerator(flaky))
    out = _run(ctl.run("q", difficulty_level="easy")).value
    assert out.metadata["failed_samples"] > 0
    assert out.actual_n + out.metadata["failed_samples"] <= 5
    assert out.consensus == 1.0


def test_all_samples_failing_is_an_error_not_a_loop():
    def broken(q, ctx):
        raise RuntimeError("down")

    ctl = AdaptiveSelfConsistency(FunctionGenerator(broken))
    res = _run(ctl.run("q", difficulty_level="medium"))
    assert not res.ok
    assert res.error.code == ErrorCode.ALL_GENERATORS_FAILED
    assert res.error.details["attempted"] == 10


def test_generator_crash_is_reported():
    class Crashing:
        async def generate(self, query, n, context=None):
            raise ValueError("boom")

    res = _run(AdaptiveSelfConsistency(Crashing()).run("q"))
    assert not res.ok
    assert res.error.code == ErrorCode.GENERATOR_CRASHED
    assert res.error.details["error_type"] == "ValueError"


def test_generator_returning_non_list():
    class Wrong:
        async def generate(self, query, n, context=None):
            return Result.success("nope")

    res = _run(AdaptiveSelfConsistency(Wrong()).run("q"))
    assert res.error.reason == "invalid_generator_output"


def test_overall_timeout():
    async def slow(q, ctx):
        await asyncio.sleep(5)
        return "Answer: late"

    ctl = AdaptiveSelfConsistency(FunctionGenerator(slow), config=SelfConsistencyConfig(timeout_s=1))
    res = _run(ctl.run("q", difficulty_level="easy"))
    assert not res.ok
    assert res.error.code == ErrorCode.TIMEOUT
    assert res.error.reason == "run_timeout"


def test_overall_timeout_with_blocking_sampler():
    counter = itertools.count()

    def blocking(q, ctx):
        time.sleep(0.6)
        return f"Answer: {next(counter)}"

    ctl = AdaptiveSelfConsistency(FunctionGenerator(blocking), config=SelfConsistencyConfig(timeout_s=1))
    started = time.monotonic()
    res = _run(ctl.run("q", difficulty_level="hard"))
    assert time.monotonic() - started < 2.0
    assert not res.ok
    assert res.error.code == ErrorCode.TIMEOUT
    assert res.error.reason == "run_timeout"


def test_invalid_inputs():
    ctl = AdaptiveSelfConsistency(_constant())
    assert _run(ctl.run("   ")).error.reason == "invalid_query"
    assert _run(ctl.run("q", difficulty_level="extreme")).error.reason == "invalid_level"
    assert _run(ctl.run("q", budget={"num_candidates": 3})).error.reason == "invalid_budget"


def test_supplied_estimate_is_used():
    ctl = AdaptiveSelfConsistency(_all_different())
    est = DifficultyEstimate(level="easy", score=0.1)
    out = _run(ctl.run("q", difficulty=est)).value
    assert out.metadata["difficulty_level"] == "easy"
    assert out.metadata["difficulty_score"] == 0.1
    assert out.actual_n == 5


def test_difficulty_estimator_consulted_when_no_level_given():
    ctl = AdaptiveSelfConsistency(_constant(), difficulty_estimator=HeuristicDifficulty())
    out = _run(ctl.run("What is 2+2?")).value
    assert out.metadata["difficulty_level"] == "easy"


def test_default_level_is_medium():
    out = _run(AdaptiveSelfConsistency(_all_different()).run("q")).value
    assert out.metadata["difficulty_level"] == "medium"
    assert out.actual_n == 10
