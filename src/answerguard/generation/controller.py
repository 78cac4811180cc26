# src/answerguard/generation/controller.py
"""Adaptive self-consistency.

Samples candidates in batches, checks agreement once enough candidates
exist, and stops as soon as the most common answer clears the early-stop
threshold. Hard queries are allowed more samples than easy ones.

  resolve difficulty → plan (initial_n, max_n, batch) → generate batch
    → consensus? → stop | next batch | max reached → aggregate
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field, model_validator

from answerguard.config import Settings
from answerguard.core.budget import ComputeBudget
from answerguard.core.candidate import Candidate
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import DifficultyLevel
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.thresholds import EARLY_STOP_THRESHOLD, level_to_score
from answerguard.core.validation import parse_enum, supports
from answerguard.errors import AccuracyError, ErrorCode, Failure, Result
from answerguard.generation.aggregators import Aggregation, Aggregator, MajorityVote

log = logging.getLogger(__name__)

# level -> (initial_n, max_n, batch_size)
LEVEL_PLANS: Dict[DifficultyLevel, Tuple[int, int, int]] = {
    DifficultyLevel.EASY: (3, 5, 3),
    DifficultyLevel.MEDIUM: (5, 10, 3),
    DifficultyLevel.HARD: (10, 20, 5),
}


class SelfConsistencyConfig(ComponentConfig):
    min_candidates: int = Field(3, gt=0)
    max_candidates: int = Field(20, gt=0)
    batch_size: int = Field(3, gt=0)
    early_stop_threshold: float = Field(EARLY_STOP_THRESHOLD, ge=0.0, le=1.0)
    timeout_s: float = Field(default_factory=lambda: Settings.RUN_TIMEOUT_S, ge=1.0, le=300.0)

    @model_validator(mode="after")
    def _min_le_max(self) -> "SelfConsistencyConfig":
        if self.min_candidates > self.max_candidates:
            raise ValueError("min_exceeds_max")
        return self

    @property
    def batch_size_explicit(self) -> bool:
        return "batch_size" in self.model_fields_set


@dataclass(frozen=True)
class SelfConsistencyResult:
    candidate: Candidate
    metadata: Dict[str, Any]
    candidates: List[Candidate] = field(default_factory=list)

    @property
    def actual_n(self) -> int:
        return self.metadata["actual_n"]

    @property
    def early_stopped(self) -> bool:
        return self.metadata["early_stopped"]

    @property
    def consensus(self) -> float:
        return self.metadata["consensus"]


def initial_n_for_level(level: DifficultyLevel) -> int:
    return LEVEL_PLANS[DifficultyLevel(level)][0]


def max_n_for_level(level: DifficultyLevel) -> int:
    return LEVEL_PLANS[DifficultyLevel(level)][1]


def _config_failure(reason: str, message: str) -> AccuracyError:
    return AccuracyError(Failure(ErrorCode.INVALID_CONFIG, reason, message))


class AdaptiveSelfConsistency:
    def __init__(
        self,
        generator: Any,
        *,
        aggregator: Optional[Aggregator] = None,
        difficulty_estimator: Any = None,
        config: Optional[SelfConsistencyConfig] = None,
    ):
        if not supports(generator, "generate"):
            raise _config_failure("invalid_generator", "generator must implement generate()")
        aggregator = aggregator or MajorityVote()
        if not supports(aggregator, "aggregate"):
            raise _config_failure("invalid_aggregator", "aggregator must implement aggregate()")
        if difficulty_estimator is not None and not supports(difficulty_estimator, "estimate"):
            raise _config_failure("invalid_estimator", "difficulty estimator must implement estimate()")
        self.generator = generator
        self.aggregator = aggregator
        self.difficulty_estimator = difficulty_estimator
        self.config = config or SelfConsistencyConfig()

    @classmethod
    def create(cls, generator: Any, **kwargs: Any) -> Result["AdaptiveSelfConsistency"]:
        try:
            return Result.success(cls(generator, **kwargs))
        except AccuracyError as e:
            return Result.from_failure(e.failure)

    # -----------------------------
    # Planning
    # -----------------------------
    def plan(self, level: DifficultyLevel, budget: Optional[ComputeBudget] = None) -> Tuple[int, int, int]:
        """(initial_n, max_n, batch_size) for a level, bounded by config and budget."""
        cfg = self.config
        level_initial, level_max, level_batch = LEVEL_PLANS[level]
        max_n = min(max(level_max, cfg.min_candidates), cfg.max_candidates)
        if budget is not None:
            max_n = min(max_n, budget.num_candidates)
        initial_n = min(max(level_initial, cfg.min_candidates), max_n)
        batch = cfg.batch_size if cfg.batch_size_explicit else level_batch
        return initial_n, max_n, max(1, min(batch, max_n))

    def adjust_n(self, level: DifficultyLevel, current_n: int, *, max_n: Optional[int] = None) -> int:
        """Sample count after one more batch, never above ``max_n``."""
        _, planned_max, batch = self.plan(level)
        ceiling = planned_max if max_n is None else max_n
        return min(current_n + batch, ceiling)

    # -----------------------------
    # Consensus
    # -----------------------------
    def _aggregate(self, candidates: List[Candidate]) -> Result[Aggregation]:
        try:
            res = self.aggregator.aggregate(candidates)
        except Exception as e:
            log.warning("aggregator %s raised %s", type(self.aggregator).__name__, type(e).__name__)
            return Result.failure(ErrorCode.INVALID_INPUT, "aggregation_failed", str(e))
        if not isinstance(res, Result):
            return Result.failure(ErrorCode.INVALID_INPUT, "aggregation_failed", "aggregator returned no Result")
        return res

    @staticmethod
    def _agreement(aggregation: Aggregation) -> float:
        if aggregation.vote_distribution:
            return aggregation.agreement
        return float(aggregation.metadata.get("confidence", 0.0))

    def check_consensus(self, candidates: List[Candidate]) -> Result[float]:
        """Share of candidates agreeing with the most common answer."""
        aggregated = self._aggregate(candidates)
        if not aggregated.ok:
            return Result.from_failure(aggregated.error)
        return Result.success(self._agreement(aggregated.value))

    def consensus_reached(self, candidates: List[Candidate], threshold: Optional[float] = None) -> Result[bool]:
        threshold = self.config.early_stop_threshold if threshold is None else threshold
        agreement = self.check_consensus(candidates)
        if not agreement.ok:
            return Result.from_failure(agreement.error)
        return Result.success(agreement.value >= threshold)

    # -----------------------------
    # Run
    # -----------------------------
    async def _resolve_difficulty(
        self,
        query: str,
        difficulty: Optional[DifficultyEstimate],
        difficulty_level: Any,
        context: Dict[str, Any],
    ) -> Result[DifficultyEstimate]:
        if difficulty is not None:
            if not isinstance(difficulty, DifficultyEstimate):
                return Result.failure(ErrorCode.INVALID_INPUT, "invalid_difficulty")
            return Result.success(difficulty)
        if difficulty_level is not None:
            level = parse_enum(DifficultyLevel, difficulty_level, "level")
            if not level.ok:
                return Result.from_failure(level.error)
            return Result.success(DifficultyEstimate(level=level.value, score=level_to_score(level.value)))
        if self.difficulty_estimator is not None:
            return await self.difficulty_estimator.estimate(query, context)
        return Result.success(DifficultyEstimate(level=DifficultyLevel.MEDIUM, score=0.5))

    async def run(
        self,
        query: str,
        *,
        difficulty: Optional[DifficultyEstimate] = None,
        difficulty_level: Any = None,
        budget: Optional[ComputeBudget] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result[SelfConsistencyResult]:
        if not isinstance(query, str) or not query.strip():
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_query", "query must be non-empty text")
        if budget is not None and not isinstance(budget, ComputeBudget):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_budget")
        context = dict(context or {})

        estimate = await self._resolve_difficulty(query, difficulty, difficulty_level, context)
        if not estimate.ok:
            return Result.from_failure(estimate.error)

        initial_n, max_n, batch = self.plan(estimate.value.level, budget)
        budget_capped = max_n < self.plan(estimate.value.level)[1]
        timeout_s = self.config.timeout_s
        try:
            return await asyncio.wait_for(
                self._run_batches(query, context, estimate.value, initial_n, max_n, batch, budget_capped),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            log.warning("self-consistency run timed out after %ss", timeout_s)
            return Result.failure(ErrorCode.TIMEOUT, "run_timeout", timeout_s=timeout_s)

    async def _run_batches(
        self,
        query: str,
        context: Dict[str, Any],
        estimate: DifficultyEstimate,
        initial_n: int,
        max_n: int,
        batch: int,
        budget_capped: bool,
    ) -> Result[SelfConsistencyResult]:
        cfg = self.config
        candidates: List[Candidate] = []
        attempted = 0
        failed = 0
        batches = 0
        early_stopped = False

        # attempted grows every iteration, so the loop ends even if every sample fails
        while attempted < max_n:
            size = min(batch, max_n - attempted)
            try:
                results = await self.generator.generate(query, size, context)
            except Exception as e:
                log.warning("generator %s crashed: %s", type(self.generator).__name__, type(e).__name__)
                return Result.failure(
                    ErrorCode.GENERATOR_CRASHED,
                    "generator_crashed",
                    str(e),
                    error_type=type(e).__name__,
                )
            if not isinstance(results, list):
                return Result.failure(
                    ErrorCode.GENERATOR_CRASHED,
                    "invalid_generator_output",
                    f"generate() returned {type(results).__name__}, expected a list",
                )

            batches += 1
            attempted += size
            received = results[:size]
            for res in received:
                if isinstance(res, Result) and res.ok and isinstance(res.value, Candidate):
                    candidates.append(res.value)
                else:
                    failed += 1
            failed += size - len(received)
            log.debug("batch %d: %d/%d candidates, %d failed", batches, len(candidates), max_n, failed)

            if len(candidates) >= cfg.min_candidates:
                agreement = self.check_consensus(candidates)
                if agreement.ok and agreement.value >= cfg.early_stop_threshold:
                    early_stopped = True
                    break

        if not candidates:
            return Result.failure(
                ErrorCode.ALL_GENERATORS_FAILED,
                "all_generators_failed",
                f"all {attempted} generation attempts failed",
                attempted=attempted,
            )

        metadata: Dict[str, Any] = {
            "actual_n": len(candidates),
            "early_stopped": early_stopped,
            "difficulty_level": estimate.level.value,
            "difficulty_score": estimate.score,
            "initial_n": initial_n,
            "max_n": max_n,
            "batch_size": batch,
            "batches": batches,
            "failed_samples": failed,
            "aggregator": getattr(self.aggregator, "name", type(self.aggregator).__name__),
            "budget_capped": budget_capped,
        }

        aggregated = self._aggregate(candidates)
        if not aggregated.ok:
            metadata.update(consensus=0.0, aggregation_error=aggregated.error.reason)
            best = candidates[0]
        else:
            best = aggregated.value.best
            metadata.update(
                consensus=self._agreement(aggregated.value),
                vote_distribution=aggregated.value.vote_distribution,
            )

        log.info(
            "self-consistency finished: n=%d early_stopped=%s consensus=%.2f",
            metadata["actual_n"],
            early_stopped,
            metadata["consensus"],
        )
        return Result.success(SelfConsistencyResult(candidate=best, metadata=metadata, candidates=candidates))
