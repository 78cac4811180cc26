# src/answerguard/estimators/ensemble_difficulty.py
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from answerguard.config import Settings
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import DifficultyLevel
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.thresholds import level_to_score, score_to_level
from answerguard.errors import ErrorCode, Failure, Result
from answerguard.estimators.difficulty import DifficultyEstimator, is_difficulty_estimator

log = logging.getLogger(__name__)


class DifficultyCombination(str, Enum):
    WEIGHTED_AVERAGE = "weighted_average"
    MAJORITY_VOTE = "majority_vote"
    MAX_CONFIDENCE = "max_confidence"
    AVERAGE = "average"


class EnsembleDifficultyConfig(ComponentConfig):
    estimators: List[Any] = Field(..., min_length=1)
    weights: Optional[List[float]] = None
    combination: DifficultyCombination = DifficultyCombination.WEIGHTED_AVERAGE
    fallback: Optional[Any] = None
    timeout_s: float = Field(default_factory=lambda: Settings.ESTIMATOR_TIMEOUT_S, gt=0.0, le=30.0)

    @field_validator("estimators")
    @classmethod
    def _all_estimators(cls, v: List[Any]) -> List[Any]:
        if not all(is_difficulty_estimator(e) for e in v):
            raise ValueError("invalid_estimator")
        return v

    @field_validator("fallback")
    @classmethod
    def _fallback_estimator(cls, v: Any) -> Any:
        if v is not None and not is_difficulty_estimator(v):
            raise ValueError("invalid_fallback")
        return v

    @model_validator(mode="after")
    def _weights_match(self) -> "EnsembleDifficultyConfig":
        if self.weights is not None:
            if len(self.weights) != len(self.estimators):
                raise ValueError("weights_length_mismatch")
            if any(not 0.0 <= w <= 1.0 for w in self.weights):
                raise ValueError("invalid_weights")
            if sum(self.weights) <= 0.0:
                raise ValueError("zero_total_weight")
        return self


def _score_of(estimate: DifficultyEstimate) -> float:
    return estimate.score if estimate.score is not None else level_to_score(estimate.level)


def _confidence_of(estimate: DifficultyEstimate) -> float:
    return estimate.confidence if estimate.confidence is not None else 0.5


class EnsembleDifficulty(DifficultyEstimator):
    """Runs several difficulty estimators concurrently and combines them.

    Failing estimators are dropped. When every estimator fails the fallback
    estimator (if any) is consulted.
    """

    name = "ensemble"

    def __init__(self, config: EnsembleDifficultyConfig):
        self.config = config

    async def _run_one(self, estimator: Any, query: str, context: Dict[str, Any]) -> Result[DifficultyEstimate]:
        try:
            return await asyncio.wait_for(estimator.estimate(query, context), timeout=self.config.timeout_s)
        except asyncio.TimeoutError:
            return Result.failure(ErrorCode.TIMEOUT, "estimator_timeout")
        except Exception as e:
            log.warning("difficulty estimator %s crashed: %s", type(estimator).__name__, type(e).__name__)
            return Result.failure(ErrorCode.ESTIMATION_FAILED, "estimator_crashed", str(e))

    async def estimate(self, query: str, context: Optional[Dict[str, Any]] = None) -> Result[DifficultyEstimate]:
        context = context or {}
        results = await asyncio.gather(*(self._run_one(e, query, context) for e in self.config.estimators))

        survivors = [(i, r.value) for i, r in enumerate(results) if r.ok]
        failures: List[Failure] = [r.error for r in results if not r.ok]
        if not survivors:
            if self.config.fallback is not None:
                log.info("all difficulty estimators failed, using fallback")
                return await self._run_one(self.config.fallback, query, context)
            return Result.failure(
                ErrorCode.ALL_ESTIMATORS_FAILED,
                "all_estimators_failed",
                failures=[f.to_dict() for f in failures],
            )

        estimates = [est for _, est in survivors]
        combination = self.config.combination
        if combination == DifficultyCombination.WEIGHTED_AVERAGE:
            weights = None
            if self.config.weights is not None:
                weights = [self.config.weights[i] for i, _ in survivors]
            combined = self._weighted_average(estimates, weights)
        elif combination == DifficultyCombination.MAJORITY_VOTE:
            combined = self._majority_vote(estimates)
        elif combination == DifficultyCombination.MAX_CONFIDENCE:
            combined = self._max_confidence(estimates)
        else:
            combined = self._average(estimates)

        if not combined.ok:
            return combined
        estimate = combined.value
        return DifficultyEstimate.create(
            level=estimate.level,
            score=estimate.score,
            confidence=estimate.confidence,
            reasoning=estimate.reasoning,
            features=estimate.features,
            metadata={**estimate.metadata, "failed_estimators": len(failures)},
        )

    @staticmethod
    def _weighted_average(estimates: List[DifficultyEstimate], weights: Optional[List[float]]) -> Result[DifficultyEstimate]:
        n = len(estimates)
        weight_fallback = None
        if weights is not None and sum(weights) <= 0.0:
            # only zero-weight estimators survived
            weights, weight_fallback = None, "unweighted_mean"
        weights = weights or [1.0 / n] * n
        total = sum(weights)
        weights = [w / total for w in weights]
        score = sum(_score_of(e) * w for e, w in zip(estimates, weights))
        confidence = sum(_confidence_of(e) * w for e, w in zip(estimates, weights))
        score = min(max(score, 0.0), 1.0)
        return DifficultyEstimate.create(
            level=score_to_level(score),
            score=score,
            confidence=min(max(confidence, 0.0), 1.0),
            reasoning=f"Weighted average of {n} difficulty estimates.",
            metadata={
                "ensemble": True,
                "combination": DifficultyCombination.WEIGHTED_AVERAGE.value,
                "num_estimators": n,
                "individual_scores": [_score_of(e) for e in estimates],
                "individual_confidences": [_confidence_of(e) for e in estimates],
                **({"weight_fallback": weight_fallback} if weight_fallback else {}),
            },
        )

    @staticmethod
    def _majority_vote(estimates: List[DifficultyEstimate]) -> Result[DifficultyEstimate]:
        votes = Counter(e.level for e in estimates)
        # ties resolve toward the easier level
        winner = max(DifficultyLevel, key=lambda level: (votes.get(level, 0), -list(DifficultyLevel).index(level)))
        count = votes[winner]
        agreement = count / len(estimates)
        winning = [e for e in estimates if e.level == winner]
        distribution = {level.value: votes.get(level, 0) for level in DifficultyLevel}
        return DifficultyEstimate.create(
            level=winner,
            score=sum(_score_of(e) for e in winning) / len(winning),
            confidence=agreement,
            reasoning=f"Majority vote: {winner.value} ({count}/{len(estimates)} estimators agree).",
            features={"vote_distribution": distribution, "agreement": agreement},
            metadata={
                "ensemble": True,
                "combination": DifficultyCombination.MAJORITY_VOTE.value,
                "num_estimators": len(estimates),
            },
        )

    @staticmethod
    def _max_confidence(estimates: List[DifficultyEstimate]) -> Result[DifficultyEstimate]:
        best = max(estimates, key=_confidence_of)
        reasoning = f"Selected estimate with highest confidence ({_confidence_of(best) * 100:.1f}%)."
        if best.reasoning:
            reasoning = f"{reasoning}\n{best.reasoning}"
        return DifficultyEstimate.create(
            level=best.level,
            score=best.score,
            confidence=best.confidence,
            reasoning=reasoning,
            features=best.features,
            metadata={
                **best.metadata,
                "ensemble": True,
                "combination": DifficultyCombination.MAX_CONFIDENCE.value,
            },
        )

    @staticmethod
    def _average(estimates: List[DifficultyEstimate]) -> Result[DifficultyEstimate]:
        n = len(estimates)
        scores = [_score_of(e) for e in estimates]
        score = sum(scores) / n
        return DifficultyEstimate.create(
            level=score_to_level(score),
            score=score,
            confidence=sum(_confidence_of(e) for e in estimates) / n,
            reasoning=f"Average of {n} difficulty estimates.",
            features={"num_estimators": n, "score_range": [min(scores), max(scores)]},
            metadata={"ensemble": True, "combination": DifficultyCombination.AVERAGE.value, "num_estimators": n},
        )
