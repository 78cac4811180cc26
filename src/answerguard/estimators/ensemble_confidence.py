# src/answerguard/estimators/ensemble_confidence.py
"""Ensemble over several confidence estimators.

Sub-estimators run concurrently, each under its own timeout. An estimator
that fails, times out or raises is excluded; only when all of them fail is
the ensemble itself a failure.
"""
from __future__ import annotations

import asyncio
import logging
from collections import Counter
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import Field, field_validator, model_validator

from answerguard.config import Settings
from answerguard.core.candidate import Candidate
from answerguard.core.confidence import ConfidenceEstimate
from answerguard.core.levels import ConfidenceLevel
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.thresholds import confidence_level
from answerguard.core.validation import clamp01, in_unit_interval, parse_enum
from answerguard.errors import ErrorCode, Failure, Result
from answerguard.estimators.confidence import ConfidenceEstimator, is_confidence_estimator

log = logging.getLogger(__name__)

BAND_MIDPOINTS = {
    ConfidenceLevel.HIGH: 0.85,
    ConfidenceLevel.MEDIUM: 0.55,
    ConfidenceLevel.LOW: 0.2,
}
# voting ties resolve toward the higher band
_BAND_ORDER = [ConfidenceLevel.HIGH, ConfidenceLevel.MEDIUM, ConfidenceLevel.LOW]


class CombinationMethod(str, Enum):
    WEIGHTED_MEAN = "weighted_mean"
    MEAN = "mean"
    VOTING = "voting"


def _valid_entry(entry: Any) -> bool:
    if isinstance(entry, tuple):
        if len(entry) != 2:
            return False
        cls, cfg = entry
        return isinstance(cls, type) and is_confidence_estimator(cls) and (cfg is None or isinstance(cfg, dict))
    return is_confidence_estimator(entry)


class EnsembleConfidenceConfig(ComponentConfig):
    """``estimators`` holds estimator instances or ``(estimator_class, config_dict)``
    pairs; pairs are instantiated per call so a bad config only knocks out
    that one estimator."""

    estimators: List[Any] = Field(..., min_length=1)
    weights: Optional[List[float]] = None
    combination_method: CombinationMethod = CombinationMethod.WEIGHTED_MEAN
    estimator_timeout_s: float = Field(default_factory=lambda: Settings.ESTIMATOR_TIMEOUT_S, gt=0.0, le=60.0)

    @field_validator("estimators")
    @classmethod
    def _entries(cls, v: List[Any]) -> List[Any]:
        if not all(_valid_entry(e) for e in v):
            raise ValueError("invalid_estimator")
        return v

    @model_validator(mode="after")
    def _weights(self) -> "EnsembleConfidenceConfig":
        if self.weights is not None:
            if len(self.weights) != len(self.estimators):
                raise ValueError("weights_length_mismatch")
            if not all(0.0 <= w <= 1.0 for w in self.weights):
                raise ValueError("invalid_weights")
        return self


def disagreement_score(scores: Sequence[float], baseline: float) -> float:
    """Mean absolute deviation of ``scores`` from ``baseline``."""
    if not scores:
        return 0.0
    return sum(abs(s - baseline) for s in scores) / len(scores)


class EnsembleConfidence(ConfidenceEstimator):
    name = "ensemble"

    def __init__(self, config: EnsembleConfidenceConfig):
        self.config = config

    @staticmethod
    def _instantiate(entry: Any) -> Any:
        if isinstance(entry, tuple):
            cls, cfg = entry
            cfg = cfg or {}
            config_cls = getattr(cls, "config_class", None)
            if config_cls is not None:
                return cls(config_cls(**cfg))
            return cls(**cfg)
        return entry

    async def _run_one(self, entry: Any, candidate: Candidate, context: Dict[str, Any]) -> Result[ConfidenceEstimate]:
        name = entry[0].__name__ if isinstance(entry, tuple) else type(entry).__name__
        try:
            estimator = self._instantiate(entry)
            res = await asyncio.wait_for(
                estimator.estimate(candidate, context),
                timeout=self.config.estimator_timeout_s,
            )
        except asyncio.TimeoutError:
            log.warning("confidence estimator %s timed out", name)
            return Result.failure(ErrorCode.TIMEOUT, "estimator_timeout", estimator=name)
        except Exception as e:
            log.warning("confidence estimator %s failed: %s", name, type(e).__name__)
            return Result.failure(ErrorCode.ESTIMATION_FAILED, "estimator_crashed", str(e), estimator=name)
        if not isinstance(res, Result):
            return Result.failure(ErrorCode.ESTIMATION_FAILED, "invalid_estimator_output", estimator=name)
        return res

    async def _collect(
        self,
        candidate: Candidate,
        context: Dict[str, Any],
    ) -> Tuple[List[Tuple[int, ConfidenceEstimate]], List[Failure]]:
        results = await asyncio.gather(
            *(self._run_one(entry, candidate, context) for entry in self.config.estimators)
        )
        survivors = [(i, r.value) for i, r in enumerate(results) if r.ok]
        failures = [r.error for r in results if not r.ok]
        return survivors, failures

    def _resolve_options(self, context: Dict[str, Any]) -> Result[Tuple[CombinationMethod, Optional[List[float]]]]:
        method = self.config.combination_method
        if "combination_method" in context:
            parsed = parse_enum(CombinationMethod, context["combination_method"], "combination_method")
            if not parsed.ok:
                return Result.from_failure(parsed.error)
            method = parsed.value

        weights = self.config.weights
        if "weights" in context:
            weights = context["weights"]
            if not isinstance(weights, list) or len(weights) != len(self.config.estimators):
                return Result.failure(ErrorCode.INVALID_INPUT, "weights_length_mismatch")
            if not all(in_unit_interval(w) for w in weights):
                return Result.failure(ErrorCode.INVALID_INPUT, "invalid_weights")
        return Result.success((method, weights))

    @staticmethod
    def _combine(
        method: CombinationMethod,
        scores: List[float],
        weights: Optional[List[float]],
    ) -> Result[Tuple[float, Dict[str, Any]]]:
        if method == CombinationMethod.WEIGHTED_MEAN and weights is not None:
            total = sum(weights)
            if total <= 0.0:
                # only zero-weight estimators survived
                return Result.success((sum(scores) / len(scores), {"weight_fallback": "unweighted_mean"}))
            return Result.success((sum(s * w for s, w in zip(scores, weights)) / total, {}))
        if method == CombinationMethod.VOTING:
            votes = Counter(confidence_level(s) for s in scores)
            winner = max(_BAND_ORDER, key=lambda band: (votes.get(band, 0), -_BAND_ORDER.index(band)))
            return Result.success((
                BAND_MIDPOINTS[winner],
                {"vote_distribution": {band.value: votes.get(band, 0) for band in _BAND_ORDER}},
            ))
        return Result.success((sum(scores) / len(scores), {}))

    async def estimate(self, candidate: Candidate, context: Optional[Dict[str, Any]] = None) -> Result[ConfidenceEstimate]:
        context = context or {}
        if not isinstance(candidate, Candidate):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_candidate")
        options = self._resolve_options(context)
        if not options.ok:
            return Result.from_failure(options.error)
        method, weights = options.value

        survivors, failures = await self._collect(candidate, context)
        if not survivors:
            return Result.failure(
                ErrorCode.ALL_ESTIMATORS_FAILED,
                "all_estimators_failed",
                f"all {len(failures)} estimators failed",
                failures=[f.to_dict() for f in failures],
            )

        scores = [est.score for _, est in survivors]
        surviving_weights = [weights[i] for i, _ in survivors] if weights is not None else None
        combined = self._combine(method, scores, surviving_weights)
        if not combined.ok:
            return Result.from_failure(combined.error)
        score, extra = combined.value
        score = clamp01(score)
        disagreement = disagreement_score(scores, score)

        return Result.success(ConfidenceEstimate(
            score=score,
            method=self.name,
            reasoning=(
                f"Ensemble of {len(survivors)} estimators combined by {method.value} "
                f"(disagreement {disagreement:.3f})."
            ),
            metadata={
                "combination_method": method.value,
                "estimator_count": len(survivors),
                "failed_count": len(failures),
                "individual_scores": scores,
                "individual_methods": [est.method for _, est in survivors],
                "disagreement": disagreement,
                **extra,
            },
        ))

    async def estimate_with_disagreement(
        self,
        candidate: Candidate,
        context: Optional[Dict[str, Any]] = None,
    ) -> Result[Tuple[ConfidenceEstimate, float]]:
        res = await self.estimate(candidate, context)
        if not res.ok:
            return Result.from_failure(res.error)
        return Result.success((res.value, res.value.metadata["disagreement"]))

    async def disagreement(self, candidate: Candidate, context: Optional[Dict[str, Any]] = None) -> Result[float]:
        """Mean absolute deviation of the individual scores from the combined score."""
        res = await self.estimate_with_disagreement(candidate, context)
        if not res.ok:
            return Result.from_failure(res.error)
        return Result.success(res.value[1])
