# src/answerguard/estimators/token_confidence.py
"""Confidence from per-token log-probabilities.

Each logprob becomes a probability, floored at ``token_floor`` so a single
near-zero token cannot collapse the score, then the token probabilities are
combined with product (default), mean or min.
"""
from __future__ import annotations

import math
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from answerguard.core.candidate import Candidate
from answerguard.core.confidence import ConfidenceEstimate
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.validation import clamp01, in_unit_interval, is_number, parse_enum
from answerguard.errors import ErrorCode, Result
from answerguard.estimators.confidence import ConfidenceEstimator

CONSISTENT_SPREAD = 0.2


class TokenAggregation(str, Enum):
    PRODUCT = "product"
    MEAN = "mean"
    MIN = "min"


class TokenProbabilityConfig(ComponentConfig):
    aggregation: TokenAggregation = TokenAggregation.PRODUCT
    token_floor: float = Field(0.01, ge=0.0, le=1.0)


def _aggregate(probs: List[float], method: TokenAggregation) -> float:
    if method == TokenAggregation.PRODUCT:
        # sum of logs avoids float underflow on long answers
        return math.exp(sum(math.log(p) for p in probs)) if all(p > 0 for p in probs) else 0.0
    if method == TokenAggregation.MEAN:
        return sum(probs) / len(probs)
    return min(probs)


class TokenProbabilityConfidence(ConfidenceEstimator):
    name = "token_probability"
    config_class = TokenProbabilityConfig

    def __init__(self, config: Optional[TokenProbabilityConfig] = None):
        self.config = config or TokenProbabilityConfig()

    async def estimate(self, candidate: Candidate, context: Optional[Dict[str, Any]] = None) -> Result[ConfidenceEstimate]:
        context = context or {}
        if not isinstance(candidate, Candidate):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_candidate")

        method = self.config.aggregation
        if "aggregation" in context:
            parsed = parse_enum(TokenAggregation, context["aggregation"], "aggregation")
            if not parsed.ok:
                return Result.from_failure(parsed.error)
            method = parsed.value

        floor = self.config.token_floor
        if "token_floor" in context:
            if not in_unit_interval(context["token_floor"]):
                return Result.failure(ErrorCode.INVALID_INPUT, "invalid_token_floor")
            floor = context["token_floor"]

        logprobs = candidate.logprobs
        if logprobs is None:
            return Result.failure(ErrorCode.NO_LOGPROBS, "no_logprobs", "candidate carries no token logprobs")
        if not isinstance(logprobs, (list, tuple)):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_logprobs")
        if not logprobs:
            return Result.failure(ErrorCode.NO_LOGPROBS, "empty_logprobs", "candidate logprobs are empty")
        if not all(is_number(lp) and lp <= 0 for lp in logprobs):
            return Result.failure(
                ErrorCode.INVALID_INPUT,
                "invalid_logprobs",
                "logprobs must be finite numbers <= 0",
            )

        probs = [max(math.exp(lp), floor) for lp in logprobs]
        score = clamp01(_aggregate(probs, method))
        lo, hi = min(probs), max(probs)
        spread = "consistent" if hi - lo < CONSISTENT_SPREAD else "variable"
        return Result.success(ConfidenceEstimate(
            score=score,
            method=self.name,
            reasoning=(
                f"Token-level confidence from {len(probs)} tokens using {method.value} aggregation "
                f"({spread} token confidence, range {lo:.3f}-{hi:.3f})."
            ),
            token_level_confidence=probs,
            metadata={
                "aggregation": method.value,
                "token_count": len(probs),
                "min_token_prob": lo,
                "max_token_prob": hi,
            },
        ))
