# src/answerguard/core/confidence.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from answerguard.core.levels import ConfidenceLevel
from answerguard.core.thresholds import confidence_level
from answerguard.core.validation import compact, construct, in_unit_interval, is_number, optional_unit
from answerguard.errors import ErrorCode, Result, invalid


@dataclass(frozen=True)
class ConfidenceEstimate:
    score: float
    method: str
    calibration: Optional[float] = None
    reasoning: Optional[str] = None
    token_level_confidence: Optional[List[float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not in_unit_interval(self.score):
            raise invalid("invalid_score", "score must be in [0, 1]")
        if not isinstance(self.method, str) or not self.method:
            raise invalid("invalid_method", "method label is required")
        if not optional_unit(self.calibration):
            raise invalid("invalid_calibration", "calibration must be in [0, 1]")
        if self.reasoning is not None and not isinstance(self.reasoning, str):
            raise invalid("invalid_reasoning")
        if self.token_level_confidence is not None:
            if not isinstance(self.token_level_confidence, list) or not all(
                is_number(p) for p in self.token_level_confidence
            ):
                raise invalid("invalid_token_level_confidence")
        if not isinstance(self.metadata, dict):
            raise invalid("invalid_metadata")

    @classmethod
    def create(cls, **attrs: Any) -> Result["ConfidenceEstimate"]:
        return construct(cls, **attrs)

    @property
    def level(self) -> ConfidenceLevel:
        return confidence_level(self.score)

    @property
    def is_high(self) -> bool:
        return self.level == ConfidenceLevel.HIGH

    @property
    def is_medium(self) -> bool:
        return self.level == ConfidenceLevel.MEDIUM

    @property
    def is_low(self) -> bool:
        return self.level == ConfidenceLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return compact({
            "score": self.score,
            "method": self.method,
            "calibration": self.calibration,
            "reasoning": self.reasoning,
            "token_level_confidence": (
                list(self.token_level_confidence) if self.token_level_confidence is not None else None
            ),
            "metadata": dict(self.metadata),
        })

    @classmethod
    def from_dict(cls, data: Any) -> Result["ConfidenceEstimate"]:
        if not isinstance(data, dict):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_confidence", "expected a map")
        for required in ("score", "method"):
            if required not in data:
                return Result.failure(ErrorCode.INVALID_INPUT, f"missing_{required}")
        attrs = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        return construct(cls, **attrs)
