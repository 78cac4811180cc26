# src/answerguard/core/difficulty.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from answerguard.core.levels import DifficultyLevel
from answerguard.core.thresholds import score_to_level
from answerguard.core.validation import compact, construct, optional_unit, parse_enum
from answerguard.errors import AccuracyError, ErrorCode, Result, invalid


@dataclass(frozen=True)
class DifficultyEstimate:
    """Difficulty of a query.

    ``level`` is derived from ``score`` when omitted, and defaults to medium
    when neither is given. An explicit level is trusted even when it
    disagrees with the score bands; callers passing both should keep them
    consistent.
    """

    level: Optional[DifficultyLevel] = None
    score: Optional[float] = None
    confidence: Optional[float] = None
    reasoning: Optional[str] = None
    features: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not optional_unit(self.score):
            raise invalid("invalid_score", "score must be in [0, 1]")
        if not optional_unit(self.confidence):
            raise invalid("invalid_confidence", "confidence must be in [0, 1]")
        if self.reasoning is not None and not isinstance(self.reasoning, str):
            raise invalid("invalid_reasoning")
        if not isinstance(self.features, dict) or not isinstance(self.metadata, dict):
            raise invalid("invalid_metadata", "features and metadata must be maps")

        if self.level is None:
            level = score_to_level(self.score) if self.score is not None else DifficultyLevel.MEDIUM
        else:
            parsed = parse_enum(DifficultyLevel, self.level, "level")
            if not parsed.ok:
                raise AccuracyError(parsed.error)
            level = parsed.value
        object.__setattr__(self, "level", level)

    @classmethod
    def create(cls, **attrs: Any) -> Result["DifficultyEstimate"]:
        return construct(cls, **attrs)

    @property
    def is_easy(self) -> bool:
        return self.level == DifficultyLevel.EASY

    @property
    def is_medium(self) -> bool:
        return self.level == DifficultyLevel.MEDIUM

    @property
    def is_hard(self) -> bool:
        return self.level == DifficultyLevel.HARD

    def to_dict(self) -> Dict[str, Any]:
        return compact({
            "level": self.level.value,
            "score": self.score,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "features": dict(self.features),
            "metadata": dict(self.metadata),
        })

    @classmethod
    def from_dict(cls, data: Any) -> Result["DifficultyEstimate"]:
        if not isinstance(data, dict):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_difficulty", "expected a map")
        attrs = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        if "level" in attrs:
            level = parse_enum(DifficultyLevel, attrs["level"], "level")
            if not level.ok:
                return Result.from_failure(level.error)
            attrs["level"] = level.value
        return construct(cls, **attrs)
