# src/answerguard/core/results.py
"""Outputs of the calibration gate, selective generation and the uncertainty
quantifier. Enum fields are parsed through explicit whitelists on load.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from answerguard.core.candidate import Candidate
from answerguard.core.levels import (
    ConfidenceLevel,
    Decision,
    RoutingAction,
    SuggestedAction,
    UncertaintyType,
)
from answerguard.core.validation import compact, construct, in_unit_interval, is_number, parse_enum
from answerguard.errors import AccuracyError, ErrorCode, Result, invalid


def _coerce(enum_cls, value, name):
    parsed = parse_enum(enum_cls, value, name)
    if not parsed.ok:
        raise AccuracyError(parsed.error)
    return parsed.value


def _load_candidate(data: Dict[str, Any]) -> Result[Optional[Candidate]]:
    raw = data.get("candidate")
    if raw is None:
        return Result.success(None)
    if isinstance(raw, Candidate):
        return Result.success(raw)
    return Candidate.from_dict(raw)


def _require(data: Any, kind: str, *keys: str) -> Optional[Result]:
    if not isinstance(data, dict):
        return Result.failure(ErrorCode.INVALID_INPUT, f"invalid_{kind}", "expected a map")
    for key in keys:
        if key not in data:
            return Result.failure(ErrorCode.INVALID_INPUT, f"missing_{key}")
    return None


@dataclass(frozen=True)
class RoutingResult:
    action: RoutingAction
    candidate: Candidate
    original_score: float
    confidence_level: ConfidenceLevel
    reasoning: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", _coerce(RoutingAction, self.action, "action"))
        object.__setattr__(
            self, "confidence_level", _coerce(ConfidenceLevel, self.confidence_level, "confidence_level")
        )
        if not isinstance(self.candidate, Candidate):
            raise invalid("invalid_candidate")
        if not in_unit_interval(self.original_score):
            raise invalid("invalid_score", "original_score must be in [0, 1]")

    @property
    def is_direct(self) -> bool:
        return self.action == RoutingAction.DIRECT

    @property
    def is_abstained(self) -> bool:
        return self.action == RoutingAction.ABSTAIN

    @property
    def is_escalated(self) -> bool:
        return self.action == RoutingAction.ESCALATE

    def to_dict(self) -> Dict[str, Any]:
        return compact({
            "action": self.action.value,
            "candidate": self.candidate.to_dict(),
            "original_score": self.original_score,
            "confidence_level": self.confidence_level.value,
            "reasoning": self.reasoning,
            "metadata": dict(self.metadata),
        })

    @classmethod
    def from_dict(cls, data: Any) -> Result["RoutingResult"]:
        missing = _require(data, "routing_result", "action", "candidate", "original_score", "confidence_level")
        if missing is not None:
            return missing
        for enum_cls, key in ((RoutingAction, "action"), (ConfidenceLevel, "confidence_level")):
            parsed = parse_enum(enum_cls, data[key], key)
            if not parsed.ok:
                return Result.from_failure(parsed.error)
        candidate = _load_candidate(data)
        if not candidate.ok:
            return Result.from_failure(candidate.error)
        attrs = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        attrs["candidate"] = candidate.value
        return construct(cls, **attrs)


@dataclass(frozen=True)
class DecisionResult:
    decision: Decision
    candidate: Candidate
    confidence: float
    ev_answer: float
    ev_abstain: float = 0.0
    reasoning: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "decision", _coerce(Decision, self.decision, "decision"))
        if not isinstance(self.candidate, Candidate):
            raise invalid("invalid_candidate")
        if not in_unit_interval(self.confidence):
            raise invalid("invalid_confidence", "confidence must be in [0, 1]")
        if not is_number(self.ev_answer) or not is_number(self.ev_abstain):
            raise invalid("invalid_expected_value")

    @property
    def answered(self) -> bool:
        return self.decision == Decision.ANSWER

    @property
    def abstained(self) -> bool:
        return self.decision == Decision.ABSTAIN

    def to_dict(self) -> Dict[str, Any]:
        return compact({
            "decision": self.decision.value,
            "candidate": self.candidate.to_dict(),
            "confidence": self.confidence,
            "ev_answer": self.ev_answer,
            "ev_abstain": self.ev_abstain,
            "reasoning": self.reasoning,
            "metadata": dict(self.metadata),
        })

    @classmethod
    def from_dict(cls, data: Any) -> Result["DecisionResult"]:
        missing = _require(data, "decision_result", "decision", "candidate", "confidence", "ev_answer")
        if missing is not None:
            return missing
        parsed = parse_enum(Decision, data["decision"], "decision")
        if not parsed.ok:
            return Result.from_failure(parsed.error)
        candidate = _load_candidate(data)
        if not candidate.ok:
            return Result.from_failure(candidate.error)
        attrs = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        attrs["candidate"] = candidate.value
        return construct(cls, **attrs)


@dataclass(frozen=True)
class UncertaintyResult:
    uncertainty_type: UncertaintyType
    confidence: float
    suggested_action: SuggestedAction
    reasoning: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "uncertainty_type", _coerce(UncertaintyType, self.uncertainty_type, "uncertainty_type")
        )
        object.__setattr__(
            self, "suggested_action", _coerce(SuggestedAction, self.suggested_action, "suggested_action")
        )
        if not in_unit_interval(self.confidence):
            raise invalid("invalid_confidence", "confidence must be in [0, 1]")

    @property
    def is_aleatoric(self) -> bool:
        return self.uncertainty_type == UncertaintyType.ALEATORIC

    @property
    def is_epistemic(self) -> bool:
        return self.uncertainty_type == UncertaintyType.EPISTEMIC

    @property
    def is_certain(self) -> bool:
        return self.uncertainty_type == UncertaintyType.NONE

    def to_dict(self) -> Dict[str, Any]:
        return compact({
            "uncertainty_type": self.uncertainty_type.value,
            "confidence": self.confidence,
            "suggested_action": self.suggested_action.value,
            "reasoning": self.reasoning,
            "metadata": dict(self.metadata),
        })

    @classmethod
    def from_dict(cls, data: Any) -> Result["UncertaintyResult"]:
        missing = _require(data, "uncertainty_result", "uncertainty_type", "confidence", "suggested_action")
        if missing is not None:
            return missing
        for enum_cls, key in (
            (UncertaintyType, "uncertainty_type"),
            (SuggestedAction, "suggested_action"),
        ):
            parsed = parse_enum(enum_cls, data[key], key)
            if not parsed.ok:
                return Result.from_failure(parsed.error)
        attrs = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        return construct(cls, **attrs)
