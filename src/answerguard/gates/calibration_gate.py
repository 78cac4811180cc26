# src/answerguard/gates/calibration_gate.py
"""Confidence-threshold routing.

High confidence answers go out unchanged. Medium confidence answers get the
configured medium action (a verification or citation suffix by default), low
confidence answers get the low action (abstention by default). Abstain and
escalate replace the content with a templated explanation.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Union

from pydantic import Field, model_validator

from answerguard.config import Settings
from answerguard.core.candidate import Candidate
from answerguard.core.confidence import ConfidenceEstimate
from answerguard.core.levels import ConfidenceLevel, RoutingAction, SuggestedAction
from answerguard.core.results import RoutingResult, UncertaintyResult
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.thresholds import CALIBRATION_HIGH, CALIBRATION_MEDIUM, confidence_level
from answerguard.core.validation import in_unit_interval
from answerguard.errors import ErrorCode, Result
from answerguard.telemetry.events import emit_event

log = logging.getLogger(__name__)

THRESHOLD_EPSILON = 0.0001

VERIFICATION_SUFFIX = "\n\n[Confidence: Medium] Please verify this information independently."
CITATION_SUFFIX = "\n\n[Confidence: Medium] Consider verifying this with additional sources."

ABSTENTION_TEMPLATE = (
    "I'm not confident enough to provide a definitive answer to this question "
    "(confidence: {score:.2f}).\n"
    "\n"
    "This could be because:\n"
    "- The question is ambiguous or unclear\n"
    "- I don't have sufficient information to answer accurately\n"
    "- There are multiple valid interpretations\n"
    "\n"
    "Suggestions:\n"
    "- Try rephrasing your question with more specific details\n"
    "- Break the question into smaller parts\n"
    "- Provide additional context"
)

ESCALATION_TEMPLATE = (
    "I'm not confident enough to provide a definitive answer (confidence: {score:.2f}).\n"
    "\n"
    "This question has been escalated for human review. Someone will provide assistance shortly."
)

Score = Union[float, ConfidenceEstimate]


class CalibrationGateConfig(ComponentConfig):
    high_threshold: float = Field(CALIBRATION_HIGH, ge=0.0, le=1.0)
    low_threshold: float = Field(CALIBRATION_MEDIUM, ge=0.0, le=1.0)
    medium_action: RoutingAction = RoutingAction.WITH_VERIFICATION
    low_action: RoutingAction = RoutingAction.ABSTAIN
    emit_telemetry: bool = Field(default_factory=lambda: Settings.EMIT_TELEMETRY)

    @model_validator(mode="after")
    def _ordered_thresholds(self) -> "CalibrationGateConfig":
        if self.high_threshold - self.low_threshold <= THRESHOLD_EPSILON:
            raise ValueError("invalid_thresholds")
        return self


def _score_of(confidence: Score) -> Optional[float]:
    if isinstance(confidence, ConfidenceEstimate):
        return confidence.score
    if in_unit_interval(confidence):
        return float(confidence)
    return None


def abstention_candidate(score: float, original: Optional[Candidate] = None) -> Candidate:
    metadata: Dict[str, Any] = {"abstained": True, "original_confidence": score}
    if original is not None:
        metadata["original_candidate_id"] = original.id
    return Candidate(content=ABSTENTION_TEMPLATE.format(score=score), metadata=metadata)


def escalation_candidate(score: float, original: Optional[Candidate] = None) -> Candidate:
    metadata: Dict[str, Any] = {"escalated": True, "original_confidence": score}
    if original is not None:
        metadata["original_candidate_id"] = original.id
    return Candidate(content=ESCALATION_TEMPLATE.format(score=score), metadata=metadata)


class CalibrationGate:
    def __init__(self, config: Optional[CalibrationGateConfig] = None):
        self.config = config or CalibrationGateConfig()

    @classmethod
    def create(cls, **attrs: Any) -> Result["CalibrationGate"]:
        cfg = CalibrationGateConfig.create(**attrs)
        if not cfg.ok:
            return Result.from_failure(cfg.error)
        return Result.success(cls(cfg.value))

    def confidence_level(self, score: float) -> ConfidenceLevel:
        return confidence_level(score, high=self.config.high_threshold, medium=self.config.low_threshold)

    def _action_for(self, level: ConfidenceLevel) -> RoutingAction:
        if level == ConfidenceLevel.HIGH:
            return RoutingAction.DIRECT
        if level == ConfidenceLevel.MEDIUM:
            return self.config.medium_action
        return self.config.low_action

    def should_route(self, score: float) -> Result[RoutingAction]:
        """Action a score would receive, without building a result."""
        if not in_unit_interval(score):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_score", "score must be in [0, 1]")
        return Result.success(self._action_for(self.confidence_level(score)))

    @staticmethod
    def _apply(action: RoutingAction, candidate: Candidate, score: float, level: ConfidenceLevel):
        label = f"{level.value.capitalize()} confidence ({score:.3f})"
        if action == RoutingAction.DIRECT:
            return candidate, f"{label}, returning answer directly"
        if action == RoutingAction.WITH_VERIFICATION:
            return (
                candidate.replace(content=candidate.content + VERIFICATION_SUFFIX),
                f"{label}, adding verification suggestion",
            )
        if action == RoutingAction.WITH_CITATIONS:
            return (
                candidate.replace(content=candidate.content + CITATION_SUFFIX),
                f"{label}, adding citations",
            )
        if action == RoutingAction.ABSTAIN:
            return abstention_candidate(score, candidate), f"{label}, abstaining from answer"
        return escalation_candidate(score, candidate), f"{label}, escalating for review"

    def route(
        self,
        candidate: Candidate,
        confidence: Score,
        *,
        uncertainty: Optional[UncertaintyResult] = None,
        run_id: Optional[str] = None,
    ) -> Result[RoutingResult]:
        t0 = time.perf_counter()
        if not isinstance(candidate, Candidate):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_candidate")
        score = _score_of(confidence)
        if score is None:
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_score", "score must be in [0, 1]")

        level = self.confidence_level(score)
        action = self._action_for(level)
        metadata: Dict[str, Any] = {
            "high_threshold": self.config.high_threshold,
            "low_threshold": self.config.low_threshold,
        }
        if uncertainty is not None:
            metadata["uncertainty_type"] = uncertainty.uncertainty_type.value
            if action == RoutingAction.DIRECT and uncertainty.suggested_action == SuggestedAction.ABSTAIN:
                action = self.config.medium_action
                metadata["downgraded_by_uncertainty"] = True

        modified, reasoning = self._apply(action, candidate, score, level)
        result = RoutingResult(
            action=action,
            candidate=modified,
            original_score=score,
            confidence_level=level,
            reasoning=reasoning,
            metadata=metadata,
        )

        duration_ms = (time.perf_counter() - t0) * 1000.0
        if self.config.emit_telemetry:
            emit_event(
                stage="calibration.route",
                run_id=run_id,
                payload={
                    "action": action,
                    "confidence_level": level,
                    "score": score,
                    "duration_ms": round(duration_ms, 3),
                },
            )
        log.debug("routed score=%.3f level=%s action=%s", score, level.value, action.value)
        return Result.success(result)
