# src/answerguard/decision/selective.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import Field, model_validator

from answerguard.core.candidate import Candidate
from answerguard.core.confidence import ConfidenceEstimate
from answerguard.core.levels import Decision
from answerguard.core.results import DecisionResult
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.validation import in_unit_interval
from answerguard.errors import ErrorCode, Result

log = logging.getLogger(__name__)

ABSTENTION_TEMPLATE = (
    "I'm not confident enough to provide a reliable answer.\n"
    "\n"
    "Confidence: {confidence:.2f}\n"
    "Expected value: {ev:.2f}\n"
    "\n"
    "The risk of providing incorrect information outweighs the potential benefit.\n"
    "Please consider:\n"
    "- Rephrasing your question with more specific details\n"
    "- Providing additional context\n"
    "- Consulting a more specialized source"
)


class SelectiveGenerationConfig(ComponentConfig):
    """Reward for a correct answer, penalty for a wrong one.

    With ``use_ev`` the answer is given only when its expected value beats
    abstaining (which is worth 0). Without it, ``confidence_threshold`` decides.
    """

    reward: float = Field(1.0, gt=0.0, le=1000.0)
    penalty: float = Field(1.0, ge=0.0, le=1000.0)
    use_ev: bool = True
    confidence_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _threshold_mode_needs_threshold(self) -> "SelectiveGenerationConfig":
        if not self.use_ev and self.confidence_threshold is None:
            raise ValueError("missing_confidence_threshold")
        return self


def calculate_ev(config: SelectiveGenerationConfig, confidence: float) -> Tuple[float, float]:
    """(ev_answer, ev_abstain) for a confidence in [0, 1]."""
    ev_answer = confidence * config.reward - (1.0 - confidence) * config.penalty
    return ev_answer, 0.0


def answer_or_abstain(
    config: SelectiveGenerationConfig,
    candidate: Candidate,
    confidence: Union[float, ConfidenceEstimate],
) -> Result[DecisionResult]:
    if not isinstance(candidate, Candidate):
        return Result.failure(ErrorCode.INVALID_INPUT, "invalid_candidate")
    score = confidence.score if isinstance(confidence, ConfidenceEstimate) else confidence
    if not in_unit_interval(score):
        return Result.failure(ErrorCode.INVALID_INPUT, "invalid_confidence", "confidence must be in [0, 1]")
    score = float(score)

    ev_answer, ev_abstain = calculate_ev(config, score)
    metadata: Dict[str, Any] = {
        "reward": config.reward,
        "penalty": config.penalty,
        "use_ev": config.use_ev,
    }

    if config.use_ev:
        answer = ev_answer > ev_abstain
        if answer:
            reasoning = (
                f"Positive expected value ({ev_answer:.3f}) at confidence {score:.3f}: "
                f"reward {config.reward} outweighs penalty {config.penalty}."
            )
        else:
            reasoning = (
                f"Non-positive expected value ({ev_answer:.3f}) at confidence {score:.3f}: "
                f"penalty {config.penalty} outweighs reward {config.reward}."
            )
    else:
        threshold = config.confidence_threshold
        metadata["confidence_threshold"] = threshold
        answer = score >= threshold
        relation = "meets" if answer else "is below"
        reasoning = f"Confidence {score:.3f} {relation} threshold {threshold:.3f}."

    if answer:
        return Result.success(DecisionResult(
            decision=Decision.ANSWER,
            candidate=candidate,
            confidence=score,
            ev_answer=ev_answer,
            ev_abstain=ev_abstain,
            reasoning=reasoning,
            metadata=metadata,
        ))

    log.info("abstaining: confidence=%.3f ev=%.3f", score, ev_answer)
    abstention = Candidate(
        content=ABSTENTION_TEMPLATE.format(confidence=score, ev=ev_answer),
        metadata={
            "abstained": True,
            "original_confidence": score,
            "original_candidate_id": candidate.id,
        },
    )
    return Result.success(DecisionResult(
        decision=Decision.ABSTAIN,
        candidate=abstention,
        confidence=score,
        ev_answer=ev_answer,
        ev_abstain=ev_abstain,
        reasoning=reasoning,
        metadata=metadata,
    ))


class SelectiveGeneration:
    """Object wrapper over ``answer_or_abstain`` for pipeline wiring."""

    def __init__(self, config: Optional[SelectiveGenerationConfig] = None):
        self.config = config or SelectiveGenerationConfig()

    @classmethod
    def create(cls, **attrs: Any) -> Result["SelectiveGeneration"]:
        cfg = SelectiveGenerationConfig.create(**attrs)
        if not cfg.ok:
            return Result.from_failure(cfg.error)
        return Result.success(cls(cfg.value))

    def calculate_ev(self, confidence: float) -> Tuple[float, float]:
        return calculate_ev(self.config, confidence)

    def answer_or_abstain(
        self,
        candidate: Candidate,
        confidence: Union[float, ConfidenceEstimate],
    ) -> Result[DecisionResult]:
        return answer_or_abstain(self.config, candidate, confidence)
