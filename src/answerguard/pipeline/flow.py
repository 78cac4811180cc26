# src/answerguard/pipeline/flow.py
"""End-to-end accuracy pipeline.

  difficulty → budget allocation → adaptive generation → confidence
    → uncertainty → calibration gate → selective answer/abstain

Generation and budget allocation are required: their failure ends the run
with ``status="error"``. The other stages are optional; a failing optional
stage is recorded in ``stage_errors`` and the run continues with a
fallback (medium difficulty, consensus confidence, no uncertainty).
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from answerguard.budget.budgeter import BudgeterState, allocate, remaining_budget
from answerguard.core.budget import ComputeBudget
from answerguard.core.candidate import Candidate
from answerguard.core.confidence import ConfidenceEstimate
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import DifficultyLevel, RoutingAction
from answerguard.core.results import DecisionResult, RoutingResult, UncertaintyResult
from answerguard.decision.selective import SelectiveGeneration
from answerguard.errors import AccuracyError, ErrorCode, Failure, Result
from answerguard.estimators.heuristic_difficulty import HeuristicDifficulty
from answerguard.estimators.token_confidence import TokenProbabilityConfidence
from answerguard.gates.calibration_gate import CalibrationGate
from answerguard.generation.aggregators import Aggregator
from answerguard.generation.controller import AdaptiveSelfConsistency, SelfConsistencyResult
from answerguard.pipeline.config import PipelineConfig, PipelineStage
from answerguard.telemetry.events import emit_event
from answerguard.uncertainty.quantifier import UncertaintyQuantifier

log = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    ANSWERED = "answered"
    HEDGED = "hedged"
    ABSTAINED = "abstained"
    ESCALATED = "escalated"
    ERROR = "error"


_ROUTE_STATUS = {
    RoutingAction.DIRECT: PipelineStatus.ANSWERED,
    RoutingAction.WITH_VERIFICATION: PipelineStatus.HEDGED,
    RoutingAction.WITH_CITATIONS: PipelineStatus.HEDGED,
    RoutingAction.ABSTAIN: PipelineStatus.ABSTAINED,
    RoutingAction.ESCALATE: PipelineStatus.ESCALATED,
}


@dataclass
class PipelineResult:
    status: PipelineStatus
    run_id: str
    candidate: Optional[Candidate] = None
    difficulty: Optional[DifficultyEstimate] = None
    budget: Optional[ComputeBudget] = None
    generation: Optional[SelfConsistencyResult] = None
    confidence: Optional[ConfidenceEstimate] = None
    uncertainty: Optional[UncertaintyResult] = None
    routing: Optional[RoutingResult] = None
    decision: Optional[DecisionResult] = None
    error: Optional[Failure] = None
    timings: Dict[str, float] = field(default_factory=dict)
    stage_errors: Dict[str, str] = field(default_factory=dict)
    budgeter_state: Optional[BudgeterState] = None

    @property
    def ok(self) -> bool:
        return self.status != PipelineStatus.ERROR

    @property
    def answer(self) -> Optional[str]:
        return self.candidate.content if self.candidate is not None else None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "status": self.status.value,
            "run_id": self.run_id,
            "timings": dict(self.timings),
        }
        for name in ("candidate", "difficulty", "budget", "confidence", "uncertainty", "routing", "decision", "error"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value.to_dict()
        if self.generation is not None:
            out["generation"] = dict(self.generation.metadata)
        if self.stage_errors:
            out["stage_errors"] = dict(self.stage_errors)
        return out


class AccuracyPipeline:
    """Runs the enabled stages of a PipelineConfig for one query at a time.

    The budgeter state is threaded through successive runs on the same
    instance. Concurrent ``run`` calls on one instance share that state;
    allocation happens without an intervening await, so each run is charged
    exactly once.
    """

    def __init__(
        self,
        generator: Any,
        *,
        config: Optional[PipelineConfig] = None,
        aggregator: Optional[Aggregator] = None,
        difficulty_estimator: Any = None,
        confidence_estimator: Any = None,
        budgeter_state: Optional[BudgeterState] = None,
    ):
        self.config = config or PipelineConfig.balanced()
        self.controller = AdaptiveSelfConsistency(
            generator,
            aggregator=aggregator,
            config=self.config.self_consistency,
        )
        self.difficulty_estimator = difficulty_estimator or HeuristicDifficulty(self.config.heuristic)
        self.confidence_estimator = confidence_estimator or TokenProbabilityConfidence()
        self.quantifier = UncertaintyQuantifier(self.config.uncertainty)
        self.gate = CalibrationGate(self.config.gate)
        self.selective = SelectiveGeneration(self.config.selective_config())
        self.budgeter_state = budgeter_state or BudgeterState(global_limit=self.config.global_limit)

    @classmethod
    def create(cls, generator: Any, **kwargs: Any) -> Result["AccuracyPipeline"]:
        try:
            return Result.success(cls(generator, **kwargs))
        except AccuracyError as e:
            return Result.from_failure(e.failure)

    @classmethod
    def from_preset(cls, name: str, generator: Any, **kwargs: Any) -> Result["AccuracyPipeline"]:
        config = PipelineConfig.for_name(name)
        if not config.ok:
            return Result.from_failure(config.error)
        return cls.create(generator, config=config.value, **kwargs)

    def _emit(self, stage: str, run_id: str, payload: Dict[str, Any]) -> None:
        if self.config.emit_telemetry:
            emit_event(stage=f"pipeline.{stage}", run_id=run_id, payload=payload)

    def _fail(self, result: PipelineResult, failure: Failure, t0: float) -> PipelineResult:
        result.status = PipelineStatus.ERROR
        result.error = failure
        result.timings["total_s"] = time.time() - t0
        result.budgeter_state = self.budgeter_state
        log.info("pipeline %s failed: %s", result.run_id, failure)
        self._emit("end", result.run_id, {"status": result.status, "reason": failure.reason})
        return result

    # -----------------------------
    # Stages
    # -----------------------------
    async def _difficulty(self, query: str, context: Dict[str, Any], result: PipelineResult) -> DifficultyEstimate:
        if not self.config.has_stage(PipelineStage.DIFFICULTY):
            return DifficultyEstimate(level=DifficultyLevel.MEDIUM, score=0.5, metadata={"source": "default"})
        t1 = time.time()
        estimated = await self.difficulty_estimator.estimate(query, context)
        result.timings["difficulty_s"] = time.time() - t1
        if estimated.ok:
            return estimated.value
        log.warning("difficulty stage failed (%s); assuming medium", estimated.error.reason)
        result.stage_errors["difficulty"] = estimated.error.reason
        return DifficultyEstimate(level=DifficultyLevel.MEDIUM, score=0.5, metadata={"source": "fallback"})

    async def _confidence(
        self,
        generation: SelfConsistencyResult,
        context: Dict[str, Any],
        result: PipelineResult,
    ) -> ConfidenceEstimate:
        fallback_reason = "stage_disabled"
        if self.config.has_stage(PipelineStage.CONFIDENCE):
            t1 = time.time()
            estimated = await self.confidence_estimator.estimate(generation.candidate, context)
            result.timings["confidence_s"] = time.time() - t1
            if estimated.ok:
                return estimated.value
            fallback_reason = estimated.error.reason
            result.stage_errors["confidence"] = fallback_reason
            log.warning("confidence stage failed (%s); using consensus", fallback_reason)
        return ConfidenceEstimate(
            score=float(generation.consensus),
            method="consensus",
            reasoning=f"Agreement among {generation.actual_n} samples",
            metadata={"fallback_reason": fallback_reason},
        )

    async def _uncertainty(
        self,
        query: str,
        context: Dict[str, Any],
        result: PipelineResult,
    ) -> Optional[UncertaintyResult]:
        if not self.config.has_stage(PipelineStage.UNCERTAINTY):
            return None
        t1 = time.time()
        classified = await self.quantifier.classify(query, context)
        result.timings["uncertainty_s"] = time.time() - t1
        if classified.ok:
            return classified.value
        log.warning("uncertainty stage failed (%s)", classified.error.reason)
        result.stage_errors["uncertainty"] = classified.error.reason
        return None

    # -----------------------------
    # Run
    # -----------------------------
    async def run(
        self,
        query: str,
        *,
        context: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> PipelineResult:
        rid = run_id or uuid.uuid4().hex
        context = dict(context or {})
        if self.config.domain is not None:
            context.setdefault("domain", self.config.domain)
        t0 = time.time()
        result = PipelineResult(status=PipelineStatus.ANSWERED, run_id=rid)

        if not isinstance(query, str) or not query.strip():
            return self._fail(result, Failure(ErrorCode.INVALID_INPUT, "invalid_query", "query must be non-empty text"), t0)

        self._emit("start", rid, {
            "preset": self.config.name,
            "stage_count": len(self.config.stages),
            "query_length": len(query),
        })

        # Difficulty
        difficulty = await self._difficulty(query, context, result)
        result.difficulty = difficulty
        self._emit("difficulty", rid, {"level": difficulty.level, "score": difficulty.score})

        # Budget
        allocated = allocate(self.budgeter_state, difficulty)
        if not allocated.ok:
            return self._fail(result, allocated.error, t0)
        budget, self.budgeter_state = allocated.value
        result.budget = budget
        remaining = remaining_budget(self.budgeter_state)
        self._emit("budget", rid, {
            "num_candidates": budget.num_candidates,
            "cost": budget.cost,
            "remaining": None if remaining == float("inf") else remaining,
        })

        # Generation
        t1 = time.time()
        generated = await self.controller.run(query, difficulty=difficulty, budget=budget, context=context)
        result.timings["generation_s"] = time.time() - t1
        if not generated.ok:
            return self._fail(result, generated.error, t0)
        generation = generated.value
        result.generation = generation
        result.candidate = generation.candidate
        self._emit("generation", rid, {
            "actual_n": generation.actual_n,
            "early_stopped": generation.early_stopped,
            "consensus": generation.consensus,
        })

        # Confidence
        confidence = await self._confidence(generation, context, result)
        result.confidence = confidence
        self._emit("confidence", rid, {"score": confidence.score, "method": confidence.method})

        # Uncertainty
        uncertainty = await self._uncertainty(query, context, result)
        result.uncertainty = uncertainty
        if uncertainty is not None:
            self._emit("uncertainty", rid, {
                "uncertainty_type": uncertainty.uncertainty_type,
                "suggested_action": uncertainty.suggested_action,
            })

        # Calibration
        if self.config.has_stage(PipelineStage.CALIBRATION):
            routed = self.gate.route(result.candidate, confidence, uncertainty=uncertainty, run_id=rid)
            if not routed.ok:
                return self._fail(result, routed.error, t0)
            result.routing = routed.value
            result.candidate = routed.value.candidate
            result.status = _ROUTE_STATUS[routed.value.action]

        # Selective; skipped once the gate has already withheld the answer
        if self.config.has_stage(PipelineStage.SELECTIVE) and result.status in (
            PipelineStatus.ANSWERED,
            PipelineStatus.HEDGED,
        ):
            decided = self.selective.answer_or_abstain(result.candidate, confidence)
            if not decided.ok:
                return self._fail(result, decided.error, t0)
            result.decision = decided.value
            if decided.value.abstained:
                result.candidate = decided.value.candidate
                result.status = PipelineStatus.ABSTAINED

        self._emit("decision", rid, {
            "status": result.status,
            "action": result.routing.action if result.routing is not None else None,
            "decision": result.decision.decision if result.decision is not None else None,
        })

        result.timings["total_s"] = time.time() - t0
        result.budgeter_state = self.budgeter_state
        self._emit("end", rid, {"status": result.status, "total_s": round(result.timings["total_s"], 4)})
        log.info("pipeline %s finished: status=%s", rid, result.status.value)
        return result
