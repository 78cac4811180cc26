# src/answerguard/budget/budgeter.py
"""Compute budgeter.

State is an immutable ``BudgeterState`` value. Every operation returns a
new state; nothing is mutated in place, so a failed allocation can simply be
discarded. Callers sharing one state across concurrent tasks must serialize
``allocate`` / ``track_usage`` themselves.
"""
from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from answerguard.core.budget import ComputeBudget
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import DifficultyLevel
from answerguard.core.validation import construct, is_number
from answerguard.errors import ErrorCode, Result, invalid

log = logging.getLogger(__name__)

Target = Union[DifficultyEstimate, DifficultyLevel, str]


class BudgetCheck(str, Enum):
    WITHIN_LIMIT = "within_limit"
    WOULD_EXCEED_LIMIT = "would_exceed_limit"


@dataclass(frozen=True)
class BudgeterState:
    easy_budget: ComputeBudget = field(default_factory=ComputeBudget.easy)
    medium_budget: ComputeBudget = field(default_factory=ComputeBudget.medium)
    hard_budget: ComputeBudget = field(default_factory=ComputeBudget.hard)
    global_limit: Optional[float] = None
    used_budget: float = 0.0
    allocation_count: int = 0
    custom_allocations: Mapping[str, ComputeBudget] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("easy_budget", "medium_budget", "hard_budget"):
            if not isinstance(getattr(self, name), ComputeBudget):
                raise invalid(f"invalid_{name}", f"{name} must be a ComputeBudget")
        if self.global_limit is not None and not (is_number(self.global_limit) and self.global_limit > 0):
            raise invalid("invalid_global_limit", "global_limit must be a number > 0")
        if not is_number(self.used_budget) or self.used_budget < 0:
            raise invalid("invalid_used_budget")
        if isinstance(self.allocation_count, bool) or not isinstance(self.allocation_count, int) or self.allocation_count < 0:
            raise invalid("invalid_allocation_count")
        if not all(isinstance(k, str) and isinstance(v, ComputeBudget) for k, v in self.custom_allocations.items()):
            raise invalid("invalid_custom_allocations", "custom allocations map labels to ComputeBudget")
        reserved = sorted(set(self.custom_allocations) & {level.value for level in DifficultyLevel})
        if reserved:
            raise invalid("reserved_custom_label", f"level names are configured via *_budget, not custom labels: {reserved}")
        object.__setattr__(self, "custom_allocations", dict(self.custom_allocations))

    @classmethod
    def create(cls, **attrs: Any) -> Result["BudgeterState"]:
        return construct(cls, **attrs)


def _level_budget(state: BudgeterState, level: DifficultyLevel) -> ComputeBudget:
    if level == DifficultyLevel.EASY:
        return state.easy_budget
    if level == DifficultyLevel.MEDIUM:
        return state.medium_budget
    return state.hard_budget


def budget_for_level(state: BudgeterState, target: Target) -> Result[ComputeBudget]:
    """Resolve the configured budget for a level, estimate or custom label."""
    if isinstance(target, DifficultyEstimate):
        return Result.success(_level_budget(state, target.level))
    if isinstance(target, DifficultyLevel):
        return Result.success(_level_budget(state, target))
    if isinstance(target, str):
        if target in state.custom_allocations:
            return Result.success(state.custom_allocations[target])
        for level in DifficultyLevel:
            if target == level.value:
                return Result.success(_level_budget(state, level))
    return Result.failure(ErrorCode.INVALID_INPUT, "unknown_level", f"no budget for {target!r}")


def _has_budget(state: BudgeterState, cost: float) -> bool:
    return state.global_limit is None or state.used_budget + cost <= state.global_limit


def _charge(state: BudgeterState, budget: ComputeBudget) -> Result[Tuple[ComputeBudget, BudgeterState]]:
    if not _has_budget(state, budget.cost):
        log.info(
            "budget exhausted: used=%.2f cost=%.2f limit=%s",
            state.used_budget,
            budget.cost,
            state.global_limit,
        )
        return Result.failure(
            ErrorCode.BUDGET_EXHAUSTED,
            "budget_exhausted",
            used=state.used_budget,
            cost=budget.cost,
            limit=state.global_limit,
        )
    new_state = dataclasses.replace(
        state,
        used_budget=state.used_budget + budget.cost,
        allocation_count=state.allocation_count + 1,
    )
    return Result.success((budget, new_state))


def allocate(
    state: BudgeterState,
    target: Target,
    *,
    metadata: Optional[Dict[str, Any]] = None,
) -> Result[Tuple[ComputeBudget, BudgeterState]]:
    """Charge the budget for ``target`` against the global limit.

    ``metadata`` is merged into the returned budget's metadata.
    """
    resolved = budget_for_level(state, target)
    if not resolved.ok:
        return Result.from_failure(resolved.error)
    budget = resolved.value
    if metadata:
        budget = dataclasses.replace(budget, metadata={**budget.metadata, **metadata})
    return _charge(state, budget)


def allocate_for_easy(state: BudgeterState) -> Result[Tuple[ComputeBudget, BudgeterState]]:
    return allocate(state, DifficultyLevel.EASY)


def allocate_for_medium(state: BudgeterState) -> Result[Tuple[ComputeBudget, BudgeterState]]:
    return allocate(state, DifficultyLevel.MEDIUM)


def allocate_for_hard(state: BudgeterState) -> Result[Tuple[ComputeBudget, BudgeterState]]:
    return allocate(state, DifficultyLevel.HARD)


def custom_allocation(
    state: BudgeterState,
    num_candidates: int,
    **opts: Any,
) -> Result[Tuple[ComputeBudget, BudgeterState]]:
    """Allocate an ad-hoc budget; ``opts`` are ComputeBudget fields."""
    built = ComputeBudget.create(num_candidates=num_candidates, **opts)
    if not built.ok:
        return Result.from_failure(built.error)
    return _charge(state, built.value)


def track_usage(state: BudgeterState, cost: Any) -> Result[BudgeterState]:
    """Record spend that happened outside ``allocate``. The limit is not enforced here."""
    if not is_number(cost) or cost < 0:
        return Result.failure(ErrorCode.INVALID_INPUT, "invalid_cost", "cost must be a non-negative number")
    return Result.success(dataclasses.replace(state, used_budget=state.used_budget + cost))


def check_budget(state: BudgeterState, cost: Any) -> Result[BudgetCheck]:
    if not is_number(cost) or cost < 0:
        return Result.failure(ErrorCode.INVALID_INPUT, "invalid_cost", "cost must be a non-negative number")
    if _has_budget(state, cost):
        return Result.success(BudgetCheck.WITHIN_LIMIT)
    return Result.success(BudgetCheck.WOULD_EXCEED_LIMIT)


def remaining_budget(state: BudgeterState) -> float:
    """Remaining spend, ``math.inf`` when no global limit is set."""
    if state.global_limit is None:
        return math.inf
    return max(0.0, state.global_limit - state.used_budget)


def budget_exhausted(state: BudgeterState) -> bool:
    if state.global_limit is None:
        return False
    return state.used_budget >= state.global_limit


def reset_budget(state: BudgeterState) -> BudgeterState:
    return dataclasses.replace(state, used_budget=0.0, allocation_count=0)


def get_usage_stats(state: BudgeterState) -> Dict[str, Any]:
    count = state.allocation_count
    return {
        "used_budget": state.used_budget,
        "allocation_count": count,
        "remaining_budget": remaining_budget(state),
        "average_cost": state.used_budget / count if count else 0.0,
    }
