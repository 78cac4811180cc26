# src/answerguard/core/budget.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from answerguard.core.levels import DifficultyLevel
from answerguard.core.validation import compact, construct, is_number, optional_unit, parse_enum
from answerguard.errors import ErrorCode, Result, invalid

DEFAULT_SEARCH_ITERATIONS = 50
DEFAULT_VERIFIER_THRESHOLD = 0.5

CANDIDATE_COST = 1.0
VERIFIER_COST = 0.5
SEARCH_ITERATION_COST = 0.01
REFINEMENT_COST = 1.0


def _is_count(value: Any, minimum: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= minimum


def compute_cost(
    num_candidates: int,
    use_verifier: bool,
    use_search: bool,
    search_iterations: Optional[int],
    max_refinements: int,
) -> float:
    cost = num_candidates * CANDIDATE_COST
    if use_verifier:
        cost += num_candidates * VERIFIER_COST
    if use_search:
        cost += (search_iterations or 0) * SEARCH_ITERATION_COST
    cost += max_refinements * REFINEMENT_COST
    return cost


@dataclass(frozen=True)
class ComputeBudget:
    """Resources allotted to one query. ``cost`` is derived, never supplied."""

    num_candidates: int
    use_verifier: bool = False
    use_search: bool = False
    max_refinements: int = 0
    search_iterations: Optional[int] = None
    verifier_threshold: Optional[float] = DEFAULT_VERIFIER_THRESHOLD
    metadata: Dict[str, Any] = field(default_factory=dict)
    cost: float = field(init=False)

    def __post_init__(self) -> None:
        if not _is_count(self.num_candidates, 1):
            raise invalid("invalid_num_candidates", "num_candidates must be an integer > 0")
        if not isinstance(self.use_verifier, bool) or not isinstance(self.use_search, bool):
            raise invalid("invalid_flag", "use_verifier and use_search must be booleans")
        if not _is_count(self.max_refinements, 0):
            raise invalid("invalid_max_refinements", "max_refinements must be an integer >= 0")
        if self.search_iterations is not None and not _is_count(self.search_iterations, 1):
            raise invalid("invalid_search_iterations", "search_iterations must be an integer > 0")
        if not optional_unit(self.verifier_threshold):
            raise invalid("invalid_verifier_threshold", "verifier_threshold must be in [0, 1]")
        if not isinstance(self.metadata, dict):
            raise invalid("invalid_metadata")

        if self.use_search and self.search_iterations is None:
            object.__setattr__(self, "search_iterations", DEFAULT_SEARCH_ITERATIONS)
        object.__setattr__(
            self,
            "cost",
            compute_cost(
                self.num_candidates,
                self.use_verifier,
                self.use_search,
                self.search_iterations,
                self.max_refinements,
            ),
        )

    @classmethod
    def create(cls, **attrs: Any) -> Result["ComputeBudget"]:
        return construct(cls, **attrs)

    # -----------------------------
    # Presets
    # -----------------------------
    @staticmethod
    def easy() -> "ComputeBudget":
        return ComputeBudget(num_candidates=3, metadata={"level": "easy"})

    @staticmethod
    def medium() -> "ComputeBudget":
        return ComputeBudget(
            num_candidates=5,
            use_verifier=True,
            max_refinements=1,
            metadata={"level": "medium"},
        )

    @staticmethod
    def hard() -> "ComputeBudget":
        return ComputeBudget(
            num_candidates=10,
            use_verifier=True,
            use_search=True,
            search_iterations=DEFAULT_SEARCH_ITERATIONS,
            max_refinements=2,
            metadata={"level": "hard"},
        )

    @staticmethod
    def for_level(level: Any) -> Result["ComputeBudget"]:
        parsed = parse_enum(DifficultyLevel, level, "level")
        if not parsed.ok:
            return Result.from_failure(parsed.error)
        presets = {
            DifficultyLevel.EASY: ComputeBudget.easy,
            DifficultyLevel.MEDIUM: ComputeBudget.medium,
            DifficultyLevel.HARD: ComputeBudget.hard,
        }
        return Result.success(presets[parsed.value]())

    def to_dict(self) -> Dict[str, Any]:
        return compact({
            "num_candidates": self.num_candidates,
            "use_verifier": self.use_verifier,
            "use_search": self.use_search,
            "max_refinements": self.max_refinements,
            "search_iterations": self.search_iterations,
            "verifier_threshold": self.verifier_threshold,
            "cost": self.cost,
            "metadata": dict(self.metadata),
        })

    @classmethod
    def from_dict(cls, data: Any) -> Result["ComputeBudget"]:
        if not isinstance(data, dict):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_budget", "expected a map")
        if "num_candidates" not in data:
            return Result.failure(ErrorCode.INVALID_INPUT, "missing_num_candidates")
        attrs = {
            k: v
            for k, v in data.items()
            if k in cls.__dataclass_fields__ and k != "cost" and v is not None
        }
        if "verifier_threshold" not in data:
            attrs["verifier_threshold"] = None
        built = construct(cls, **attrs)
        if built.ok and "cost" in data and not (is_number(data["cost"]) and data["cost"] == built.value.cost):
            return Result.failure(
                ErrorCode.INVALID_INPUT,
                "cost_mismatch",
                "cost is derived from the budget fields",
                expected=built.value.cost,
            )
        return built
