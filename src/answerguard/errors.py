# src/answerguard/errors.py
"""Typed failure taxonomy and the Result container.

Runtime failures travel as ``Result.failure(...)`` values. ``AccuracyError``
is raised only by construct-or-die entry points (plain constructors and
``Result.unwrap``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    INVALID_INPUT = "invalid_input"
    INVALID_CONFIG = "invalid_config"
    BUDGET_EXHAUSTED = "budget_exhausted"
    ALL_GENERATORS_FAILED = "all_generators_failed"
    GENERATOR_CRASHED = "generator_crashed"
    ALL_ESTIMATORS_FAILED = "all_estimators_failed"
    ESTIMATION_FAILED = "estimation_failed"
    NO_LOGPROBS = "no_logprobs"
    TIMEOUT = "timeout"
    MODEL_CALL_FAILED = "model_call_failed"
    INVALID_MODEL_RESPONSE = "invalid_model_response"


@dataclass(frozen=True)
class Failure:
    code: ErrorCode
    reason: str
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code.value, "reason": self.reason}
        if self.message:
            out["message"] = self.message
        if self.details:
            out["details"] = dict(self.details)
        return out

    def __str__(self) -> str:
        text = f"{self.code.value}:{self.reason}"
        return f"{text} ({self.message})" if self.message else text


class AccuracyError(Exception):
    """Raised by construct-or-die helpers; carries the underlying Failure."""

    def __init__(self, failure: Failure):
        super().__init__(str(failure))
        self.failure = failure

    @property
    def code(self) -> ErrorCode:
        return self.failure.code

    @property
    def reason(self) -> str:
        return self.failure.reason


def invalid(reason: str, message: str = "", **details: Any) -> AccuracyError:
    return AccuracyError(Failure(ErrorCode.INVALID_INPUT, reason, message, details))


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise AccuracyError(self.error)
        return self.value  # type: ignore[return-value]

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        code: ErrorCode,
        reason: str,
        message: str = "",
        **details: Any,
    ) -> "Result[T]":
        return cls(error=Failure(code, reason, message, details))

    @classmethod
    def from_failure(cls, failure: Failure) -> "Result[T]":
        return cls(error=failure)
