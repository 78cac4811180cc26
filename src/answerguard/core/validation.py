# src/answerguard/core/validation.py
"""Shared validation helpers: numeric checks, enum whitelists, capabilities."""
from __future__ import annotations

import math
from enum import Enum
from typing import Any, Optional, Type, TypeVar

from answerguard.errors import AccuracyError, ErrorCode, Result

E = TypeVar("E", bound=Enum)


def is_number(value: Any) -> bool:
    """True for finite ints/floats; bools are rejected."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def in_unit_interval(value: Any) -> bool:
    return is_number(value) and 0.0 <= value <= 1.0


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def parse_enum(enum_cls: Type[E], value: Any, field_name: str) -> Result[E]:
    """Map a member or its string value onto ``enum_cls``.

    Only the declared members are accepted; unknown strings are reported as
    ``invalid_<field_name>`` and never coerced.
    """
    if isinstance(value, enum_cls):
        return Result.success(value)
    whitelist = {member.value: member for member in enum_cls}
    if isinstance(value, str) and value in whitelist:
        return Result.success(whitelist[value])
    return Result.failure(
        ErrorCode.INVALID_INPUT,
        f"invalid_{field_name}",
        f"{value!r} is not one of {sorted(whitelist)}",
    )


def supports(obj: Any, *methods: str) -> bool:
    """Capability check used wherever a pluggable strategy is accepted."""
    if obj is None:
        return False
    return all(callable(getattr(obj, name, None)) for name in methods)


def optional_unit(value: Optional[Any]) -> bool:
    return value is None or in_unit_interval(value)


def construct(cls: Any, /, **attrs: Any) -> Result[Any]:
    """Build a self-validating value type, returning a Result instead of raising."""
    try:
        return Result.success(cls(**attrs))
    except AccuracyError as e:
        return Result.from_failure(e.failure)
    except TypeError as e:
        return Result.failure(ErrorCode.INVALID_INPUT, "unexpected_field", str(e))


def compact(data: dict) -> dict:
    """Drop None values and empty maps, the shared ``to_dict`` convention."""
    return {k: v for k, v in data.items() if v is not None and not (isinstance(v, dict) and not v)}
