# src/answerguard/core/settings_model.py
from __future__ import annotations

from typing import Any, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from answerguard.errors import ErrorCode, Failure, Result

C = TypeVar("C", bound="ComponentConfig")


def failure_from_validation(e: ValidationError) -> Failure:
    """Turn the first pydantic error into an ``invalid_config`` failure.

    Validators raise ``ValueError("<reason_tag>")``; field constraint errors
    are reported as ``invalid_<field>``.
    """
    first = e.errors()[0] if e.errors() else {}
    ctx_error = (first.get("ctx") or {}).get("error")
    loc = first.get("loc") or ()
    if ctx_error is not None:
        reason = str(ctx_error)
    elif loc:
        reason = f"invalid_{loc[0]}"
    else:
        reason = "invalid_config"
    return Failure(
        ErrorCode.INVALID_CONFIG,
        reason,
        first.get("msg", str(e)),
        {"field": ".".join(str(part) for part in loc)} if loc else {},
    )


class ComponentConfig(BaseModel):
    """Base for component configuration.

    Plain construction raises ``ValidationError``; ``create`` returns a Result.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True, arbitrary_types_allowed=True)

    @classmethod
    def create(cls: Type[C], **attrs: Any) -> Result[C]:
        try:
            return Result.success(cls(**attrs))
        except ValidationError as e:
            return Result.from_failure(failure_from_validation(e))
