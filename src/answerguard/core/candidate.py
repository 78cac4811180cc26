# src/answerguard/core/candidate.py
from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from answerguard.core.validation import compact, construct, is_number
from answerguard.errors import ErrorCode, Result, invalid

# Reserved metadata key for per-token log-probabilities.
LOGPROBS_KEY = "logprobs"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Candidate:
    """One generated answer. Immutable; modified copies keep the same id."""

    content: str
    reasoning: Optional[str] = None
    score: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            raise invalid("invalid_content", "content must be text")
        if self.reasoning is not None and not isinstance(self.reasoning, str):
            raise invalid("invalid_reasoning", "reasoning must be text")
        if self.score is not None and not is_number(self.score):
            raise invalid("invalid_score", "score must be a finite number")
        if not isinstance(self.metadata, dict):
            raise invalid("invalid_metadata", "metadata must be a map")
        if not isinstance(self.id, str) or not self.id:
            raise invalid("invalid_id", "id must be a non-empty string")

    @classmethod
    def create(cls, **attrs: Any) -> Result["Candidate"]:
        return construct(cls, **attrs)

    @property
    def logprobs(self) -> Optional[List[Any]]:
        return self.metadata.get(LOGPROBS_KEY)

    def replace(self, **changes: Any) -> "Candidate":
        return dataclasses.replace(self, **changes)

    def with_metadata(self, **extra: Any) -> "Candidate":
        return dataclasses.replace(self, metadata={**self.metadata, **extra})

    def to_dict(self) -> Dict[str, Any]:
        return compact({
            "id": self.id,
            "content": self.content,
            "reasoning": self.reasoning,
            "score": self.score,
            "metadata": dict(self.metadata),
        })

    @classmethod
    def from_dict(cls, data: Any) -> Result["Candidate"]:
        if not isinstance(data, dict):
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_candidate", "expected a map")
        if "content" not in data:
            return Result.failure(ErrorCode.INVALID_INPUT, "missing_content")
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if known.get("metadata") is None:
            known.pop("metadata", None)
        if known.get("id") is None:
            known.pop("id", None)
        return construct(cls, **known)
