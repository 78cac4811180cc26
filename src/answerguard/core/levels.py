# src/answerguard/core/levels.py
from __future__ import annotations

from enum import Enum


class DifficultyLevel(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RoutingAction(str, Enum):
    DIRECT = "direct"
    WITH_VERIFICATION = "with_verification"
    WITH_CITATIONS = "with_citations"
    ABSTAIN = "abstain"
    ESCALATE = "escalate"


class Decision(str, Enum):
    ANSWER = "answer"
    ABSTAIN = "abstain"


class UncertaintyType(str, Enum):
    ALEATORIC = "aleatoric"
    EPISTEMIC = "epistemic"
    NONE = "none"


class SuggestedAction(str, Enum):
    PROVIDE_OPTIONS = "provide_options"
    ABSTAIN = "abstain"
    SUGGEST_SOURCE = "suggest_source"
    ANSWER_DIRECTLY = "answer_directly"
