# src/answerguard/estimators/heuristic_difficulty.py
"""Feature-weighted difficulty estimation without any model call.

Four features, each scored in [0, 1]:
  - length:        character count buckets
  - complexity:    average word length and special-character count
  - domain:        keyword hits against math/code/reasoning/creative lists
  - question_type: simple vs. reasoning interrogatives

The weighted sum is the difficulty score; the spread of the four feature
scores sets the confidence (agreeing features mean a confident estimate).
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field, field_validator, model_validator

from answerguard.config import Settings
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import DifficultyLevel
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.thresholds import score_to_level
from answerguard.core.validation import clamp01
from answerguard.errors import ErrorCode, Result
from answerguard.estimators.difficulty import MAX_QUERY_LENGTH, DifficultyEstimator

log = logging.getLogger(__name__)

MATH_INDICATORS = [
    "~", "sum", "integral", "derivative", "equation", "formula",
    "+", "-", "*", "/", "^", "=", "<", ">", "≤", "≥",
    "calculate", "compute", "solve", "probability", "statistic",
    "algebra", "geometry", "trigonometry", "calculus",
]

CODE_INDICATORS = [
    "function", "class", "def ", "import", "return", "if ", "else",
    "for ", "while", "const", "let", "var", "print", "array",
    "()", "{}", "[]", "=>", "==", "!=", "&&", "||",
    "algorithm", "data structure", "recursion", "iteration",
    "compile", "execute", "debug",
]

REASONING_INDICATORS = [
    "explain", "why", "how", "analyze", "compare", "contrast",
    "evaluate", "assess", "justify", "reasoning", "logic",
    "relationship", "difference", "similarity", "cause",
]

CREATIVE_INDICATORS = [
    "write", "create", "generate", "story", "poem", "creative",
    "imagine", "invent", "design", "compose", "narrative",
]

SIMPLE_QUESTION_WORDS = [
    "what", "when", "where", "who", "which", "is", "are",
    "do", "does", "list", "name", "identify", "define", "state",
]

_BUILTIN_DOMAINS = {
    "math": MATH_INDICATORS,
    "code": CODE_INDICATORS,
    "reasoning": REASONING_INDICATORS,
    "creative": CREATIVE_INDICATORS,
}

_SPECIAL_CHARS = re.compile(r"[^\w\s]")
_NUMBERS = re.compile(r"\b\d+\b")


class HeuristicDifficultyConfig(ComponentConfig):
    length_weight: float = Field(0.25, ge=0.0, le=1.0)
    complexity_weight: float = Field(0.30, ge=0.0, le=1.0)
    domain_weight: float = Field(0.25, ge=0.0, le=1.0)
    question_weight: float = Field(0.20, ge=0.0, le=1.0)
    custom_indicators: Dict[str, List[str]] = Field(default_factory=dict)
    timeout_s: float = Field(default_factory=lambda: Settings.ESTIMATOR_TIMEOUT_S, ge=1.0, le=30.0)

    @field_validator("custom_indicators")
    @classmethod
    def _lowercase_indicators(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return {domain: [str(i).lower() for i in items if str(i)] for domain, items in v.items()}

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "HeuristicDifficultyConfig":
        total = self.length_weight + self.complexity_weight + self.domain_weight + self.question_weight
        if abs(total - 1.0) > 0.01:
            raise ValueError("weights_dont_sum_to_1")
        return self


def _count_indicators(text: str, indicators: List[str]) -> int:
    return sum(1 for indicator in indicators if indicator in text)


def _bucket(count: int) -> float:
    if count >= 3:
        return 1.0
    if count >= 2:
        return 0.7
    if count >= 1:
        return 0.4
    return 0.0


def length_feature(query: str) -> Dict[str, Any]:
    chars = len(query)
    if chars < 50:
        score = 0.0
    elif chars < 100:
        score = 0.2
    elif chars < 200:
        score = 0.5
    elif chars < 300:
        score = 0.7
    else:
        score = 1.0
    return {"score": score, "char_count": chars, "word_count": len(query.split())}


def _complexity_score(avg_word_len: float, special: int) -> float:
    if avg_word_len < 4 and special < 2:
        return 0.0
    if avg_word_len < 5 and special < 5:
        return 0.3
    if avg_word_len < 6 and special < 10:
        return 0.5
    if avg_word_len < 7 or special < 15:
        return 0.7
    return 1.0


def complexity_feature(query: str) -> Dict[str, Any]:
    words = query.split()
    avg_word_len = sum(len(w) for w in words) / len(words) if words else 0.0
    special = len(_SPECIAL_CHARS.findall(query))
    numbers = len(_NUMBERS.findall(query))
    return {
        "score": _complexity_score(avg_word_len, special),
        "avg_word_length": round(avg_word_len, 2),
        "special_char_count": special,
        "number_count": numbers,
        "digit_density": round(sum(ch.isdigit() for ch in query) / len(query), 4) if query else 0.0,
    }


def domain_feature(query: str, custom_indicators: Dict[str, List[str]]) -> Dict[str, Any]:
    lowered = query.lower()
    builtin = {name: _count_indicators(lowered, items) for name, items in _BUILTIN_DOMAINS.items()}
    custom = {name: _count_indicators(lowered, items) for name, items in custom_indicators.items()}
    best = max(list(builtin.values()) + list(custom.values()), default=0)
    return {
        "score": _bucket(best),
        "domains": [name for name, hits in builtin.items() if hits > 0],
        "custom": custom,
    }


def question_type_feature(query: str) -> Dict[str, Any]:
    lowered = query.lower()
    simple = _count_indicators(lowered, SIMPLE_QUESTION_WORDS)
    reasoning = _count_indicators(lowered, REASONING_INDICATORS)
    has_question_mark = query.endswith("?")
    if reasoning >= 2:
        score = 1.0
    elif reasoning >= 1:
        score = 0.6
    elif simple >= 2:
        score = 0.2
    elif has_question_mark:
        score = 0.3
    else:
        score = 0.5
    return {
        "score": score,
        "has_question_mark": has_question_mark,
        "simple_indicator_count": simple,
        "reasoning_indicator_count": reasoning,
    }


def extract_features(query: str, custom_indicators: Optional[Dict[str, List[str]]] = None) -> Dict[str, Dict[str, Any]]:
    return {
        "length": length_feature(query),
        "complexity": complexity_feature(query),
        "domain": domain_feature(query, custom_indicators or {}),
        "question_type": question_type_feature(query),
    }


def confidence_from_variance(scores: List[float]) -> Tuple[float, float]:
    mean = sum(scores) / len(scores)
    variance = sum((s - mean) ** 2 for s in scores) / len(scores)
    if variance < 0.05:
        return 0.95, variance
    if variance < 0.1:
        return 0.85, variance
    if variance < 0.2:
        return 0.7, variance
    return 0.6, variance


def _describe(features: Dict[str, Dict[str, Any]], level: DifficultyLevel) -> str:
    domains = features["domain"]["domains"]
    domain_part = f"{'/'.join(domains)} domain" if domains else "general domain"

    length_score = features["length"]["score"]
    if length_score < 0.3:
        length_part = "short query"
    elif length_score < 0.7:
        length_part = "medium-length query"
    else:
        length_part = "long query"

    question_score = features["question_type"]["score"]
    if question_score < 0.3:
        question_part = "simple question"
    elif question_score < 0.7:
        question_part = "moderate question"
    else:
        question_part = "complex question"

    base = f"{domain_part}, {length_part}, {question_part}"
    if level == DifficultyLevel.EASY:
        return f"Simple: {base}"
    if level == DifficultyLevel.MEDIUM:
        return f"Moderate difficulty: {base}"
    return f"Complex: {base} with multiple factors"


class HeuristicDifficulty(DifficultyEstimator):
    name = "heuristic"

    def __init__(self, config: Optional[HeuristicDifficultyConfig] = None):
        self.config = config or HeuristicDifficultyConfig()

    def _score(self, features: Dict[str, Dict[str, Any]]) -> float:
        cfg = self.config
        total = (
            features["length"]["score"] * cfg.length_weight
            + features["complexity"]["score"] * cfg.complexity_weight
            + features["domain"]["score"] * cfg.domain_weight
            + features["question_type"]["score"] * cfg.question_weight
        )
        return clamp01(total)

    async def estimate(self, query: str, context: Optional[Dict[str, Any]] = None) -> Result[DifficultyEstimate]:
        if not isinstance(query, str) or not query.strip():
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_query", "query must be non-empty text")
        if len(query) > MAX_QUERY_LENGTH:
            return Result.failure(
                ErrorCode.INVALID_INPUT,
                "query_too_long",
                f"query exceeds {MAX_QUERY_LENGTH} characters",
                length=len(query),
            )

        try:
            features = await asyncio.wait_for(
                asyncio.to_thread(extract_features, query, self.config.custom_indicators),
                timeout=self.config.timeout_s,
            )
        except asyncio.TimeoutError:
            log.warning("heuristic feature extraction timed out after %ss", self.config.timeout_s)
            return Result.failure(ErrorCode.TIMEOUT, "estimation_timeout", timeout_s=self.config.timeout_s)
        except (re.error, ValueError, TypeError) as e:
            return Result.failure(ErrorCode.ESTIMATION_FAILED, "feature_extraction_failed", str(e))

        score = self._score(features)
        level = score_to_level(score)
        confidence, variance = confidence_from_variance([f["score"] for f in features.values()])
        return Result.success(DifficultyEstimate(
            level=level,
            score=score,
            confidence=confidence,
            reasoning=_describe(features, level),
            features=features,
            metadata={"estimator": self.name, "feature_variance": round(variance, 4)},
        ))
