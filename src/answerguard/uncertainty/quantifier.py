# src/answerguard/uncertainty/quantifier.py
"""Aleatoric vs. epistemic uncertainty from pattern matching.

Aleatoric markers flag subjective or ambiguous questions ("what's the best
..."), epistemic markers flag questions about things that cannot be known
("who will win ..."). Each category's score is its share of matching
patterns times a category multiplier, capped at 1.0. The multipliers are
empirical defaults and can be tuned per deployment.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Pattern, Tuple, Union

from pydantic import Field, field_validator

from answerguard.config import Settings
from answerguard.core.candidate import Candidate
from answerguard.core.levels import SuggestedAction, UncertaintyType
from answerguard.core.results import UncertaintyResult
from answerguard.core.settings_model import ComponentConfig
from answerguard.errors import ErrorCode, Result

log = logging.getLogger(__name__)

MAX_PATTERNS = 50
MAX_PATTERN_LENGTH = 500
MAX_TEXT_LENGTH = 50_000

DEFAULT_ALEATORIC_PATTERNS = [
    r"\b(best|better|worst|favorite|prefer|greatest)\b",
    r"\b(maybe|possibly|perhaps|depends|could be|might be)\b",
    r"\b(think|believe|feel|opinion|view|perspective)\b",
    r"\b(how should|what way|in your opinion|what do you think)\b",
    r"\b(like|love|enjoy|prefer|would rather)\b",
    r"\b(beautiful|ugly|good|bad|right|wrong|fair|unfair)\b",
    r"\b(more|less|rather|than|compared to)\b",
]

DEFAULT_EPISTEMIC_PATTERNS = [
    r"\b(will happen|predict|forecast|future of|going to be)\b",
    r"\bwho will|what will|when will|where will\b",
    r"\b(what is the population of|who is the CEO of)\b",
    r"\b(will win|will happen|predict the)\b",
]

_REASONS = {
    UncertaintyType.NONE: "Query appears factual and straightforward",
    UncertaintyType.ALEATORIC: "Query contains subjective or ambiguous elements requiring interpretation",
    UncertaintyType.EPISTEMIC: "Query requires knowledge that may not be available",
}
_MIXED_REASON = "Query has elements of inherent uncertainty"


def _check_patterns(patterns: List[str]) -> List[str]:
    if len(patterns) > MAX_PATTERNS:
        raise ValueError("too_many_patterns")
    for p in patterns:
        if len(p) > MAX_PATTERN_LENGTH:
            raise ValueError("pattern_too_long")
        try:
            re.compile(p, re.IGNORECASE)
        except re.error:
            raise ValueError("invalid_patterns") from None
    return patterns


class UncertaintyConfig(ComponentConfig):
    aleatoric_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_ALEATORIC_PATTERNS))
    epistemic_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_EPISTEMIC_PATTERNS))
    # {domain: {"aleatoric": [...], "epistemic": [...]}}, selected with context["domain"]
    domain_keywords: Dict[str, Dict[str, List[str]]] = Field(default_factory=dict)
    min_matches: int = Field(1, ge=1)
    aleatoric_multiplier: float = Field(3.0, gt=0.0, le=100.0)
    epistemic_multiplier: float = Field(4.0, gt=0.0, le=100.0)
    none_threshold: float = Field(0.3, ge=0.0, le=1.0)
    dominance_ratio: float = Field(1.5, ge=1.0, le=10.0)
    high_epistemic_confidence: float = Field(0.5, ge=0.0, le=1.0)
    timeout_s: float = Field(default_factory=lambda: Settings.ESTIMATOR_TIMEOUT_S, gt=0.0, le=30.0)

    @field_validator("aleatoric_patterns", "epistemic_patterns")
    @classmethod
    def _valid_patterns(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("empty_patterns")
        return _check_patterns(v)

    @field_validator("domain_keywords")
    @classmethod
    def _valid_keywords(cls, v: Dict[str, Dict[str, List[str]]]) -> Dict[str, Dict[str, List[str]]]:
        for entry in v.values():
            if set(entry) - {"aleatoric", "epistemic"}:
                raise ValueError("invalid_keyword_category")
            for keywords in entry.values():
                if len(keywords) > MAX_PATTERNS:
                    raise ValueError("too_many_patterns")
                if any(len(k) > MAX_PATTERN_LENGTH or not k.strip() for k in keywords):
                    raise ValueError("invalid_keyword")
        return v


def recommend_action(
    uncertainty_type: UncertaintyType,
    confidence: float,
    *,
    high_epistemic_confidence: float = 0.5,
) -> SuggestedAction:
    if uncertainty_type == UncertaintyType.ALEATORIC:
        return SuggestedAction.PROVIDE_OPTIONS
    if uncertainty_type == UncertaintyType.EPISTEMIC:
        if confidence >= high_epistemic_confidence:
            return SuggestedAction.ABSTAIN
        return SuggestedAction.SUGGEST_SOURCE
    return SuggestedAction.ANSWER_DIRECTLY


def _text_of(query_or_candidate: Union[str, Candidate]) -> Optional[str]:
    if isinstance(query_or_candidate, Candidate):
        if query_or_candidate.content:
            return query_or_candidate.content
        return query_or_candidate.reasoning or ""
    if isinstance(query_or_candidate, str):
        return query_or_candidate
    return None


class UncertaintyQuantifier:
    def __init__(self, config: Optional[UncertaintyConfig] = None):
        self.config = config or UncertaintyConfig()
        self._aleatoric = [re.compile(p, re.IGNORECASE) for p in self.config.aleatoric_patterns]
        self._epistemic = [re.compile(p, re.IGNORECASE) for p in self.config.epistemic_patterns]
        # (domain, category) -> one alternation over the escaped keywords
        self._domain: Dict[Tuple[str, str], Pattern[str]] = {}
        for domain, entry in self.config.domain_keywords.items():
            for category, keywords in entry.items():
                if keywords:
                    alternation = "|".join(re.escape(k) for k in keywords)
                    self._domain[(domain, category)] = re.compile(r"\b(" + alternation + r")\b", re.IGNORECASE)

    @classmethod
    def create(cls, **attrs: Any) -> Result["UncertaintyQuantifier"]:
        cfg = UncertaintyConfig.create(**attrs)
        if not cfg.ok:
            return Result.from_failure(cfg.error)
        return Result.success(cls(cfg.value))

    @staticmethod
    def _score(text: str, patterns: List[Pattern[str]], multiplier: float) -> Tuple[float, int]:
        matches = sum(1 for p in patterns if p.search(text))
        if not matches:
            return 0.0, 0
        return min(matches / len(patterns) * multiplier, 1.0), matches

    def _patterns(self, category: str, domain: Optional[str]) -> List[Pattern[str]]:
        base = self._aleatoric if category == "aleatoric" else self._epistemic
        extra = self._domain.get((domain, category)) if domain else None
        return base + [extra] if extra is not None else base

    def detect_aleatoric(self, text: str, domain: Optional[str] = None) -> float:
        return self._score(text, self._patterns("aleatoric", domain), self.config.aleatoric_multiplier)[0]

    def detect_epistemic(self, text: str, domain: Optional[str] = None) -> float:
        return self._score(text, self._patterns("epistemic", domain), self.config.epistemic_multiplier)[0]

    def classify_text(self, text: str, domain: Optional[str] = None) -> UncertaintyResult:
        """Synchronous classification; ``classify`` runs this off-thread under a timeout."""
        cfg = self.config
        aleatoric, a_matches = self._score(text, self._patterns("aleatoric", domain), cfg.aleatoric_multiplier)
        epistemic, e_matches = self._score(text, self._patterns("epistemic", domain), cfg.epistemic_multiplier)

        # a category below min_matches does not count
        a_eff = aleatoric if a_matches >= cfg.min_matches else 0.0
        e_eff = epistemic if e_matches >= cfg.min_matches else 0.0

        if a_eff < cfg.none_threshold and e_eff < cfg.none_threshold:
            kind, confidence, reasoning = UncertaintyType.NONE, 1.0 - max(a_eff, e_eff), _REASONS[UncertaintyType.NONE]
        elif a_eff > e_eff * cfg.dominance_ratio:
            kind, confidence, reasoning = UncertaintyType.ALEATORIC, a_eff, _REASONS[UncertaintyType.ALEATORIC]
        elif e_eff > a_eff * cfg.dominance_ratio:
            kind, confidence, reasoning = UncertaintyType.EPISTEMIC, e_eff, _REASONS[UncertaintyType.EPISTEMIC]
        else:
            kind, confidence, reasoning = UncertaintyType.ALEATORIC, max(a_eff, e_eff), _MIXED_REASON

        return UncertaintyResult(
            uncertainty_type=kind,
            confidence=confidence,
            reasoning=reasoning,
            suggested_action=recommend_action(
                kind, confidence, high_epistemic_confidence=cfg.high_epistemic_confidence
            ),
            metadata={
                "aleatoric_score": aleatoric,
                "epistemic_score": epistemic,
                "aleatoric_matches": a_matches,
                "epistemic_matches": e_matches,
            },
        )

    async def classify(
        self,
        query_or_candidate: Union[str, Candidate],
        context: Optional[Dict[str, Any]] = None,
    ) -> Result[UncertaintyResult]:
        context = context or {}
        text = _text_of(query_or_candidate)
        if text is None:
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_query", "expected text or a Candidate")
        if len(text) > MAX_TEXT_LENGTH:
            return Result.failure(
                ErrorCode.INVALID_INPUT,
                "query_too_long",
                f"text exceeds {MAX_TEXT_LENGTH} characters",
                length=len(text),
            )
        domain = context.get("domain")
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self.classify_text, text, domain),
                timeout=self.config.timeout_s,
            )
        except asyncio.TimeoutError:
            log.warning("uncertainty matching timed out after %ss", self.config.timeout_s)
            return Result.failure(ErrorCode.TIMEOUT, "classification_timeout", timeout_s=self.config.timeout_s)
        return Result.success(result)
