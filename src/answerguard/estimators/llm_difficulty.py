# src/answerguard/estimators/llm_difficulty.py
"""Difficulty classification by a language model.

The query is sanitized (truncated, newlines collapsed) before it is placed
in the prompt. The reply is expected to contain a small JSON object; when
the JSON is unusable the ``level`` token is recovered with a regex and the
estimate is marked lower-confidence.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import Field, field_validator

from answerguard.adapters.base import AdapterError, ModelAdapter, ModelSpec
from answerguard.adapters.factory import build_adapter
from answerguard.config import Settings
from answerguard.core.difficulty import DifficultyEstimate
from answerguard.core.levels import DifficultyLevel
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.thresholds import level_to_score
from answerguard.core.validation import clamp01, is_number, parse_enum
from answerguard.errors import ErrorCode, Result
from answerguard.estimators.difficulty import DifficultyEstimator

log = logging.getLogger(__name__)

MAX_PROMPT_QUERY_LENGTH = 10_000
MAX_RESPONSE_BYTES = 50_000

DEFAULT_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.7

DEFAULT_PROMPT = """\
Rate the difficulty of answering this query: {{query}}

Levels:
- easy: simple factual questions, direct lookup, basic operations
- medium: some reasoning, several steps, synthesis of a few facts
- hard: complex reasoning, creative work, deep analysis

Return:
1. level: "easy", "medium" or "hard"
2. score: 0.0-1.0 (easy < 0.35, medium 0.35-0.65, hard > 0.65)
3. confidence: 0.0-1.0
4. reasoning: one short sentence

Reply with JSON only, exactly in this shape:
{"level": "easy|medium|hard", "score": 0.0, "confidence": 0.0, "reasoning": "..."}
"""

_JSON_OBJECT = re.compile(r'\{[^{}]*"level"[^{}]*\}', re.DOTALL)
_LEVEL_TOKEN = re.compile(r'"level"\s*:\s*"(easy|medium|hard)"', re.IGNORECASE)
_NEWLINES = re.compile(r"[\r\n]+")


class LLMDifficultyConfig(ComponentConfig):
    model: ModelSpec = Field(default_factory=lambda: ModelSpec.parse("anthropic:claude-haiku-4-5"))
    prompt_template: str = DEFAULT_PROMPT
    timeout_s: float = Field(default_factory=lambda: Settings.ESTIMATOR_TIMEOUT_S, gt=0.0, le=30.0)
    temperature: float = Field(0.0, ge=0.0, le=2.0)

    @field_validator("prompt_template")
    @classmethod
    def _has_query_slot(cls, v: str) -> str:
        if "{{query}}" not in v:
            raise ValueError("missing_query_placeholder")
        return v


def sanitize_query(query: str) -> str:
    return _NEWLINES.sub(" ", query[:MAX_PROMPT_QUERY_LENGTH]).strip()


def _invalid_response(reason: str, message: str = "") -> Result[DifficultyEstimate]:
    return Result.failure(ErrorCode.INVALID_MODEL_RESPONSE, reason, message)


def _estimate_from_fields(
    data: Dict[str, Any],
    *,
    default_confidence: float,
    parse_mode: str,
    model_ref: Optional[str],
) -> Result[DifficultyEstimate]:
    level_res = parse_enum(DifficultyLevel, str(data.get("level", "")).strip().lower(), "level")
    if not level_res.ok:
        return _invalid_response("invalid_level", f"model returned level {data.get('level')!r}")
    level = level_res.value

    score = data.get("score")
    if score is None:
        score = level_to_score(level)
    elif not is_number(score):
        return _invalid_response("invalid_score", "score must be numeric")

    confidence = data.get("confidence")
    if confidence is None:
        confidence = default_confidence
    elif not is_number(confidence):
        return _invalid_response("invalid_confidence", "confidence must be numeric")

    reasoning = data.get("reasoning")
    metadata: Dict[str, Any] = {"estimator": "llm", "parse_mode": parse_mode}
    if model_ref:
        metadata["model"] = model_ref
    return Result.success(DifficultyEstimate(
        level=level,
        score=clamp01(score),
        confidence=clamp01(confidence),
        reasoning=str(reasoning) if reasoning is not None else None,
        metadata=metadata,
    ))


def parse_response(text: str, *, model_ref: Optional[str] = None) -> Result[DifficultyEstimate]:
    if len(text.encode("utf-8")) > MAX_RESPONSE_BYTES:
        return Result.failure(
            ErrorCode.INVALID_INPUT,
            "response_too_large",
            f"model response exceeds {MAX_RESPONSE_BYTES} bytes",
        )

    match = _JSON_OBJECT.search(text)
    if match:
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return _estimate_from_fields(
                data, default_confidence=DEFAULT_CONFIDENCE, parse_mode="json", model_ref=model_ref
            )

    token = _LEVEL_TOKEN.search(text)
    if token:
        return _estimate_from_fields(
            {"level": token.group(1).lower()},
            default_confidence=FALLBACK_CONFIDENCE,
            parse_mode="regex",
            model_ref=model_ref,
        )
    return _invalid_response("unparseable_response", "no difficulty level found in model output")


class LLMDifficulty(DifficultyEstimator):
    name = "llm"

    def __init__(self, config: Optional[LLMDifficultyConfig] = None, *, adapter: Optional[ModelAdapter] = None):
        self.config = config or LLMDifficultyConfig()
        self._adapter = adapter

    def _get_adapter(self) -> ModelAdapter:
        if self._adapter is None:
            self._adapter = build_adapter(self.config.model)
        return self._adapter

    def build_prompt(self, query: str) -> str:
        return self.config.prompt_template.replace("{{query}}", sanitize_query(query))

    async def estimate(self, query: str, context: Optional[Dict[str, Any]] = None) -> Result[DifficultyEstimate]:
        if not isinstance(query, str) or not query.strip():
            return Result.failure(ErrorCode.INVALID_INPUT, "invalid_query", "query must be non-empty text")

        try:
            adapter = self._get_adapter()
        except (AdapterError, ValueError) as e:
            return Result.failure(ErrorCode.MODEL_CALL_FAILED, "adapter_unavailable", str(e))

        reply = await adapter.complete(
            self.build_prompt(query),
            temperature=self.config.temperature,
            timeout_s=self.config.timeout_s,
        )
        if not reply.ok:
            log.warning("difficulty classification call failed: %s", reply.error.reason)
            return Result.from_failure(reply.error)

        return parse_response(reply.value, model_ref=self.config.model.ref)
