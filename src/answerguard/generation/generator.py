# src/answerguard/generation/generator.py
"""Generator contract and two concrete generators.

``generate(query, n, context)`` returns one Result per requested sample, so
partial failure is visible to the caller. Implementations must be
cancellable: the controller's overall timeout cancels a pending call.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from answerguard.adapters.base import AdapterError, AdapterTimeout, ModelAdapter, map_provider_error
from answerguard.core.candidate import LOGPROBS_KEY, Candidate
from answerguard.errors import AccuracyError, ErrorCode, Failure, Result

log = logging.getLogger(__name__)

SampleFn = Callable[[str, Dict[str, Any]], Union[str, Candidate, Awaitable[Union[str, Candidate]]]]


class Generator:
    async def generate(self, query: str, n: int, context: Optional[Dict[str, Any]] = None) -> List[Result[Candidate]]:
        raise NotImplementedError


class FunctionGenerator(Generator):
    """Samples ``n`` times from a plain (sync or async) callable.

    The callable receives ``(query, context)`` and returns text or a
    Candidate. Sync callables run in a worker thread. A sample that raises
    becomes a failed entry, not a crash.
    """

    def __init__(self, fn: SampleFn):
        self._fn = fn

    async def _sample(self, query: str, context: Dict[str, Any]) -> Result[Candidate]:
        try:
            if inspect.iscoroutinefunction(self._fn):
                out = await self._fn(query, context)
            else:
                # off the loop, so the caller's wait_for can still fire
                out = await asyncio.to_thread(self._fn, query, context)
                if inspect.isawaitable(out):
                    out = await out
        except (asyncio.CancelledError, KeyboardInterrupt):
            raise
        except Exception as e:
            log.warning("sample failed: %s", type(e).__name__)
            return Result.failure(ErrorCode.MODEL_CALL_FAILED, "sample_failed", str(e))
        if isinstance(out, Candidate):
            return Result.success(out)
        if isinstance(out, str):
            return Result.success(Candidate(content=out))
        return Result.failure(
            ErrorCode.INVALID_MODEL_RESPONSE,
            "invalid_sample",
            f"expected text or Candidate, got {type(out).__name__}",
        )

    async def generate(self, query: str, n: int, context: Optional[Dict[str, Any]] = None) -> List[Result[Candidate]]:
        context = context or {}
        return list(await asyncio.gather(*(self._sample(query, context) for _ in range(n))))


DEFAULT_PROMPT = (
    "Answer the question below. Think it through, then give the final answer "
    "on its own line starting with 'Answer:'.\n\n{{query}}"
)


class LLMGenerator(Generator):
    """Samples candidates concurrently through a ModelAdapter."""

    def __init__(
        self,
        adapter: ModelAdapter,
        *,
        temperature: float = 0.7,
        timeout_s: float = 30.0,
        prompt_template: str = DEFAULT_PROMPT,
        request_logprobs: bool = False,
        max_tokens: int = 1024,
    ):
        if "{{query}}" not in prompt_template:
            raise AccuracyError(Failure(
                ErrorCode.INVALID_CONFIG,
                "missing_query_placeholder",
                "prompt_template must contain {{query}}",
            ))
        self.adapter = adapter
        self.temperature = temperature
        self.timeout_s = timeout_s
        self.prompt_template = prompt_template
        self.request_logprobs = request_logprobs
        self.max_tokens = max_tokens

    async def _sample(self, prompt: str) -> Result[Candidate]:
        extra = {"max_tokens": self.max_tokens, "logprobs": self.request_logprobs}
        try:
            text, meta = await self.adapter.generate_text(
                prompt=prompt,
                temperature=self.temperature,
                timeout_s=self.timeout_s,
                extra=extra,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = e if isinstance(e, AdapterError) else map_provider_error(e)
            if isinstance(err, AdapterTimeout):
                return Result.failure(ErrorCode.TIMEOUT, "llm_timeout", str(err))
            return Result.failure(ErrorCode.MODEL_CALL_FAILED, "llm_failed", str(err), error_type=type(err).__name__)

        metadata: Dict[str, Any] = {"model": f"{self.adapter.provider}:{self.adapter.model}"}
        if meta.get("logprobs") is not None:
            metadata[LOGPROBS_KEY] = list(meta["logprobs"])
        return Result.success(Candidate(content=text, metadata=metadata))

    async def generate(self, query: str, n: int, context: Optional[Dict[str, Any]] = None) -> List[Result[Candidate]]:
        prompt = self.prompt_template.replace("{{query}}", query)
        return list(await asyncio.gather(*(self._sample(prompt) for _ in range(n))))
