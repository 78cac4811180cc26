# src/answerguard/adapters/mock_adapter.py
"""Scripted adapter for tests and offline runs.

Each call consumes the next scripted response; once the script is used up
the adapter keeps answering with ``default_answer``. Exceptions in the
script are raised from the call that reaches them.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .base import ModelAdapter

Scripted = Union[str, BaseException]


class MockAdapter(ModelAdapter):
    provider = "mock"

    def __init__(
        self,
        *,
        provider: str = "mock",
        model: str = "mock-v1",
        responses: Optional[Sequence[Scripted]] = None,
        default_answer: str = "Mock response for testing.",
        logprobs: Optional[Sequence[Optional[List[float]]]] = None,
        delay_s: float = 0.0,
    ):
        super().__init__(provider=provider, model=model)
        self.script: List[Scripted] = list(responses or [])
        self.scripted_logprobs: List[Optional[List[float]]] = list(logprobs or [])
        self.default_answer = default_answer
        self.delay_s = delay_s
        self.prompts: List[str] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    def _scripted(self, n: int) -> Tuple[Scripted, Optional[List[float]]]:
        reply = self.script[n] if n < len(self.script) else self.default_answer
        lps = self.scripted_logprobs[n] if n < len(self.scripted_logprobs) else None
        return reply, lps

    async def _call_model(
        self,
        *,
        prompt: str,
        temperature: float,
        extra: Dict[str, Any],
    ) -> Tuple[str, Dict[str, Any]]:
        reply, lps = self._scripted(len(self.prompts))
        self.prompts.append(prompt)
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if isinstance(reply, BaseException):
            raise reply
        meta: Dict[str, Any] = {"mock": True, "call_number": self.call_count, "model": self.model}
        if lps is not None:
            meta["logprobs"] = list(lps)
        return str(reply), meta
