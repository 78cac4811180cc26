# src/answerguard/adapters/openai_adapter.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from .base import SDKAdapter


def _token_logprobs(choice: Any) -> Optional[List[float]]:
    logprobs = getattr(choice, "logprobs", None)
    content = getattr(logprobs, "content", None) if logprobs is not None else None
    if not content:
        return None
    return [float(tok.logprob) for tok in content]


class OpenAIAdapter(SDKAdapter):
    """Chat-completions adapter. ``extra={"logprobs": True}`` requests
    per-token log-probabilities, returned under ``meta["logprobs"]``."""

    provider = "openai"
    api_key_env = "OPENAI_API_KEY"
    install_extra = "openai"

    def _build_client(self) -> Any:
        from openai import AsyncOpenAI

        return AsyncOpenAI(api_key=self._api_key)

    async def _request(self, client: Any, *, prompt: str, temperature: float, extra: Dict[str, Any]) -> Any:
        messages = [{"role": "user", "content": prompt}]
        if extra.get("system"):
            messages.insert(0, {"role": "system", "content": extra["system"]})
        return await client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=int(extra.get("max_tokens", 1024)),
            logprobs=bool(extra.get("logprobs", False)),
            **extra.get("kwargs", {}),
        )

    def _parse(self, response: Any) -> Tuple[str, Dict[str, Any]]:
        if not getattr(response, "choices", None):
            return "", {"usage": None}
        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        meta: Dict[str, Any] = {
            "usage": {
                "prompt_tokens": getattr(usage, "prompt_tokens", None),
                "completion_tokens": getattr(usage, "completion_tokens", None),
            },
            "finish_reason": getattr(choice, "finish_reason", None),
        }
        token_logprobs = _token_logprobs(choice)
        if token_logprobs is not None:
            meta["logprobs"] = token_logprobs
        return choice.message.content or "", meta
