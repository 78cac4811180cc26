# src/answerguard/adapters/anthropic_adapter.py
from __future__ import annotations

from typing import Any, Dict, Tuple

from .base import SDKAdapter


class AnthropicAdapter(SDKAdapter):
    """Messages API adapter.

    The Messages API returns no token logprobs; candidates produced through
    it need a confidence estimator other than token probability.
    """

    provider = "anthropic"
    api_key_env = "ANTHROPIC_API_KEY"
    install_extra = "anthropic"

    def _build_client(self) -> Any:
        from anthropic import AsyncAnthropic

        return AsyncAnthropic(api_key=self._api_key)

    async def _request(self, client: Any, *, prompt: str, temperature: float, extra: Dict[str, Any]) -> Any:
        kwargs: Dict[str, Any] = dict(extra.get("kwargs", {}))
        if extra.get("system"):
            kwargs["system"] = extra["system"]
        return await client.messages.create(
            model=self.model,
            max_tokens=int(extra.get("max_tokens", 1024)),
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
            **kwargs,
        )

    def _parse(self, response: Any) -> Tuple[str, Dict[str, Any]]:
        # text blocks only; tool-use blocks carry no text
        text = "".join(getattr(block, "text", "") for block in (getattr(response, "content", None) or []))
        usage = getattr(response, "usage", None)
        return text, {
            "usage": {
                "prompt_tokens": getattr(usage, "input_tokens", None),
                "completion_tokens": getattr(usage, "output_tokens", None),
            },
            "stop_reason": getattr(response, "stop_reason", None),
        }
