# src/answerguard/adapters/base.py
"""Adapter contract.

Adapters raise the ``AdapterError`` family from ``generate_text``; callers
that want values instead use ``complete``, which folds those errors (and any
other exception, via ``map_provider_error``) into a ``Result`` with
``timeout`` or ``model_call_failed``.
"""
from __future__ import annotations

import asyncio
import os
from typing import Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field

from answerguard.errors import ErrorCode, Result


class AdapterError(RuntimeError):
    pass

class AdapterAuth(AdapterError):
    pass

class AdapterTimeout(AdapterError):
    pass

class AdapterRateLimit(AdapterError):
    pass

class AdapterTransient(AdapterError):
    pass


# SDK exception class names shared by the openai and anthropic clients
_SDK_ERRORS: Dict[str, Type[AdapterError]] = {
    "RateLimitError": AdapterRateLimit,
    "AuthenticationError": AdapterAuth,
    "PermissionDeniedError": AdapterAuth,
    "APITimeoutError": AdapterTimeout,
}


def map_provider_error(e: BaseException) -> AdapterError:
    """Translate an SDK exception into the adapter error family.

    Matches on the exception class name so the SDKs stay optional imports;
    unknown errors fall back to the message and finally to transient.
    """
    cls = _SDK_ERRORS.get(type(e).__name__)
    if cls is None:
        msg = str(e).lower()
        if "rate" in msg and "limit" in msg:
            cls = AdapterRateLimit
        elif "api key" in msg or "unauthorized" in msg:
            cls = AdapterAuth
        elif "timed out" in msg or "timeout" in msg:
            cls = AdapterTimeout
        else:
            cls = AdapterTransient
    return cls(f"{type(e).__name__}: {e}")


class ModelSpec(BaseModel):
    provider: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    timeout_s: Optional[float] = Field(None, gt=0, le=300)
    extra: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @staticmethod
    def parse(ref: str) -> "ModelSpec":
        """Build a spec from a ``provider:model`` reference."""
        provider, sep, model = ref.partition(":")
        if not sep:
            raise ValueError(f"model reference must look like 'provider:model', got {ref!r}")
        return ModelSpec(provider=provider, model=model)

    @property
    def ref(self) -> str:
        return f"{self.provider}:{self.model}"


class ModelAdapter:
    provider: str = "base"

    def __init__(self, *, provider: str, model: str):
        self.provider = provider
        self.model = model

    async def _call_model(
        self,
        *,
        prompt: str,
        temperature: float,
        extra: Dict[str, Any],
    ) -> Tuple[str, Dict[str, Any]]:
        raise NotImplementedError

    async def generate_text(
        self,
        *,
        prompt: str,
        temperature: float = 0.0,
        timeout_s: float = 60,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Tuple[str, Dict[str, Any]]:
        extra = extra or {}
        try:
            return await asyncio.wait_for(
                self._call_model(prompt=prompt, temperature=temperature, extra=extra),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise AdapterTimeout(f"{self.provider}:{self.model} gave no reply within {timeout_s}s") from e

    async def complete(
        self,
        prompt: str,
        *,
        temperature: float = 0.0,
        timeout_s: float = 60,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Result[str]:
        """Single completion with transport errors folded into a Result."""
        try:
            text, _ = await self.generate_text(
                prompt=prompt, temperature=temperature, timeout_s=timeout_s, extra=extra
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            err = e if isinstance(e, AdapterError) else map_provider_error(e)
            if isinstance(err, AdapterTimeout):
                return Result.failure(ErrorCode.TIMEOUT, "llm_timeout", str(err), provider=self.provider)
            return Result.failure(
                ErrorCode.MODEL_CALL_FAILED,
                "llm_failed",
                str(err),
                provider=self.provider,
                error_type=type(err).__name__,
            )
        return Result.success(text)


class SDKAdapter(ModelAdapter):
    """Adapter over a vendor SDK: API key from the environment, client built
    on first use, SDK exceptions mapped through ``map_provider_error``."""

    api_key_env: str = ""
    install_extra: str = ""

    def __init__(self, *, provider: str, model: str):
        super().__init__(provider=provider, model=model)
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise AdapterAuth(f"{self.api_key_env} not set in environment")
        self._api_key = api_key
        self._client: Any = None

    def _build_client(self) -> Any:
        raise NotImplementedError

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                self._client = self._build_client()
            except ImportError as e:
                raise AdapterError(
                    f"{self.provider} SDK not installed (pip install answerguard[{self.install_extra}])"
                ) from e
        return self._client

    async def _request(self, client: Any, *, prompt: str, temperature: float, extra: Dict[str, Any]) -> Any:
        raise NotImplementedError

    def _parse(self, response: Any) -> Tuple[str, Dict[str, Any]]:
        raise NotImplementedError

    async def _call_model(
        self,
        *,
        prompt: str,
        temperature: float,
        extra: Dict[str, Any],
    ) -> Tuple[str, Dict[str, Any]]:
        client = self._get_client()
        try:
            response = await self._request(client, prompt=prompt, temperature=temperature, extra=extra)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise map_provider_error(e) from e
        text, meta = self._parse(response)
        meta.setdefault("request_id", getattr(response, "id", None))
        meta["model"] = self.model
        return text, meta
