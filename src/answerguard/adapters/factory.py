# src/answerguard/adapters/factory.py
"""Provider registry.

Adapters are cached per ``(provider, model)`` so an SDK client is built once
and shared by every estimator and generator that names the same model.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Type, Union

from .anthropic_adapter import AnthropicAdapter
from .base import ModelAdapter, ModelSpec
from .mock_adapter import MockAdapter
from .openai_adapter import OpenAIAdapter

_REGISTRY: Dict[str, Type[ModelAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "mock": MockAdapter,
}


def get_registered_providers() -> List[str]:
    return sorted(_REGISTRY)


def register_adapter(provider: str, cls: Type[ModelAdapter]) -> None:
    """Add or replace a provider. Cached adapters are dropped."""
    _REGISTRY[provider.strip().lower()] = cls
    clear_adapter_cache()


def clear_adapter_cache() -> None:
    _cached_adapter.cache_clear()


@lru_cache(maxsize=64)
def _cached_adapter(provider: str, model: str) -> ModelAdapter:
    try:
        cls = _REGISTRY[provider]
    except KeyError:
        raise ValueError(
            f"no adapter registered for provider {provider!r} (known: {', '.join(get_registered_providers())})"
        ) from None
    return cls(provider=provider, model=model)


def build_adapter(spec: Union[ModelSpec, str]) -> ModelAdapter:
    """Adapter for a ModelSpec or a ``provider:model`` reference."""
    if isinstance(spec, str):
        spec = ModelSpec.parse(spec)
    return _cached_adapter(spec.provider.lower(), spec.model)
