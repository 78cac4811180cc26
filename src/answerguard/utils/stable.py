# src/answerguard/utils/stable.py
"""Content hashes for telemetry events.

Objects are serialized to canonical JSON first, so two dicts with the same
items hash the same regardless of insertion order.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any, List

from answerguard.config import Settings

# md5/sha1 are deliberately absent
_SUPPORTED = frozenset({"sha256", "sha384", "sha512"})


def supported_algorithms() -> List[str]:
    return sorted(_SUPPORTED)


def stable_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def stable_hash(obj: Any, *, algorithm: str = "") -> str:
    """Hex digest of ``stable_json(obj)``.

    ``algorithm`` defaults to ``Settings.HASH_ALGORITHM``; anything outside
    ``supported_algorithms()`` raises ValueError.
    """
    name = (algorithm or Settings.HASH_ALGORITHM).lower()
    if name not in _SUPPORTED:
        raise ValueError(f"hash algorithm {name!r} not supported; use one of {supported_algorithms()}")
    return hashlib.new(name, stable_json(obj).encode("utf-8")).hexdigest()
