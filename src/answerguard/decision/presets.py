# src/answerguard/decision/presets.py
"""Domain presets are (reward, penalty) pairs; nothing else differs."""
from __future__ import annotations

from typing import Dict, List, Tuple

from answerguard.decision.selective import SelectiveGenerationConfig
from answerguard.errors import ErrorCode, Result

DOMAIN_PRESETS: Dict[str, Tuple[float, float]] = {
    "general": (1.0, 1.0),
    "creative": (1.0, 0.5),
    "financial": (1.0, 5.0),
    "legal": (1.0, 5.0),
    "medical": (1.0, 10.0),
}


def list_domains() -> List[str]:
    return list(DOMAIN_PRESETS)


def preset_for_domain(domain: str) -> Result[SelectiveGenerationConfig]:
    pair = DOMAIN_PRESETS.get(domain)
    if pair is None:
        return Result.failure(ErrorCode.INVALID_INPUT, "unknown_domain", f"no preset for {domain!r}")
    reward, penalty = pair
    return Result.success(SelectiveGenerationConfig(reward=reward, penalty=penalty))
