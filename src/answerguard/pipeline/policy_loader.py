"""Build a PipelineConfig from a YAML policy.

Policy shape (every key optional):

    policy_id: support-desk
    pipeline:
      preset: balanced          # fast | balanced | accurate
      stages: [difficulty, generation, calibration]
      domain: medical
      global_limit: 200
      self_consistency: {min_candidates: 3, max_candidates: 8}
      calibration: {high_threshold: 0.75, low_threshold: 0.45}
      selective: {reward: 1, penalty: 4}
      uncertainty: {none_threshold: 0.25}
      heuristic: {timeout_s: 2}

Section values override the preset field by field. Unknown top-level keys
outside ``pipeline`` are ignored; unknown keys inside a section are
rejected by the section's config model.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import yaml

from answerguard.errors import ErrorCode, Result
from answerguard.pipeline.config import PipelineConfig

log = logging.getLogger(__name__)

# policy section -> PipelineConfig field
_SECTIONS = {
    "self_consistency": "self_consistency",
    "generation": "self_consistency",
    "calibration": "gate",
    "gate": "gate",
    "selective": "selective",
    "uncertainty": "uncertainty",
    "heuristic": "heuristic",
}

_SCALARS = ("stages", "domain", "global_limit", "emit_telemetry")


def _invalid(reason: str, message: str = "") -> Result[PipelineConfig]:
    return Result.failure(ErrorCode.INVALID_CONFIG, reason, message)


def pipeline_config_from_policy(policy: Dict[str, Any]) -> Result[PipelineConfig]:
    if not isinstance(policy, dict):
        return _invalid("invalid_policy", "policy must be a mapping")
    block = policy.get("pipeline") or {}
    if not isinstance(block, dict):
        return _invalid("invalid_policy", "'pipeline' must be a mapping")

    base = PipelineConfig.for_name(block.get("preset", "balanced"))
    if not base.ok:
        return base
    # only fields the preset actually set, so level-driven defaults stay implicit
    data = base.value.model_dump(exclude_unset=True)

    for section, field_name in _SECTIONS.items():
        overrides = block.get(section)
        if overrides is None:
            continue
        if not isinstance(overrides, dict):
            return _invalid(f"invalid_{section}", f"'{section}' must be a mapping")
        data[field_name] = {**data.get(field_name, {}), **overrides}

    for key in _SCALARS:
        if key in block:
            data[key] = block[key]

    data["name"] = f"policy:{policy.get('policy_id', 'unknown')}"
    built = PipelineConfig.create(**data)
    if built.ok:
        log.info("pipeline config built from policy %s", data["name"])
    return built


def load_policy(path: str) -> Result[PipelineConfig]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            policy = yaml.safe_load(f)
    except OSError as e:
        return _invalid("policy_unreadable", str(e))
    except yaml.YAMLError as e:
        return _invalid("invalid_policy_yaml", str(e))
    if policy is None:
        policy = {}
    return pipeline_config_from_policy(policy)
