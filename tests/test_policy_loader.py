import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from answerguard.errors import ErrorCode
from answerguard.pipeline.config import PipelineStage
from answerguard.pipeline.policy_loader import load_policy, pipeline_config_from_policy

POLICY_YAML = """\
policy_id: support-desk
owner: platform-team
pipeline:
  preset: accurate
  domain: legal
  global_limit: 200
  stages: [generation, calibration, selective]
  self_consistency:
    max_candidates: 8
  calibration:
    high_threshold: 0.85
"""


def test_load_policy_yaml(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text(POLICY_YAML, encoding="utf-8")
    res = load_policy(str(path))
    assert res.ok, res.error
    cfg = res.value
    assert cfg.name == "policy:support-desk"
    assert cfg.stages == [PipelineStage.GENERATION, PipelineStage.CALIBRATION, PipelineStage.SELECTIVE]
    assert cfg.global_limit == 200
    assert cfg.selective_config().penalty == 5.0
    # section overrides merge onto the preset
    assert cfg.self_consistency.max_candidates == 8
    assert cfg.self_consistency.min_candidates == 5
    assert cfg.gate.high_threshold == 0.85
    assert cfg.gate.low_threshold == 0.3


def test_empty_policy_is_balanced_preset():
    cfg = pipeline_config_from_policy({}).value
    assert cfg.name == "policy:unknown"
    assert cfg.self_consistency.max_candidates == 5
    assert not cfg.self_consistency.batch_size_explicit


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")
    assert load_policy(str(path)).ok


def test_bad_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("pipeline: [unclosed\n", encoding="utf-8")
    res = load_policy(str(path))
    assert res.error.code == ErrorCode.INVALID_CONFIG
    assert res.error.reason == "invalid_policy_yaml"


def test_missing_file(tmp_path):
    assert load_policy(str(tmp_path / "missing.yaml")).error.reason == "policy_unreadable"


def test_policy_shape_errors():
    assert pipeline_config_from_policy(["not", "a", "map"]).error.reason == "invalid_policy"
    assert pipeline_config_from_policy({"pipeline": "fast"}).error.reason == "invalid_policy"
    assert pipeline_config_from_policy({"pipeline": {"selective": 3}}).error.reason == "invalid_selective"
    assert pipeline_config_from_policy({"pipeline": {"preset": "turbo"}}).error.reason == "unknown_preset"


def test_section_values_are_validated():
    res = pipeline_config_from_policy({"pipeline": {"calibration": {"high_threshold": 0.2}}})
    assert res.error.code == ErrorCode.INVALID_CONFIG
    res = pipeline_config_from_policy({"pipeline": {"selective": {"bonus": 1}}})
    assert not res.ok
