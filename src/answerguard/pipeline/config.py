# src/answerguard/pipeline/config.py
from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from answerguard.config import Settings
from answerguard.core.settings_model import ComponentConfig
from answerguard.core.thresholds import EARLY_STOP_THRESHOLD
from answerguard.decision.presets import preset_for_domain
from answerguard.decision.selective import SelectiveGenerationConfig
from answerguard.errors import ErrorCode, Result
from answerguard.estimators.heuristic_difficulty import HeuristicDifficultyConfig
from answerguard.gates.calibration_gate import CalibrationGateConfig
from answerguard.generation.controller import SelfConsistencyConfig
from answerguard.uncertainty.quantifier import UncertaintyConfig


class PipelineStage(str, Enum):
    DIFFICULTY = "difficulty"
    GENERATION = "generation"
    CONFIDENCE = "confidence"
    UNCERTAINTY = "uncertainty"
    CALIBRATION = "calibration"
    SELECTIVE = "selective"


# stages always execute in this order, whatever order they are listed in
STAGE_ORDER: List[PipelineStage] = list(PipelineStage)

DEFAULT_STAGES: List[PipelineStage] = [
    PipelineStage.DIFFICULTY,
    PipelineStage.GENERATION,
    PipelineStage.CALIBRATION,
]


class PipelineConfig(ComponentConfig):
    name: str = "custom"
    stages: List[PipelineStage] = Field(default_factory=lambda: list(DEFAULT_STAGES))

    self_consistency: SelfConsistencyConfig = Field(default_factory=SelfConsistencyConfig)
    heuristic: HeuristicDifficultyConfig = Field(default_factory=HeuristicDifficultyConfig)
    gate: CalibrationGateConfig = Field(default_factory=CalibrationGateConfig)
    selective: SelectiveGenerationConfig = Field(default_factory=SelectiveGenerationConfig)
    uncertainty: UncertaintyConfig = Field(default_factory=UncertaintyConfig)

    # budgeter global limit; None = unlimited
    global_limit: Optional[float] = Field(None, gt=0.0)
    # selects a reward/penalty preset unless `selective` is given explicitly
    domain: Optional[str] = None
    emit_telemetry: bool = Field(default_factory=lambda: Settings.EMIT_TELEMETRY)

    @field_validator("stages")
    @classmethod
    def _valid_stages(cls, v: List[PipelineStage]) -> List[PipelineStage]:
        if not v:
            raise ValueError("no_stages")
        if PipelineStage.GENERATION not in v:
            raise ValueError("missing_generation_stage")
        if len(set(v)) != len(v):
            raise ValueError("duplicate_stages")
        return v

    @model_validator(mode="after")
    def _known_domain(self) -> "PipelineConfig":
        if self.domain is not None and not preset_for_domain(self.domain).ok:
            raise ValueError("unknown_domain")
        return self

    def has_stage(self, stage: PipelineStage) -> bool:
        return PipelineStage(stage) in self.stages

    def ordered_stages(self) -> List[PipelineStage]:
        return [s for s in STAGE_ORDER if s in self.stages]

    def selective_config(self) -> SelectiveGenerationConfig:
        if self.domain is not None and "selective" not in self.model_fields_set:
            return preset_for_domain(self.domain).unwrap()
        return self.selective

    # -----------------------------
    # Presets
    # -----------------------------
    @staticmethod
    def fast() -> "PipelineConfig":
        return PipelineConfig(
            name="fast",
            stages=[PipelineStage.GENERATION, PipelineStage.CALIBRATION],
            self_consistency=SelfConsistencyConfig(min_candidates=1, max_candidates=3, early_stop_threshold=0.9),
            gate=CalibrationGateConfig(high_threshold=0.75, low_threshold=0.5),
        )

    @staticmethod
    def balanced() -> "PipelineConfig":
        return PipelineConfig(
            name="balanced",
            stages=list(DEFAULT_STAGES),
            self_consistency=SelfConsistencyConfig(
                min_candidates=3, max_candidates=5, early_stop_threshold=EARLY_STOP_THRESHOLD
            ),
            gate=CalibrationGateConfig(),
        )

    @staticmethod
    def accurate() -> "PipelineConfig":
        return PipelineConfig(
            name="accurate",
            stages=list(STAGE_ORDER),
            self_consistency=SelfConsistencyConfig(min_candidates=5, max_candidates=10, early_stop_threshold=0.7),
            gate=CalibrationGateConfig(high_threshold=0.8, low_threshold=0.3),
        )

    @staticmethod
    def for_name(name: str) -> Result["PipelineConfig"]:
        builder = PRESETS.get(str(name).strip().lower())
        if builder is None:
            return Result.failure(ErrorCode.INVALID_CONFIG, "unknown_preset", f"no pipeline preset {name!r}")
        return Result.success(builder())


PRESETS: Dict[str, Callable[[], PipelineConfig]] = {
    "fast": PipelineConfig.fast,
    "balanced": PipelineConfig.balanced,
    "accurate": PipelineConfig.accurate,
}


def list_presets() -> List[str]:
    return list(PRESETS)
