# src/answerguard/core/thresholds.py
"""Fixed decision thresholds shared across estimators, controller and gate."""
from __future__ import annotations

from typing import Dict

from answerguard.core.levels import ConfidenceLevel, DifficultyLevel

# Difficulty bands: score < 0.35 easy, [0.35, 0.65] medium, > 0.65 hard
EASY_THRESHOLD = 0.35
HARD_THRESHOLD = 0.65

# Self-consistency agreement
EARLY_STOP_THRESHOLD = 0.8
HIGH_CONSENSUS = 0.9
LOW_CONSENSUS = 0.6

# Confidence bands
CALIBRATION_HIGH = 0.7
CALIBRATION_MEDIUM = 0.4

_LEVEL_SCORES = {
    DifficultyLevel.EASY: 0.175,
    DifficultyLevel.MEDIUM: 0.5,
    DifficultyLevel.HARD: 0.825,
}


def score_to_level(score: float) -> DifficultyLevel:
    if score < EASY_THRESHOLD:
        return DifficultyLevel.EASY
    if score > HARD_THRESHOLD:
        return DifficultyLevel.HARD
    return DifficultyLevel.MEDIUM


def level_to_score(level: DifficultyLevel) -> float:
    """Midpoint score of a difficulty band."""
    return _LEVEL_SCORES[DifficultyLevel(level)]


def confidence_level(
    score: float,
    *,
    high: float = CALIBRATION_HIGH,
    medium: float = CALIBRATION_MEDIUM,
) -> ConfidenceLevel:
    if score >= high:
        return ConfidenceLevel.HIGH
    if score >= medium:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def all_thresholds() -> Dict[str, float]:
    return {
        "easy_threshold": EASY_THRESHOLD,
        "hard_threshold": HARD_THRESHOLD,
        "early_stop_threshold": EARLY_STOP_THRESHOLD,
        "high_consensus": HIGH_CONSENSUS,
        "low_consensus": LOW_CONSENSUS,
        "calibration_high": CALIBRATION_HIGH,
        "calibration_medium": CALIBRATION_MEDIUM,
    }
