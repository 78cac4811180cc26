# src/answerguard/config.py
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv


def env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


class Settings:
    PROVIDER = env("ANSWERGUARD_PROVIDER", "mock").lower()
    MODEL = env("ANSWERGUARD_MODEL", "mock-llm")

    # Telemetry sink
    EMIT_TELEMETRY = env("ANSWERGUARD_TELEMETRY", "1") == "1"
    TELEMETRY_PATH = env("ANSWERGUARD_TELEMETRY_PATH", "")  # empty: in-memory only
    TELEMETRY_BUFFER_SIZE = max(1, int(env("ANSWERGUARD_TELEMETRY_BUFFER_SIZE", "1000")))  # in-memory events kept

    RUN_TIMEOUT_S = float(env("ANSWERGUARD_RUN_TIMEOUT_S", "30"))
    ESTIMATOR_TIMEOUT_S = float(env("ANSWERGUARD_ESTIMATOR_TIMEOUT_S", "5"))

    HASH_ALGORITHM = env("ANSWERGUARD_HASH_ALGORITHM", "sha256").lower()


def reload_settings(env_file: Optional[str] = None) -> type:
    """Load a .env file with python-dotenv and refresh Settings in place.

    Values from an explicit ``env_file`` override the process environment.
    """
    if env_file:
        load_dotenv(env_file, override=True)
    else:
        load_dotenv(override=False)

    Settings.PROVIDER = env("ANSWERGUARD_PROVIDER", "mock").lower()
    Settings.MODEL = env("ANSWERGUARD_MODEL", "mock-llm")
    Settings.EMIT_TELEMETRY = env("ANSWERGUARD_TELEMETRY", "1") == "1"
    Settings.TELEMETRY_PATH = env("ANSWERGUARD_TELEMETRY_PATH", "")
    Settings.TELEMETRY_BUFFER_SIZE = max(1, int(env("ANSWERGUARD_TELEMETRY_BUFFER_SIZE", "1000")))
    Settings.RUN_TIMEOUT_S = float(env("ANSWERGUARD_RUN_TIMEOUT_S", "30"))
    Settings.ESTIMATOR_TIMEOUT_S = float(env("ANSWERGUARD_ESTIMATOR_TIMEOUT_S", "5"))
    Settings.HASH_ALGORITHM = env("ANSWERGUARD_HASH_ALGORITHM", "sha256").lower()
    return Settings
