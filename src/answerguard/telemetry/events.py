# src/answerguard/telemetry/events.py
"""Telemetry event sink.

Events are kept in a small in-memory store for tests and in-process
inspection, and appended to a JSONL file when ``Settings.TELEMETRY_PATH`` is
set. Payloads carry numbers, booleans, enum values and short labels only;
free text (queries, candidate content) never reaches the sink.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from answerguard.config import Settings
from answerguard.utils.stable import stable_hash

log = logging.getLogger(__name__)

MAX_LABEL_LEN = 64

# oldest events fall off once Settings.TELEMETRY_BUFFER_SIZE is reached
_EVENTS: Deque[Dict[str, Any]] = deque(maxlen=Settings.TELEMETRY_BUFFER_SIZE)
_LOCK = threading.Lock()


def _scrub(payload: Dict[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    for key, value in payload.items():
        if isinstance(value, Enum):
            clean[key] = value.value
        elif value is None or isinstance(value, (bool, int, float)):
            clean[key] = value
        elif isinstance(value, str) and len(value) <= MAX_LABEL_LEN and "\n" not in value:
            clean[key] = value
    return clean


def _append(event: Dict[str, Any]) -> None:
    global _EVENTS
    with _LOCK:
        if _EVENTS.maxlen != Settings.TELEMETRY_BUFFER_SIZE:
            _EVENTS = deque(_EVENTS, maxlen=Settings.TELEMETRY_BUFFER_SIZE)
        _EVENTS.append(event)


def _persist(event: Dict[str, Any]) -> None:
    path_str = Settings.TELEMETRY_PATH
    if not path_str:
        return
    try:
        path = Path(path_str)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")
    except OSError as e:
        # Telemetry must never fail the caller.
        log.warning("telemetry persistence failed: %s", e)


def emit_event(
    *,
    stage: str,
    payload: Dict[str, Any],
    run_id: Optional[str] = None,
) -> Optional[str]:
    """Record one telemetry event and return its hash.

    Never raises: a hash or write failure is logged and the event is still
    buffered, with ``event_hash`` None when hashing failed.
    """
    core = {
        "run_id": run_id,
        "stage": stage,
        "ts_ms": int(time.time() * 1000),
        "payload": _scrub(payload),
    }
    try:
        event_hash: Optional[str] = stable_hash(core)
    except ValueError as e:
        log.warning("telemetry hashing failed: %s", e)
        event_hash = None
    event = {**core, "event_hash": event_hash}
    _append(event)
    _persist(event)
    return event_hash


def get_recent_events(stage_prefix: str = "", limit: int = 20, run_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Most recent in-memory events matching a stage prefix, newest first."""
    if limit <= 0:
        return []
    with _LOCK:
        events = list(reversed(_EVENTS))
    matching = [
        e
        for e in events
        if str(e.get("stage", "")).startswith(stage_prefix) and (run_id is None or e.get("run_id") == run_id)
    ]
    return matching[:limit]


def read_persisted_events(limit: int = 200) -> List[Dict[str, Any]]:
    """Read up to the last ``limit`` events from the JSONL file, newest first."""
    path_str = Settings.TELEMETRY_PATH
    if limit <= 0 or not path_str:
        return []
    path = Path(path_str)
    if not path.exists():
        return []
    out: List[Dict[str, Any]] = []
    for line in reversed(path.read_text(encoding="utf-8").splitlines()):
        if not line.strip():
            continue
        try:
            out.append(json.loads(line))
        except json.JSONDecodeError:
            continue
        if len(out) >= limit:
            break
    return out


def clear_events_for_test() -> None:
    with _LOCK:
        _EVENTS.clear()
