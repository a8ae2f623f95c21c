from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    data_path: Path
    flush_delay: float
    completion_threshold: float
    min_session_seconds: float


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def get_settings() -> Settings:
    data_raw = os.getenv("COURSE_LIBRARY_DATA", "").strip()
    if not data_raw:
        data_path = Path("./video-player-data.json").resolve()
    else:
        data_path = Path(data_raw).expanduser().resolve()

    return Settings(
        data_path=data_path,
        flush_delay=_float_env("COURSE_LIBRARY_FLUSH_DELAY", 1.0),
        completion_threshold=_float_env("COURSE_LIBRARY_COMPLETION_THRESHOLD", 90.0),
        min_session_seconds=_float_env("COURSE_LIBRARY_MIN_SESSION_SECONDS", 5.0),
    )
