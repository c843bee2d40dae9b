# shared/config.py
import os
from dataclasses import dataclass
from typing import Optional

from domain.models.outcome import ReturnMode

_TRUE_VALUES = ("1", "true", "yes", "on")

@dataclass(frozen=True)
class Settings:
    """Process-wide settings, read from the environment"""
    log_level: str = "INFO"
    json_logs: bool = True
    database_url: Optional[str] = None
    return_mode: ReturnMode = ReturnMode.NORMAL

def load_settings() -> Settings:
    raw_mode = os.getenv("TASK_RETURN_MODE", ReturnMode.NORMAL.value).strip().upper()
    try:
        return_mode = ReturnMode(raw_mode)
    except ValueError:
        raise ValueError(
            f"Invalid TASK_RETURN_MODE ({raw_mode}), expected one of {[m.value for m in ReturnMode]}")

    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        json_logs=os.getenv("JSON_LOGS", "true").strip().lower() in _TRUE_VALUES,
        database_url=os.getenv("DATABASE_URL"),
        return_mode=return_mode,
    )
