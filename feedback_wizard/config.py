"""Runtime configuration read from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .drafts import DEFAULT_DEBOUNCE_MS, DEFAULT_MAX_AGE_MS, DEFAULT_VERSION
from .gestures import GestureConfig

ENV_PREFIX = "FEEDBACK_WIZARD_"
DEFAULT_STORAGE_DIR = Path(".feedback-wizard") / "drafts"
DEFAULT_SUBMIT_URL = "http://localhost:3000/api/project-feedback"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got '{raw}'") from None
    if value < 0:
        raise ValueError(f"{ENV_PREFIX}{name} must not be negative, got {value}")
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got '{raw}'") from None
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive, got {value}")
    return value


@dataclass(slots=True)
class WizardConfig:
    """Settings shared by every wizard session in a process."""

    storage_dir: Path = DEFAULT_STORAGE_DIR
    submit_url: str = DEFAULT_SUBMIT_URL
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    max_age_ms: int = DEFAULT_MAX_AGE_MS
    draft_version: int = DEFAULT_VERSION
    submit_timeout: float = 30.0
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    gestures: GestureConfig = field(default_factory=GestureConfig)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "WizardConfig":
        env = os.environ if env is None else env

        storage_dir = env.get(ENV_PREFIX + "STORAGE_DIR")
        log_file = env.get(ENV_PREFIX + "LOG_FILE")
        log_level = env.get(ENV_PREFIX + "LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"{ENV_PREFIX}LOG_LEVEL must be a logging level name, got '{log_level}'")

        return cls(
            storage_dir=Path(storage_dir).expanduser() if storage_dir else Path.cwd() / DEFAULT_STORAGE_DIR,
            submit_url=env.get(ENV_PREFIX + "SUBMIT_URL", DEFAULT_SUBMIT_URL),
            debounce_ms=_env_int(env, "DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS),
            max_age_ms=_env_int(env, "MAX_AGE_MS", DEFAULT_MAX_AGE_MS),
            draft_version=_env_int(env, "DRAFT_VERSION", DEFAULT_VERSION),
            submit_timeout=_env_float(env, "SUBMIT_TIMEOUT", 30.0),
            log_level=log_level,
            log_file=Path(log_file).expanduser() if log_file else None,
        )
