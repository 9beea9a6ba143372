"""
Runtime settings read from the environment.

Call load_settings() once per process (the CLI does) and pass the values
down explicitly; nothing here caches state.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .env import load_env
from .llm import DEFAULT_BASE_URL, DEFAULT_MODEL
from .models import SOFT_CRITERIA_V1
from .narrative import NarrativePolicy

DEFAULT_ALGORITHM_KEY = SOFT_CRITERIA_V1.key

NARRATIVE_POLICIES = tuple(p.value for p in NarrativePolicy)
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    db_path: Path = Path("data/fruitmatch.db")
    log_level: str = "INFO"
    log_dir: Path = Path("logs")
    algorithm_key: str = DEFAULT_ALGORITHM_KEY
    narrative_policy: str = "fallback"
    narrative_timeout: float = 30.0
    serialize_arrivals: bool = False
    openai_api_key: Optional[str] = None
    openai_model: str = DEFAULT_MODEL
    openai_base_url: str = DEFAULT_BASE_URL


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


def _parse_positive_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def settings_from_env(environ: Mapping[str, str]) -> Settings:
    """
    Build Settings from an environment mapping.

    Raises:
        ValueError: If a variable holds an invalid value
    """
    defaults = Settings()

    policy = environ.get("FRUITMATCH_NARRATIVE_POLICY", defaults.narrative_policy).strip().lower()
    if policy not in NARRATIVE_POLICIES:
        raise ValueError(
            f"FRUITMATCH_NARRATIVE_POLICY must be one of {', '.join(NARRATIVE_POLICIES)}, got {policy!r}"
        )

    log_level = environ.get("FRUITMATCH_LOG_LEVEL", defaults.log_level).strip().upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"FRUITMATCH_LOG_LEVEL is not a log level: {log_level!r}")

    timeout = defaults.narrative_timeout
    if "FRUITMATCH_NARRATIVE_TIMEOUT" in environ:
        timeout = _parse_positive_float(
            "FRUITMATCH_NARRATIVE_TIMEOUT", environ["FRUITMATCH_NARRATIVE_TIMEOUT"]
        )

    serialize = defaults.serialize_arrivals
    if "FRUITMATCH_SERIALIZE_ARRIVALS" in environ:
        serialize = _parse_bool(
            "FRUITMATCH_SERIALIZE_ARRIVALS", environ["FRUITMATCH_SERIALIZE_ARRIVALS"]
        )

    return Settings(
        db_path=Path(environ.get("FRUITMATCH_DB_PATH", str(defaults.db_path))),
        log_level=log_level,
        log_dir=Path(environ.get("FRUITMATCH_LOG_DIR", str(defaults.log_dir))),
        algorithm_key=environ.get("FRUITMATCH_ALGORITHM_KEY", defaults.algorithm_key),
        narrative_policy=policy,
        narrative_timeout=timeout,
        serialize_arrivals=serialize,
        openai_api_key=environ.get("OPENAI_API_KEY") or None,
        openai_model=environ.get("OPENAI_MODEL", defaults.openai_model),
        openai_base_url=environ.get("OPENAI_BASE_URL", defaults.openai_base_url).rstrip("/"),
    )


def load_settings() -> Settings:
    """Load .env (if present) and read settings from os.environ."""
    load_env()
    return settings_from_env(os.environ)
