"""Process-wide configuration read from environment variables.

Required:
  GEMINI_API_KEY   (API_KEY is accepted as an alias)

Optional:
  GEMINI_MODEL         default: gemini-2.5-flash
  GEMINI_API_BASE      default: https://generativelanguage.googleapis.com/v1beta
  ANALYSIS_TIMEOUT_S   default: 30
  ECOGUARD_MAX_SESSIONS default: 1024
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from ecoguard.shared.errors import ConfigurationError


DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_MAX_SESSIONS = 1024


@dataclass(frozen=True)
class Settings:
    api_key: str
    model: str = DEFAULT_MODEL
    api_base: str = DEFAULT_API_BASE
    timeout_s: float = DEFAULT_TIMEOUT_S
    max_sessions: int = DEFAULT_MAX_SESSIONS

    def __repr__(self) -> str:
        # Keep the key out of tracebacks and logs.
        return (
            f"Settings(model={self.model!r}, api_base={self.api_base!r}, "
            f"timeout_s={self.timeout_s!r}, max_sessions={self.max_sessions!r})"
        )


def _get_api_key() -> str:
    key = (os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or "").strip()
    if not key:
        raise ConfigurationError("Missing GEMINI_API_KEY (or API_KEY) environment variable")
    return key


def _get_positive_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def _get_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings() -> Settings:
    """Build Settings from the environment, failing fast on bad or missing values."""

    return Settings(
        api_key=_get_api_key(),
        model=(os.getenv("GEMINI_MODEL") or DEFAULT_MODEL).strip(),
        api_base=(os.getenv("GEMINI_API_BASE") or DEFAULT_API_BASE).strip().rstrip("/"),
        timeout_s=_get_positive_float("ANALYSIS_TIMEOUT_S", DEFAULT_TIMEOUT_S),
        max_sessions=_get_positive_int("ECOGUARD_MAX_SESSIONS", DEFAULT_MAX_SESSIONS),
    )
