"""Runtime settings resolved from the environment, with constants as defaults."""

from __future__ import annotations

from dataclasses import dataclass
import os

from quizvault.constants.network_constants import (
    AI_GENERATION_TIMEOUT_SECONDS,
    DEFAULT_GEMINI_MODEL,
    DEFAULT_HOST,
    DEFAULT_PORT,
)


def _env_str(name: str, default: str | None = None) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or default


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}.") from exc


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """Deployment-wide knobs for the server and the core services."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    ai_timeout_seconds: float = AI_GENERATION_TIMEOUT_SECONDS
    grading_secret: str | None = None
    # None keeps the per-quiz policy; "single"/"multiple" overrides every quiz.
    attempt_policy_override: str | None = None
    gemini_api_key: str | None = None
    gemini_model: str = DEFAULT_GEMINI_MODEL

    @classmethod
    def from_env(cls) -> "EngineSettings":
        override = _env_str("QUIZVAULT_ATTEMPT_POLICY")
        if override is not None:
            override = override.lower()
            if override not in ("single", "multiple"):
                raise ValueError("QUIZVAULT_ATTEMPT_POLICY must be 'single' or 'multiple'.")
        timeout = _env_float("QUIZVAULT_AI_TIMEOUT_SECONDS", AI_GENERATION_TIMEOUT_SECONDS)
        if timeout <= 0:
            raise ValueError("QUIZVAULT_AI_TIMEOUT_SECONDS must be positive.")
        return cls(
            host=_env_str("QUIZVAULT_HOST", DEFAULT_HOST),
            port=_env_int("QUIZVAULT_PORT", DEFAULT_PORT),
            log_level=_env_str("QUIZVAULT_LOG_LEVEL", "INFO"),
            ai_timeout_seconds=timeout,
            grading_secret=_env_str("QUIZVAULT_GRADING_SECRET"),
            attempt_policy_override=override,
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            gemini_model=_env_str("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
        )
