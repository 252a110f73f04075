"""
Centralized settings for faultline.

``FaultlineSettings`` only supplies defaults. Every component still takes its
collaborators and limits as constructor arguments, so tests never depend on
the environment.

All fields can be set via ``FAULTLINE_*`` environment variables (e.g.
``FAULTLINE_CAPACITY=8``) or a ``.env`` file.

Tags:
    faultline, configuration, settings, pydantic
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FaultlineSettings(BaseSettings):
    """Faultline configuration."""

    model_config = SettingsConfigDict(
        env_prefix="FAULTLINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Worker pool ──────────────────────────────────────────────
    capacity: int = Field(default=100, ge=1, description="Concurrent execution slots")

    # ── Resource pressure ────────────────────────────────────────
    bytes_per_index: int = Field(default=1024, ge=0)
    allocation_ceiling_bytes: int | None = Field(
        default=None,
        description="Simulated memory ceiling; None disables the check",
    )
    task_pause_seconds: float = Field(default=0.0, ge=0.0)

    # ── Recovery ─────────────────────────────────────────────────
    recovery_attempts: int = Field(default=1, ge=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return value


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, FaultlineSettings] = {}


def get_settings(*, _force_reload: bool = False) -> FaultlineSettings:
    """Load, validate, and cache a :class:`FaultlineSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = FaultlineSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Forget the cached settings (tests)."""
    _settings_cache.clear()


__all__ = ["FaultlineSettings", "get_settings", "clear_settings_cache"]
