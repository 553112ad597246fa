"""
Engine configuration.

Centralises the environment variable names and defaults for the
ambient parts of the engine: file logging, the cross-request
detection debounce and the per-tab record ceiling.  Detection
thresholds are fixed module constants, not settings.

Uses ``pydantic_settings.BaseSettings`` for automatic environment
variable binding (including a local ``.env`` file), type coercion
and validation.
"""

from __future__ import annotations

import functools

import pydantic
import pydantic_settings


class EngineSettings(pydantic_settings.BaseSettings):
    """Settings for the classification and diagnostics engine.

    Attributes:
        write_to_file: Mirror log output into a file under ``log_dir``.
        log_dir: Directory for log files.
        issue_debounce_ms: Quiet period before cross-request issue
            detection runs after the latest completion or error.
        max_requests_per_tab: Ceiling on records held per tab; the
            oldest record is evicted beyond it.
    """

    model_config = pydantic_settings.SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    write_to_file: bool = pydantic.Field(
        default=False, validation_alias="ADFLOW_WRITE_TO_FILE"
    )
    log_dir: str = pydantic.Field(
        default=".logs", validation_alias="ADFLOW_LOG_DIR"
    )
    issue_debounce_ms: int = pydantic.Field(
        default=500, ge=0, validation_alias="ADFLOW_ISSUE_DEBOUNCE_MS"
    )
    max_requests_per_tab: int = pydantic.Field(
        default=1000, ge=1, validation_alias="ADFLOW_MAX_REQUESTS_PER_TAB"
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> EngineSettings:
    """Return the process-wide settings (read once, then cached)."""
    return EngineSettings()
