"""
Engine settings.

All values can be overridden via environment variables prefixed with
``JOBSPINE_`` (``JOBSPINE_REDIS_URL``, ``JOBSPINE_LOCK_DURATION_MS`` ...) or a
``.env`` file in the working directory.

Durations are milliseconds, matching ``JobOptions.timeout_ms``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class EngineSettings(BaseSettings):
    """Settings for a jobspine engine and its CLI.

    Order of precedence (highest → lowest):
        1. Explicit keyword arguments
        2. Environment variables (``JOBSPINE_*``)
        3. ``.env`` file
        4. Defaults below
    """

    # ── Backing store ────────────────────────────────────────────────────
    redis_url: str = Field(default="redis://127.0.0.1:6379/0", description="Redis connection URL")
    key_prefix: str = Field(default="jobspine", description="Prefix for every Redis key")

    # ── Claim loop ───────────────────────────────────────────────────────
    poll_interval_ms: int = Field(default=1000, gt=0, description="Wait between empty claim attempts")
    lock_duration_ms: int = Field(default=30000, gt=0, description="Ownership lock on a claimed job")
    lock_renew_ms: int = Field(default=15000, gt=0, description="How often a running job renews its lock")

    # ── Stalled jobs ─────────────────────────────────────────────────────
    stalled_interval_ms: int = Field(default=30000, gt=0, description="How often to check for stalled jobs")
    max_stalled_count: int = Field(default=1, ge=0, description="Stalls tolerated before a job is failed")

    # ── Monitoring ───────────────────────────────────────────────────────
    history_limit: int = Field(default=1000, gt=0, description="History entries kept per job name")
    dashboard_refresh_ms: int = Field(default=2000, gt=0, description="Dashboard polling interval")

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")

    model_config: dict[str, Any] = {
        "env_prefix": "JOBSPINE_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def monitoring_prefix(self) -> str:
        return f"{self.key_prefix}:monit:"
