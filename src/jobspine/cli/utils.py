"""
CLI utility helpers - consoles, settings and definition loading.
"""

from __future__ import annotations

import importlib
from typing import Any

import typer
from rich.console import Console

from jobspine.monitoring.store import MonitoringStore, RedisMonitoringStore
from jobspine.settings import EngineSettings

console = Console()
err_console = Console(stderr=True)


def get_settings(redis_url: str | None = None) -> EngineSettings:
    """Settings from the environment, with an optional URL override."""
    if redis_url:
        return EngineSettings(redis_url=redis_url)
    return EngineSettings()


def get_monitoring_store(settings: EngineSettings) -> MonitoringStore:
    return RedisMonitoringStore.from_url(
        settings.redis_url,
        prefix=settings.monitoring_prefix,
        history_limit=settings.history_limit,
    )


def load_object(target: str) -> Any:
    """Import ``package.module:attribute``.

    Raises:
        typer.BadParameter: If the target is malformed or cannot be imported.
    """
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise typer.BadParameter(f"Expected MODULE:ATTRIBUTE, got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"Cannot import {module_name}: {e}") from e
    try:
        return getattr(module, attribute)
    except AttributeError as e:
        raise typer.BadParameter(f"{module_name} has no attribute {attribute!r}") from e
