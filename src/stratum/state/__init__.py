"""Durable state stores for deployments."""

from __future__ import annotations

from stratum.config import Settings, get_settings
from stratum.state.base import StateStore
from stratum.state.json_store import JsonStateStore
from stratum.state.memory import InMemoryStateStore


def create_state_store(settings: Settings | None = None) -> StateStore:
    """Build the state store selected by ``state_backend``."""
    cfg = settings or get_settings()
    if cfg.state_backend == "memory":
        return InMemoryStateStore()
    if cfg.state_backend == "sql":
        from stratum.state.sql_store import SqlStateStore

        return SqlStateStore(cfg.database_url)
    return JsonStateStore(cfg.state_dir)


__all__ = [
    "InMemoryStateStore",
    "JsonStateStore",
    "StateStore",
    "create_state_store",
]
