"""Database engine creation with connection-pool settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError


class DatabaseError(Exception):
    """Raised when the database cannot be opened or reached."""


@dataclass
class DatabaseConfig:
    """Connection settings; durations are in seconds and zero means no limit."""

    url: str
    max_open_conns: int = 0
    max_idle_conns: int = 0
    conn_max_lifetime: float = 0.0
    conn_max_idle_time: float = 0.0


def _normalize_url(url: str) -> str:
    prefix = "postgres://"
    if url.startswith(prefix):
        return "postgresql://" + url[len(prefix):]
    return url


def _pool_options(config: DatabaseConfig) -> dict[str, Any]:
    """Translate pool limits into engine options.

    Connections are recycled after whichever of lifetime or idle time is shorter.
    """
    options: dict[str, Any] = {}
    idle = max(config.max_idle_conns, 1)
    if config.max_open_conns > 0:
        size = min(idle, config.max_open_conns)
        options["pool_size"] = size
        options["max_overflow"] = config.max_open_conns - size
    else:
        options["pool_size"] = idle
        options["max_overflow"] = -1
    limits = [t for t in (config.conn_max_lifetime, config.conn_max_idle_time) if t > 0]
    if limits:
        options["pool_recycle"] = min(limits)
    return options


def connect(config: DatabaseConfig) -> Engine:
    """Create an engine for the configured URL and verify it answers."""
    try:
        url = make_url(_normalize_url(config.url))
        options = {} if url.get_backend_name() == "sqlite" else _pool_options(config)
        engine = create_engine(url, **options)
    except (ArgumentError, ImportError) as exc:
        raise DatabaseError(f"failed to open database: {exc}") from exc

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        engine.dispose()
        raise DatabaseError(f"failed to ping database: {exc}") from exc

    return engine