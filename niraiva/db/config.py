"""Database configuration helpers.

Settings are resolved once from the environment. A URL from
``NIRAIVA_DATABASE_URL`` or ``DATABASE_URL`` wins; otherwise a SQLite file is
used, either at ``NIRAIVA_DB_PATH`` or in the per-user data directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

from platformdirs import user_data_dir

from niraiva.config import APP_NAME, env_int

SQLITE_FILENAME = "niraiva.db"

_POSTGRES_SCHEMES = ("postgres://", "postgresql://")
_PSYCOPG_SCHEME = "postgresql+psycopg://"
_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class PoolSettings:
    """Connection pool sizing; ``None`` leaves the SQLAlchemy default."""

    size: Optional[int] = None
    max_overflow: Optional[int] = None
    timeout: Optional[int] = None

    @classmethod
    def from_env(cls) -> "PoolSettings":
        return cls(
            size=env_int("DB_POOL_SIZE"),
            max_overflow=env_int("DB_MAX_OVERFLOW"),
            timeout=env_int("DB_POOL_TIMEOUT"),
        )

    def as_engine_kwargs(self) -> Dict[str, int]:
        pairs = (
            ("pool_size", self.size),
            ("max_overflow", self.max_overflow),
            ("pool_timeout", self.timeout),
        )
        return {key: value for key, value in pairs if value is not None}


@dataclass(frozen=True)
class DatabaseSettings:
    url: str
    echo: bool = False
    pool: PoolSettings = field(default_factory=PoolSettings)
    connect_timeout: Optional[int] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith("postgres")

    def _connect_args(self) -> Dict[str, object]:
        if self.is_sqlite:
            # Sessions are handed across FastAPI's threadpool workers.
            return {"check_same_thread": False}
        if not self.is_postgres:
            return {}
        args: Dict[str, object] = {"options": "-c timezone=UTC"}
        if self.connect_timeout is not None:
            args["connect_timeout"] = self.connect_timeout
        return args

    def engine_options(self) -> Dict[str, object]:
        """Keyword arguments for :func:`sqlalchemy.create_engine`."""

        options: Dict[str, object] = {"echo": self.echo, "future": True}
        options.update(self.pool.as_engine_kwargs())
        if self.is_postgres:
            options["pool_pre_ping"] = True
        connect_args = self._connect_args()
        if connect_args:
            options["connect_args"] = connect_args
        return options


def _with_psycopg_driver(url: str) -> str:
    for scheme in _POSTGRES_SCHEMES:
        if url.startswith(scheme):
            return _PSYCOPG_SCHEME + url[len(scheme):]
    return url


def _sqlite_file(override: Optional[str]) -> Path:
    if override:
        target = Path(override).expanduser()
        if target.is_dir():
            target = target / SQLITE_FILENAME
    else:
        target = Path(user_data_dir(APP_NAME, APP_NAME)) / SQLITE_FILENAME
    target.parent.mkdir(parents=True, exist_ok=True)
    return target


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    """Return the active database settings derived from the environment.

    Raises ``ValueError`` when a numeric pool or timeout variable is malformed.
    """

    url = os.getenv("NIRAIVA_DATABASE_URL") or os.getenv("DATABASE_URL")
    if url:
        url = _with_psycopg_driver(url)
    else:
        url = f"sqlite:///{_sqlite_file(os.getenv('NIRAIVA_DB_PATH'))}"

    return DatabaseSettings(
        url=url,
        echo=os.getenv("DB_ECHO", "").strip().lower() in _TRUTHY,
        pool=PoolSettings.from_env(),
        connect_timeout=env_int("PGCONNECT_TIMEOUT"),
    )
