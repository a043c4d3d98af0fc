"""Application settings resolved from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

import structlog
from dotenv import load_dotenv

# Load environment variables from a .env file if present
load_dotenv()

APP_NAME = "niraiva"

logger = structlog.get_logger(__name__)

_DEVELOPMENT_ENVIRONMENTS = {"development", "dev", "local", "test"}
_DEV_JWT_SECRET = "niraiva-development-secret"


def env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    """Read an integer environment variable, rejecting malformed values."""

    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer; got {raw!r}") from exc


def _split_csv(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    """Resolved runtime configuration for the API."""

    environment: str
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24
    custom_id_max_attempts: int = 5
    max_upload_bytes: int = 10 * 1024 * 1024
    log_level: str = "INFO"
    cors_origins: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_development(self) -> bool:
        return self.environment in _DEVELOPMENT_ENVIRONMENTS


def _resolve_jwt_secret(environment: str) -> str:
    secret = os.getenv("NIRAIVA_JWT_SECRET") or os.getenv("JWT_SECRET")
    if secret:
        return secret
    if environment in _DEVELOPMENT_ENVIRONMENTS:
        logger.warning("jwt_secret_fallback", environment=environment)
        return _DEV_JWT_SECRET
    raise RuntimeError(
        "JWT signing secret is not configured. Provide NIRAIVA_JWT_SECRET or JWT_SECRET."
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the active settings derived from the environment."""

    environment = os.getenv("ENVIRONMENT", "development").lower()
    max_upload_mb = env_int("MAX_UPLOAD_MB", 10)
    return Settings(
        environment=environment,
        jwt_secret=_resolve_jwt_secret(environment),
        access_token_expire_minutes=env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24),
        custom_id_max_attempts=max(1, env_int("CUSTOM_ID_MAX_ATTEMPTS", 5)),
        max_upload_bytes=max(1, max_upload_mb) * 1024 * 1024,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=_split_csv(os.getenv("CORS_ORIGINS")) or ("http://localhost:3000",),
    )


__all__ = ["APP_NAME", "Settings", "get_settings"]
