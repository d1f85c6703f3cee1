"""Configuration management for the account service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import List, Mapping, Optional

from .database import resolve_database_path
from .tokens import TOKEN_TTL

DATABASE_PATH_ENV = "ACCOUNTS_DATABASE_PATH"
JWT_SECRET_ENV = "ACCOUNTS_JWT_SECRET"


class ConfigurationError(ValueError):
    """Raised when required settings are missing at startup."""


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, loaded once and injected into the application."""

    database_path: Path
    jwt_secret: str
    token_ttl: timedelta = TOKEN_TTL


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from environment variables.

    Both the database location and the signing secret are required; every missing
    variable is reported at once.
    """

    env = os.environ if environ is None else environ
    raw_path = (env.get(DATABASE_PATH_ENV) or "").strip()
    secret = (env.get(JWT_SECRET_ENV) or "").strip()

    missing: List[str] = []
    if not raw_path:
        missing.append(DATABASE_PATH_ENV)
    if not secret:
        missing.append(JWT_SECRET_ENV)
    if missing:
        raise ConfigurationError(f"Missing required environment variable(s): {', '.join(missing)}")

    return Settings(database_path=resolve_database_path(raw_path), jwt_secret=secret)


__all__ = ["ConfigurationError", "DATABASE_PATH_ENV", "JWT_SECRET_ENV", "Settings", "load_settings"]
