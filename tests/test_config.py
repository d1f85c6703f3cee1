from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from accounts.config import ConfigurationError, load_settings


def test_load_settings_from_environment(tmp_path: Path) -> None:
    settings = load_settings(
        {
            "ACCOUNTS_DATABASE_PATH": str(tmp_path / "accounts.sqlite3"),
            "ACCOUNTS_JWT_SECRET": " signing-secret ",
        }
    )
    assert settings.database_path == (tmp_path / "accounts.sqlite3").resolve()
    assert settings.jwt_secret == "signing-secret"
    assert settings.token_ttl == timedelta(hours=1)


def test_missing_settings_are_reported_together() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        load_settings({"ACCOUNTS_JWT_SECRET": "  "})
    message = str(excinfo.value)
    assert "ACCOUNTS_DATABASE_PATH" in message
    assert "ACCOUNTS_JWT_SECRET" in message


def test_create_app_requires_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    from accounts import create_app

    monkeypatch.delenv("ACCOUNTS_DATABASE_PATH", raising=False)
    monkeypatch.delenv("ACCOUNTS_JWT_SECRET", raising=False)
    with pytest.raises(ConfigurationError):
        create_app()
