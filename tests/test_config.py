"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from blog_api.config import Settings
from tests.conftest import REDIS_URL, make_settings


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("STORE_BACKEND", "REDIS_URL", "REDIS_KEY_PREFIX", "HOST", "PORT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings()
    assert settings.store_backend == "memory"
    assert settings.redis_url is None
    assert settings.redis_key_prefix == "blog:"
    assert settings.host == "0.0.0.0"
    assert settings.port == 8000
    assert settings.log_level == "info"


def test_settings_loads_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORE_BACKEND", "redis")
    monkeypatch.setenv("REDIS_URL", REDIS_URL)
    monkeypatch.setenv("PORT", "9000")

    settings = Settings()

    assert settings.store_backend == "redis"
    assert settings.redis_url == REDIS_URL
    assert settings.port == 9000


def test_settings_redis_requires_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REDIS_URL", raising=False)
    with pytest.raises(ValidationError, match="REDIS_URL is required when STORE_BACKEND=redis"):
        make_settings(store_backend="redis")


def test_settings_rejects_unknown_backend() -> None:
    with pytest.raises(ValidationError):
        make_settings(store_backend="mongo")
