"""Shared pytest fixtures for settings, env vars and the reference clock."""

import pytest

from baseline_delta.config import Settings
from helpers import NOW


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set required env vars to test values."""
    monkeypatch.setenv("SENTINEL_WORKSPACE_ID", "00000000-0000-0000-0000-000000000000")
    monkeypatch.setenv("GOOD_HOSTS", "good1.contoso.com, good2.contoso.com")
    monkeypatch.setenv("BAD_HOSTS", "bad1.contoso.com")
    monkeypatch.setattr("baseline_delta.config.load_dotenv", lambda *a, **kw: None)


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all config env vars and prevent .env reload."""
    import os

    env_prefixes = ("AZURE_", "SENTINEL_", "GOOD_", "BAD_", "ENABLED_", "MAX_", "RESOLVE_")
    for key in list(os.environ.keys()):
        if key.startswith(env_prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr("baseline_delta.config.load_dotenv", lambda *a, **kw: None)


@pytest.fixture
def mock_settings():
    """Return a Settings instance with test values."""
    return Settings(
        sentinel_workspace_id="00000000-0000-0000-0000-000000000000",
        max_workers=4,
        resolve_lookback="30d",
    )
