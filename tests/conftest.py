"""Pytest configuration and shared fixtures"""

import os

import pytest

# Variables read by the configuration layer and the credential resolver
ENV_PREFIXES = ("APP_", "YOUTUBE_")
ENV_NAMES = ("PORT", "CACHE_DIR")


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset environment variables before each test"""
    for key in list(os.environ.keys()):
        if key.startswith(ENV_PREFIXES) or key in ENV_NAMES:
            monkeypatch.delenv(key, raising=False)
