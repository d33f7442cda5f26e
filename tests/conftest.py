"""Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from yufanbot.config.schema import YufanConfig


@pytest.fixture
def default_config() -> YufanConfig:
    """Provide a default configuration for tests."""
    return YufanConfig()


@pytest.fixture
def isolated_config(tmp_path: Path) -> YufanConfig:
    """Configuration whose plugin and cache directories live under tmp_path."""
    config = YufanConfig()
    config.plugins.directory = str(tmp_path / "plugins")
    config.plugins.cache_dir = str(tmp_path / "cache")
    config.plugins.registries = ["https://registry.test"]
    return config
