"""Shared fixtures for CLI tests."""

from pathlib import Path

import pytest
import yaml


@pytest.fixture
def tmp_config_path(tmp_path: Path) -> Path:
    """Write a config file that keeps every directory under tmp_path."""
    path = tmp_path / "yufanbot.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "plugins": {
                    "directory": str(tmp_path / "plugins"),
                    "cache_dir": str(tmp_path / "cache"),
                    "registries": ["https://registry.test"],
                },
                "logging": {"level": "WARNING"},
            }
        )
    )
    return path
