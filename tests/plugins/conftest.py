"""Shared fixtures for plugin pipeline tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from plugin_helpers import REGISTRY_URL, TOOLCHAIN, zip_bytes

from yufanbot.config.schema import PluginsConfig


@pytest.fixture
def make_package(tmp_path: Path) -> Callable[..., Path]:
    """Write a ``.yf`` archive from a mapping of archive names to contents."""
    packages = tmp_path / "packages"
    packages.mkdir()

    def _make(files: dict[str, str | bytes], name: str = "plugin.yf") -> Path:
        path = packages / name
        path.write_bytes(zip_bytes(files))
        return path

    return _make


@pytest.fixture
def toolchain_command() -> list[str]:
    return ["{python}", str(TOOLCHAIN), "{project_dir}", "{output}"]


@pytest.fixture
def plugins_config(tmp_path: Path, toolchain_command: list[str]) -> PluginsConfig:
    return PluginsConfig(
        directory=str(tmp_path / "plugins"),
        cache_dir=str(tmp_path / "cache"),
        registries=[REGISTRY_URL],
        build_command=toolchain_command,
        build_timeout=60,
        max_workers=2,
    )
