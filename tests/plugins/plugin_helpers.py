"""Builders for plugin packages, wheels and registry responses used in tests."""

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path
from typing import Any

TOOLCHAIN = Path(__file__).parent / "fake_toolchain.py"
REGISTRY_URL = "https://registry.test"
FILES_URL = "https://files.test"

HELLO_SOURCE = '''\
import logging

from yufanbot.plugins.contract import Plugin


class HelloPlugin(Plugin):
    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self.initialized = False

    def on_initialize(self, host):
        self.initialized = True
        self.logger.info("Hello, world!")
'''


def zip_bytes(files: dict[str, str | bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


def plugin_files(
    plugin_id: str | None = "hello",
    project: str | None = "hello",
    sources: dict[str, str] | None = None,
    dependencies: list[str] | None = None,
    meta: dict[str, Any] | str | None = None,
) -> dict[str, str]:
    """Files of a plugin package: META_INF, pyproject.toml and sources."""
    files: dict[str, str] = {}
    if meta is None and plugin_id is not None:
        meta = {
            "id": plugin_id,
            "name": plugin_id.title(),
            "description": f"{plugin_id} plugin",
            "version": "1.0.0",
            "authors": ["mcdaxia"],
            "dependencies": dependencies or [],
        }
    if meta is not None:
        files["META_INF"] = meta if isinstance(meta, str) else json.dumps(meta)
    if project is not None:
        files["pyproject.toml"] = f'[project]\nname = "{project}"\nversion = "1.0.0"\n'
    if sources is None:
        sources = {f"{project}/__init__.py": HELLO_SOURCE}
    files.update(sources)
    return files


def wheel_files(name: str, version: str, body: str) -> dict[str, str]:
    dist_info = f"{name}-{version}.dist-info"
    return {
        f"{name}/__init__.py": body,
        f"{dist_info}/METADATA": f"Metadata-Version: 2.1\nName: {name}\nVersion: {version}\n",
        f"{dist_info}/WHEEL": "Wheel-Version: 1.0\nTag: py3-none-any\n",
    }


def release_json(name: str, version: str, filename: str | None = None) -> dict[str, Any]:
    filename = filename or f"{name}-{version}-py3-none-any.whl"
    return {
        "info": {"name": name, "version": version},
        "urls": [
            {
                "filename": filename,
                "url": f"{FILES_URL}/{filename}",
                "yanked": False,
            }
        ],
    }


def project_json(name: str, versions: list[str]) -> dict[str, Any]:
    return {
        "info": {"name": name, "version": versions[-1] if versions else ""},
        "releases": {
            version: release_json(name, version)["urls"] for version in versions
        },
    }


