"""Tests for entry discovery and instantiation."""

from pathlib import Path

import pytest

from yufanbot.plugins.contract import Plugin
from yufanbot.plugins.discovery import find_entry_type, instantiate
from yufanbot.plugins.errors import PluginCompileError, PluginErrorKind
from yufanbot.plugins.isolation import PluginLoadContext
from yufanbot.plugins.manifest import PluginMetadata
from yufanbot.plugins.services import ServiceContainer

PLUGIN_CLASS = '''\
from yufanbot.plugins.contract import Plugin


class {name}(Plugin):
    def on_initialize(self, host):
        pass
'''


def load(root: Path, files: dict[str, str]):
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    context = PluginLoadContext(root, "plugin")
    return context, context.load_entry(root / "plugin" / "__init__.py")


def test_finds_single_entry(tmp_path: Path):
    context, module = load(tmp_path, {"plugin/__init__.py": PLUGIN_CLASS.format(name="Hello")})

    entry_type = find_entry_type(context, module)

    assert entry_type.__name__ == "Hello"
    assert issubclass(entry_type, Plugin)


def test_finds_entry_in_submodule_not_imported_by_package(tmp_path: Path):
    context, module = load(
        tmp_path,
        {
            "plugin/__init__.py": "",
            "plugin/entry.py": PLUGIN_CLASS.format(name="Hidden"),
        },
    )

    assert find_entry_type(context, module).__name__ == "Hidden"


def test_reexported_entry_counts_once(tmp_path: Path):
    context, module = load(
        tmp_path,
        {
            "plugin/__init__.py": "from .entry import Hello\n",
            "plugin/entry.py": PLUGIN_CLASS.format(name="Hello"),
        },
    )

    assert find_entry_type(context, module).__name__ == "Hello"


def test_bundled_libraries_are_not_scanned(tmp_path: Path):
    context, module = load(
        tmp_path,
        {
            "plugin/__init__.py": PLUGIN_CLASS.format(name="Mine"),
            "thirdparty/__init__.py": PLUGIN_CLASS.format(name="Theirs"),
        },
    )

    assert find_entry_type(context, module).__name__ == "Mine"


def test_no_entry(tmp_path: Path):
    context, module = load(tmp_path, {"plugin/__init__.py": "class NotAPlugin:\n    pass\n"})

    with pytest.raises(PluginCompileError) as exc_info:
        find_entry_type(context, module)
    assert exc_info.value.kind == PluginErrorKind.NO_ENTRY_POINT


def test_abstract_base_import_is_not_an_entry(tmp_path: Path):
    context, module = load(
        tmp_path, {"plugin/__init__.py": "from yufanbot.plugins.contract import Plugin\n"}
    )

    with pytest.raises(PluginCompileError) as exc_info:
        find_entry_type(context, module)
    assert exc_info.value.kind == PluginErrorKind.NO_ENTRY_POINT


def test_ambiguous_entries(tmp_path: Path):
    source = PLUGIN_CLASS.format(name="First") + "\n\n" + PLUGIN_CLASS.format(name="Second")
    context, module = load(tmp_path, {"plugin/__init__.py": source})

    with pytest.raises(PluginCompileError) as exc_info:
        find_entry_type(context, module)
    assert exc_info.value.kind == PluginErrorKind.AMBIGUOUS_ENTRY_POINT
    assert "First" in str(exc_info.value)
    assert "Second" in str(exc_info.value)


def test_instantiate_with_injected_logger(tmp_path: Path):
    source = '''\
import logging

from yufanbot.plugins.contract import Plugin


class Hello(Plugin):
    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger

    def on_initialize(self, host):
        pass
'''
    context, module = load(tmp_path, {"plugin/__init__.py": source})
    metadata = PluginMetadata(id="hello")

    loaded = instantiate(find_entry_type(context, module), metadata, ServiceContainer(), context)

    assert loaded.metadata is metadata
    assert loaded.context is context
    assert loaded.entry.logger.name == "plugin.Hello"


def test_instantiate_failure(tmp_path: Path):
    source = PLUGIN_CLASS.format(name="Broken") + (
        "\n    def __init__(self):\n        raise RuntimeError('nope')\n"
    )
    context, module = load(tmp_path, {"plugin/__init__.py": source})

    with pytest.raises(PluginCompileError) as exc_info:
        instantiate(find_entry_type(context, module), PluginMetadata(id="x"), ServiceContainer())
    assert exc_info.value.kind == PluginErrorKind.INSTANTIATION_FAILED


def test_instantiate_missing_service(tmp_path: Path):
    source = PLUGIN_CLASS.format(name="Needy") + (
        "\n    def __init__(self, client: dict):\n        self.client = client\n"
    )
    context, module = load(tmp_path, {"plugin/__init__.py": source})

    with pytest.raises(PluginCompileError) as exc_info:
        instantiate(find_entry_type(context, module), PluginMetadata(id="x"), ServiceContainer())
    assert exc_info.value.kind == PluginErrorKind.INSTANTIATION_FAILED


def test_instantiate_constructor_calling_exit(tmp_path: Path):
    source = "import sys\n\n" + PLUGIN_CLASS.format(name="Quitter") + (
        "\n    def __init__(self):\n        sys.exit(2)\n"
    )
    context, module = load(tmp_path, {"plugin/__init__.py": source})

    with pytest.raises(PluginCompileError) as exc_info:
        instantiate(find_entry_type(context, module), PluginMetadata(id="x"), ServiceContainer())
    assert exc_info.value.kind == PluginErrorKind.INSTANTIATION_FAILED
    assert isinstance(exc_info.value.__cause__, SystemExit)
