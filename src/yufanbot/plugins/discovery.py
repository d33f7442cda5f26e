"""Entry-type discovery and instantiation for loaded plugins."""

from __future__ import annotations

import inspect
import logging
from types import ModuleType

from yufanbot.plugins.contract import Plugin
from yufanbot.plugins.errors import PluginCompileError, PluginErrorKind
from yufanbot.plugins.isolation import PluginLoadContext
from yufanbot.plugins.manifest import LoadedPlugin, PluginMetadata
from yufanbot.plugins.services import ServiceContainer

logger = logging.getLogger(__name__)


def is_entry_candidate(obj: object, module_name: str) -> bool:
    """A class defined in ``module_name`` that implements the plugin contract."""
    return (
        inspect.isclass(obj)
        and obj.__module__ == module_name
        and issubclass(obj, Plugin)
        and obj is not Plugin
    )


def entry_modules(context: PluginLoadContext, entry: ModuleType) -> list[ModuleType]:
    """Load and return every module of the entry package.

    Submodules the entry does not import itself are loaded here so that the
    scan covers the whole build artifact.
    """
    prefix = entry.__name__ + "."
    for name in sorted(context.private_names):
        if name.startswith(prefix):
            context.load_module(name)
    return [entry] + [
        module for name, module in sorted(context.modules.items()) if name.startswith(prefix)
    ]


def find_entry_type(context: PluginLoadContext, entry: ModuleType) -> type[Plugin]:
    """Return the single type in the artifact that implements :class:`Plugin`.

    Raises:
        PluginCompileError: ``NO_ENTRY_POINT`` when there is none,
            ``AMBIGUOUS_ENTRY_POINT`` when there is more than one
    """
    candidates: list[type[Plugin]] = []
    for module in entry_modules(context, entry):
        for obj in vars(module).values():
            if is_entry_candidate(obj, module.__name__) and obj not in candidates:
                candidates.append(obj)

    if not candidates:
        raise PluginCompileError(
            PluginErrorKind.NO_ENTRY_POINT,
            f"Plugin {context.name} doesn't have an entry (a class that implements Plugin)",
        )
    if len(candidates) > 1:
        names = ", ".join(f"{c.__module__}.{c.__qualname__}" for c in candidates)
        raise PluginCompileError(
            PluginErrorKind.AMBIGUOUS_ENTRY_POINT,
            f"Found more than one entry in plugin {context.name}: {names}",
        )
    return candidates[0]


def instantiate(
    entry_type: type[Plugin],
    metadata: PluginMetadata,
    services: ServiceContainer,
    context: PluginLoadContext | None = None,
) -> LoadedPlugin:
    """Construct the entry type with injected services.

    Raises:
        PluginCompileError: ``INSTANTIATION_FAILED`` wrapping whatever the
            constructor (or service resolution) raised
    """
    try:
        instance = services.create_instance(entry_type)
    except (Exception, SystemExit) as e:
        raise PluginCompileError(
            PluginErrorKind.INSTANTIATION_FAILED,
            f"Failed when initializing plugin {metadata.id} entry {entry_type.__qualname__}: {e}",
        ) from e

    return LoadedPlugin(entry=instance, metadata=metadata, context=context)
