"""Plugin system for yufanbot.

Third-party plugins arrive as ``.yf`` source packages. The compiler extracts
each package, resolves its declared libraries, builds it with an external
toolchain and loads it into its own isolated load context. Plugins see the
host only through the shared contract modules.
"""

from yufanbot.plugins.compiler import PluginCollection, PluginCompiler
from yufanbot.plugins.contract import PLUGIN_SUFFIX, Plugin, PluginHost
from yufanbot.plugins.errors import (
    CacheDirectoryUnavailable,
    DependencyError,
    PluginCompileError,
    PluginErrorKind,
)
from yufanbot.plugins.isolation import PluginLoadContext
from yufanbot.plugins.manifest import LoadedPlugin, PluginMetadata
from yufanbot.plugins.services import ServiceContainer

__all__ = [
    "PLUGIN_SUFFIX",
    "CacheDirectoryUnavailable",
    "DependencyError",
    "LoadedPlugin",
    "Plugin",
    "PluginCollection",
    "PluginCompileError",
    "PluginCompiler",
    "PluginErrorKind",
    "PluginHost",
    "PluginLoadContext",
    "PluginMetadata",
    "ServiceContainer",
]
