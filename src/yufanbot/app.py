"""Host application: loads plugin packages and drives their lifecycle."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from yufanbot.config.schema import YufanConfig
from yufanbot.plugins.compiler import PluginCompiler
from yufanbot.plugins.contract import PluginHost
from yufanbot.plugins.manifest import LoadedPlugin
from yufanbot.plugins.package import validate_suffix
from yufanbot.plugins.services import ServiceContainer

logger = logging.getLogger(__name__)


class Application:
    """The bot host. Implements :class:`PluginHost` for its plugins.

    Lifecycle: :meth:`load_plugins` compiles every package in the plugin
    directory, :meth:`start` initializes them, and :meth:`shutdown` unloads
    them. :meth:`run` does all three around a wait for :meth:`stop`.

    Args:
        config: Root configuration
        services: Services offered to plugin constructors. The application
            registers itself as :class:`PluginHost`.
        compiler: Plugin compiler; built from ``config.plugins`` when omitted
    """

    def __init__(
        self,
        config: YufanConfig,
        services: ServiceContainer | None = None,
        compiler: PluginCompiler | None = None,
    ) -> None:
        self.config = config
        self._services = services or ServiceContainer()
        self._services.register_instance(PluginHost, self)
        self._services.register_instance(Application, self)
        self.compiler = compiler or PluginCompiler(config.plugins, services=self._services)
        self.plugins: list[LoadedPlugin] = []
        self._stop_event = asyncio.Event()

    @property
    def services(self) -> ServiceContainer:
        return self._services

    @property
    def plugin_directory(self) -> Path:
        return Path(self.config.plugins.directory).expanduser()

    def find_packages(self) -> list[Path]:
        """Plugin packages in the plugin directory, created if missing."""
        directory = self.plugin_directory
        directory.mkdir(parents=True, exist_ok=True)
        return sorted(path for path in directory.iterdir() if path.is_file() and validate_suffix(path))

    async def load_plugins(self) -> list[LoadedPlugin]:
        """Compile every package in the plugin directory.

        Raises:
            CacheDirectoryUnavailable: If the plugin cache cannot be prepared
        """
        self.compiler.prepare()
        packages = self.find_packages()
        logger.info("Found %d plugin packages in %s", len(packages), self.plugin_directory)

        collection = await self.compiler.compile_all(packages)
        self.plugins = sorted(collection, key=lambda p: p.metadata.id)

        logger.info("%d of %d plugin packages loaded", len(self.plugins), len(packages))
        for plugin in self.plugins:
            logger.info("  %s %s", plugin.metadata.display_name, plugin.metadata.version)
        return self.plugins

    async def start(self) -> None:
        """Initialize loaded plugins; a plugin that fails is logged and skipped."""
        for plugin in self.plugins:
            try:
                plugin.entry.on_initialize(self)
                await plugin.entry.on_initialize_async(self)
            except (Exception, SystemExit):
                logger.exception("Plugin %s failed to initialize", plugin.metadata.id)

    async def run(self) -> None:
        """Load and start plugins, then wait until :meth:`stop` is called."""
        try:
            await self.load_plugins()
            await self.start()
            logger.info("yufanbot is running")
            await self._stop_event.wait()
        finally:
            await self.shutdown()

    def stop(self) -> None:
        self._stop_event.set()

    async def shutdown(self) -> None:
        """Unload every plugin and release the compiler's resources."""
        self.compiler.shutdown()
        for plugin in self.plugins:
            plugin.unload()
        if self.plugins:
            logger.info("Unloaded %d plugins", len(self.plugins))
        self.plugins = []
        await self.compiler.aclose()
