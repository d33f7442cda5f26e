"""Plugin compilation pipeline.

Turns ``.yf`` packages into live plugin instances:

    extract -> read metadata -> resolve dependencies -> build
    -> isolated load -> entry discovery -> instantiate

Each package compiles in its own workspace and load context, so many can run
concurrently. A failing package is logged and yields None; it never raises to
the caller.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import traceback
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import httpx

from yufanbot.plugins.builder import PluginBuilder
from yufanbot.plugins.cache import DependencyCache
from yufanbot.plugins.dependencies import DependencyResolver
from yufanbot.plugins.discovery import find_entry_type, instantiate
from yufanbot.plugins.errors import DependencyError, PluginCompileError, PluginErrorKind
from yufanbot.plugins.isolation import SHARED_MODULES, PluginLoadContext
from yufanbot.plugins.manifest import MANIFEST_NAME, LoadedPlugin
from yufanbot.plugins.package import extract_package, read_metadata, validate_suffix
from yufanbot.plugins.registry import PackageRegistry
from yufanbot.plugins.services import ServiceContainer
from yufanbot.plugins.workspace import Workspace

if TYPE_CHECKING:
    from yufanbot.config.schema import PluginsConfig

logger = logging.getLogger(__name__)


class PluginCollection:
    """Thread-safe accumulator for successfully compiled plugins."""

    def __init__(self) -> None:
        self._plugins: list[LoadedPlugin] = []
        self._lock = threading.Lock()

    def add(self, plugin: LoadedPlugin) -> None:
        with self._lock:
            self._plugins.append(plugin)

    def get(self, plugin_id: str) -> LoadedPlugin | None:
        with self._lock:
            for plugin in self._plugins:
                if plugin.metadata.id == plugin_id:
                    return plugin
        return None

    def to_list(self) -> list[LoadedPlugin]:
        with self._lock:
            return list(self._plugins)

    def __iter__(self) -> Iterator[LoadedPlugin]:
        return iter(self.to_list())

    def __len__(self) -> int:
        with self._lock:
            return len(self._plugins)


class PluginCompiler:
    """Compiles plugin packages into loaded plugins.

    Args:
        config: Plugin configuration section
        services: Container used to construct plugin entry types
        registries: Registry sources in priority order; built from
            ``config.registries`` when omitted
    """

    def __init__(
        self,
        config: PluginsConfig,
        services: ServiceContainer | None = None,
        registries: Sequence[PackageRegistry] | None = None,
    ) -> None:
        self.config = config
        self.services = services or ServiceContainer()
        self.cache = DependencyCache(Path(config.cache_dir).expanduser())
        self.builder = PluginBuilder(command=config.build_command, timeout=config.build_timeout)
        self.shared_modules = SHARED_MODULES | frozenset(config.shared_modules)
        self.max_workers = config.max_workers

        self._client: httpx.AsyncClient | None = None
        if registries is None:
            self._client = httpx.AsyncClient(
                timeout=config.registry_timeout, follow_redirects=True
            )
            registries = [PackageRegistry(url, client=self._client) for url in config.registries]
        self.resolver = DependencyResolver(registries, self.cache)
        self._shutdown = False

    def prepare(self) -> None:
        """Ready the cache directory. Must succeed before any compilation.

        Raises:
            CacheDirectoryUnavailable: If the cache directory is unusable
        """
        self.cache.prepare()

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown

    def shutdown(self) -> None:
        """Stop starting new compilations; ones already running finish."""
        self._shutdown = True

    async def aclose(self) -> None:
        self.shutdown()
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def compile_plugin(self, path: str | Path) -> LoadedPlugin | None:
        """Compile one package.

        Returns:
            The loaded plugin, or None if any stage failed (the failure is logged)
        """
        path = Path(path)
        try:
            return await self._compile(path)
        except PluginCompileError as e:
            self._report(path, e)
        except Exception:
            logger.exception("Unexpected error compiling plugin package %s", path.name)
        return None

    async def compile_all(self, paths: Iterable[str | Path]) -> PluginCollection:
        """Compile packages concurrently, at most ``max_workers`` at a time."""
        collection = PluginCollection()
        semaphore = asyncio.Semaphore(self.max_workers)

        async def run(path: str | Path) -> None:
            async with semaphore:
                if self._shutdown:
                    logger.info("Skipping %s: compiler is shutting down", Path(path).name)
                    return
                plugin = await self.compile_plugin(path)
            if plugin is not None:
                collection.add(plugin)

        await asyncio.gather(*(run(path) for path in paths))
        return collection

    async def _compile(self, path: Path) -> LoadedPlugin:
        if not path.is_file() or not validate_suffix(path):
            raise PluginCompileError(
                PluginErrorKind.NOT_A_PLUGIN, f"{path.name} is not a plugin package"
            )

        with Workspace.acquire(self.cache.root) as workspace:
            logger.debug("Compiling %s in %s", path.name, workspace.path)
            await asyncio.to_thread(extract_package, path, workspace.path)

            metadata = read_metadata(workspace.path)
            if metadata is None:
                if not (workspace.path / MANIFEST_NAME).is_file():
                    raise PluginCompileError(
                        PluginErrorKind.MANIFEST_MISSING, f"{MANIFEST_NAME} not found"
                    )
                raise PluginCompileError(
                    PluginErrorKind.MANIFEST_INVALID, f"{MANIFEST_NAME} is not valid metadata"
                )

            dependencies = []
            if metadata.dependencies:
                dependencies = await self.resolver.resolve_all(metadata.dependencies)

            artifact = await self.builder.build(workspace.path, metadata, dependencies)

            context = PluginLoadContext(
                artifact.output_dir,
                artifact.entry_name,
                shared_modules=self.shared_modules,
                name=metadata.id,
            )
            try:
                try:
                    module = context.load_entry(artifact.entry_path)
                    entry_type = find_entry_type(context, module)
                except PluginCompileError:
                    raise
                except (Exception, SystemExit) as e:
                    raise PluginCompileError(
                        PluginErrorKind.LOAD_FAILED,
                        f"Failed to load plugin {metadata.id}: {type(e).__name__}: {e}",
                        detail="".join(traceback.format_exception(e)),
                    ) from e
                plugin = instantiate(entry_type, metadata, self.services, context)
            except BaseException:
                context.unload()
                raise

        logger.info("Compiled plugin %s %s", metadata.display_name, metadata.version)
        return plugin

    def _report(self, path: Path, error: PluginCompileError) -> None:
        if isinstance(error, DependencyError):
            logger.error(
                "Failed to compile %s: dependency %r: %s", path.name, error.dependency, error
            )
        else:
            logger.error("Failed to compile %s: %s", path.name, error)
        if error.detail:
            logger.error("Details for %s:\n%s", path.name, error.detail)
