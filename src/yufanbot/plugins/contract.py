"""Host contract shared with every plugin.

This module is on the load-context allow-list: plugins see the host's own copy
of it, so ``Plugin`` has a single identity on both sides of the boundary.

A plugin package defines exactly one subclass of :class:`Plugin`::

    import logging

    from yufanbot.plugins.contract import Plugin, PluginHost


    class HelloPlugin(Plugin):
        def __init__(self, logger: logging.Logger) -> None:
            self._logger = logger

        def on_initialize(self, host: PluginHost) -> None:
            self._logger.info("Hello, world!")
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from yufanbot.plugins.services import ServiceContainer

PLUGIN_SUFFIX = ".yf"


@runtime_checkable
class PluginHost(Protocol):
    """What the host hands to a plugin during initialization."""

    @property
    def services(self) -> ServiceContainer: ...


class Plugin(ABC):
    """Entry type every plugin package must implement exactly once."""

    @abstractmethod
    def on_initialize(self, host: PluginHost) -> None:
        """Called synchronously once the host has loaded every plugin."""

    async def on_initialize_async(self, host: PluginHost) -> None:
        """Optional asynchronous hook, awaited after :meth:`on_initialize`."""
        return None
