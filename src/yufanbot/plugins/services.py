"""Dependency injection for plugin entry types.

The host registers the services it offers; plugin constructors ask for them
by type annotation::

    services = ServiceContainer()
    services.register_instance(BotClient, bot)

    class EchoPlugin(Plugin):
        def __init__(self, bot: BotClient, logger: logging.Logger) -> None:
            ...

``logging.Logger`` parameters always resolve, to a logger named after the
class being constructed. This module is shared with plugins by identity.
"""

from __future__ import annotations

import inspect
import logging
import threading
import typing
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


class ResolutionError(Exception):
    """A requested service is not registered."""


class ServiceContainer:
    """Registry of host services, resolved by type.

    Thread Safety:
        Registration and resolution are thread-safe.
    """

    def __init__(self) -> None:
        self._instances: dict[type, Any] = {}
        self._factories: dict[type, Callable[[ServiceContainer], Any]] = {}
        self._lock = threading.RLock()

    def register_instance(self, service_type: type[T], instance: T) -> ServiceContainer:
        """Register a pre-created instance for ``service_type``."""
        with self._lock:
            self._factories.pop(service_type, None)
            self._instances[service_type] = instance
        return self

    def register_factory(
        self,
        service_type: type[T],
        factory: Callable[[ServiceContainer], T],
    ) -> ServiceContainer:
        """Register a factory; it is called on every resolution."""
        with self._lock:
            self._instances.pop(service_type, None)
            self._factories[service_type] = factory
        return self

    def __contains__(self, service_type: object) -> bool:
        with self._lock:
            return service_type in self._instances or service_type in self._factories

    def resolve(self, service_type: type[T]) -> T:
        """Return the service registered for ``service_type``.

        Raises:
            ResolutionError: If nothing is registered
        """
        with self._lock:
            if service_type in self._instances:
                return self._instances[service_type]
            factory = self._factories.get(service_type)
        if factory is None:
            name = getattr(service_type, "__name__", repr(service_type))
            raise ResolutionError(f"No service registered for {name}")
        return factory(self)

    def try_resolve(self, service_type: type[T]) -> T | None:
        """Like :meth:`resolve`, but returns None when nothing is registered."""
        try:
            return self.resolve(service_type)
        except ResolutionError:
            return None

    def create_instance(self, cls: type[T], **overrides: Any) -> T:
        """Construct ``cls``, filling constructor parameters from this container.

        Each parameter is supplied from ``overrides`` by name, then by its
        annotated type. Parameters with defaults may be left unresolved.

        Raises:
            ResolutionError: If a required parameter cannot be supplied
        """
        init = cls.__init__
        if init is object.__init__:
            return cls()

        signature = inspect.signature(init)
        try:
            hints = typing.get_type_hints(init)
        except Exception:
            hints = {}

        kwargs: dict[str, Any] = {}
        for index, (name, param) in enumerate(signature.parameters.items()):
            if index == 0 or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            if name in overrides:
                kwargs[name] = overrides[name]
                continue

            annotation = hints.get(name, param.annotation)
            if annotation is logging.Logger:
                kwargs[name] = logging.getLogger(f"{cls.__module__}.{cls.__qualname__}")
            elif annotation is not param.empty and annotation in self:
                kwargs[name] = self.resolve(annotation)
            elif param.default is param.empty:
                raise ResolutionError(
                    f"Cannot resolve parameter {name!r} of {cls.__qualname__}"
                )

        return cls(**kwargs)
