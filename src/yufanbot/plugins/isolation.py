"""Isolated, unloadable load contexts for compiled plugins.

Each plugin gets its own :class:`PluginLoadContext`. Modules executed inside a
context import through a closed resolver instead of ``sys.path``:

1. **shared** - names on the allow-list (and their parent packages) resolve
   to the host's already-imported module, so contract types keep a single
   identity. If the host has not imported the module, the import fails.
2. **private** - modules captured from the plugin's build output are executed
   from their in-memory source into this context only. A plugin package named
   like a standard-library module shadows it inside the context.
3. **runtime** - standard-library modules resolve to the interpreter's copy.
4. anything else is unresolved and raises :class:`ModuleNotFoundError`.

Private modules are never registered in ``sys.modules``, so two plugins can
bundle the same library at different versions. Isolation is about name and
version collisions, not security: plugin code can still reach the host
through ``importlib`` or ``sys``.
"""

from __future__ import annotations

import builtins
import importlib
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import sys
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from types import ModuleType
from typing import Any

logger = logging.getLogger(__name__)

SHARED_MODULES = frozenset(
    {
        "yufanbot.plugins.contract",
        "yufanbot.plugins.services",
    }
)

_RUNTIME_MODULES = frozenset(sys.stdlib_module_names) | frozenset(sys.builtin_module_names)
_NATIVE_SUFFIXES = tuple(importlib.machinery.EXTENSION_SUFFIXES)


class LoadContextState(StrEnum):
    """Lifecycle of a load context."""

    CREATED = "created"
    RESOLVING = "resolving"
    LOADED = "loaded"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class PrivateModule:
    """Source captured from the build output."""

    name: str
    origin: str
    source: bytes
    is_package: bool


class _PrivateLoader(importlib.abc.InspectLoader):
    """Executes captured source into modules owned by one context."""

    def __init__(self, context: PluginLoadContext, module: PrivateModule) -> None:
        self._context = context
        self._module = module

    def is_package(self, fullname: str) -> bool:
        return self._module.is_package

    def get_source(self, fullname: str) -> str:
        return importlib.util.decode_source(self._module.source)

    def create_module(self, spec: importlib.machinery.ModuleSpec) -> ModuleType | None:
        return None

    def exec_module(self, module: ModuleType) -> None:
        module.__dict__["__builtins__"] = self._context.builtins
        code = compile(self._module.source, self._module.origin, "exec", dont_inherit=True)
        exec(code, module.__dict__)


class PluginLoadContext:
    """A disposable module namespace for one plugin.

    Args:
        root: Build output directory to capture private modules from
        entry_name: Import name of the entry module; it is loaded through
            :meth:`load_entry` and excluded from the captured table
        shared_modules: Allow-list of host modules shared by identity
        name: Label used in diagnostics and module origins
    """

    def __init__(
        self,
        root: str | Path,
        entry_name: str,
        shared_modules: Iterable[str] = SHARED_MODULES,
        name: str | None = None,
    ) -> None:
        self.root = Path(root)
        self.entry_name = entry_name
        self.name = name or entry_name
        self.shared_modules = frozenset(shared_modules)
        self.state = LoadContextState.CREATED
        self.builtins: dict[str, Any] = dict(vars(builtins))
        self.builtins["__import__"] = self._import_hook
        self._modules: dict[str, ModuleType] = {}
        self._lock = threading.RLock()
        self._private = self._capture()

    def _capture(self) -> dict[str, PrivateModule]:
        private: dict[str, PrivateModule] = {}
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(self.root)
            if any(_is_metadata_dir(part) for part in relative.parts):
                continue
            if path.name.endswith(_NATIVE_SUFFIXES):
                logger.warning(
                    "Plugin %s: native module %s cannot be loaded in isolation", self.name, relative
                )
                continue
            if path.suffix != ".py":
                continue

            is_package = path.name == "__init__.py"
            parts = relative.parent.parts if is_package else (*relative.parent.parts, path.stem)
            if not parts or not all(part.isidentifier() for part in parts):
                continue
            module_name = ".".join(parts)
            if module_name == self.entry_name or self._is_shared(module_name):
                continue

            private[module_name] = PrivateModule(
                name=module_name,
                origin=f"<{self.name}>/{relative.as_posix()}",
                source=path.read_bytes(),
                is_package=is_package,
            )
        return private

    @property
    def private_names(self) -> frozenset[str]:
        """Names of captured private modules."""
        return frozenset(self._private)

    @property
    def modules(self) -> dict[str, ModuleType]:
        """Private modules loaded so far, by name."""
        return dict(self._modules)

    def load_entry(self, path: str | Path) -> ModuleType:
        """Read the entry file and execute it as this context's entry module.

        Raises:
            RuntimeError: If the context has been disposed
            ModuleNotFoundError: If the entry imports something unresolvable
            Exception: Whatever the entry module raises while executing
        """
        path = Path(path)
        relative = path.relative_to(self.root) if path.is_relative_to(self.root) else Path(path.name)
        entry = PrivateModule(
            name=self.entry_name,
            origin=f"<{self.name}>/{relative.as_posix()}",
            source=path.read_bytes(),
            is_package=path.name == "__init__.py",
        )
        with self._lock:
            self._ensure_alive()
            self.state = LoadContextState.RESOLVING
            try:
                module = self._import(self.entry_name, entry)
            except BaseException:
                self.state = LoadContextState.CREATED
                raise
            self.state = LoadContextState.LOADED
        return module

    def load_module(self, name: str) -> ModuleType:
        """Resolve ``name`` the way code inside the context would."""
        with self._lock:
            self._ensure_alive()
            return self._import(name)

    def unload(self) -> None:
        """Dispose the context. Its private modules become collectable."""
        with self._lock:
            if self.state is LoadContextState.DISPOSED:
                return
            self._modules.clear()
            self._private = {}
            self.state = LoadContextState.DISPOSED
        logger.debug("Unloaded load context %s", self.name)

    def _ensure_alive(self) -> None:
        if self.state is LoadContextState.DISPOSED:
            raise RuntimeError(f"Load context {self.name} has been unloaded")

    def _is_shared(self, name: str) -> bool:
        if name in self.shared_modules:
            return True
        prefix = name + "."
        return any(shared.startswith(prefix) for shared in self.shared_modules)

    def _import(self, name: str, source: PrivateModule | None = None) -> ModuleType:
        module = self._modules.get(name)
        if module is not None:
            return module

        parent_name, _, child = name.rpartition(".")
        parent = self._import(parent_name) if parent_name else None

        module = self._resolve(name, source)
        if parent is not None and parent_name in self._modules and name in self._modules:
            setattr(parent, child, module)
        return module

    def _resolve(self, name: str, source: PrivateModule | None) -> ModuleType:
        if source is None and self._is_shared(name):
            shared = sys.modules.get(name)
            if shared is None:
                raise ModuleNotFoundError(
                    f"Shared module {name!r} is not loaded by the host", name=name
                )
            return shared

        if source is None:
            source = self._private.get(name)
        if source is not None:
            return self._execute(source)
        if self._is_private_package(name):
            return self._namespace(name)

        if name.partition(".")[0] in _RUNTIME_MODULES and not self._is_private_root(name):
            return importlib.import_module(name)

        raise ModuleNotFoundError(
            f"No module named {name!r} in load context {self.name}", name=name
        )

    def _is_private_package(self, name: str) -> bool:
        prefix = name + "."
        return any(p.startswith(prefix) for p in self._private)

    def _is_private_root(self, name: str) -> bool:
        # Top-level name owned by the plugin; it shadows the stdlib module
        root = name.partition(".")[0]
        return root == self.entry_name or root in self._private or self._is_private_package(root)

    def _namespace(self, name: str) -> ModuleType:
        # Directory without __init__.py that holds captured modules
        module = ModuleType(name)
        module.__path__ = []
        module.__package__ = name
        self._modules[name] = module
        return module

    def _execute(self, source: PrivateModule) -> ModuleType:
        loader = _PrivateLoader(self, source)
        spec = importlib.util.spec_from_loader(source.name, loader, origin=source.origin)
        module = importlib.util.module_from_spec(spec)
        if source.is_package:
            module.__path__ = []
        self._modules[source.name] = module
        try:
            loader.exec_module(module)
        except BaseException:
            self._modules.pop(source.name, None)
            raise
        return module

    def _import_hook(
        self,
        name: str,
        globals: dict[str, Any] | None = None,
        locals: dict[str, Any] | None = None,
        fromlist: tuple[str, ...] | list[str] | None = (),
        level: int = 0,
    ) -> ModuleType:
        with self._lock:
            self._ensure_alive()
            if level > 0:
                package = _calling_package(globals)
                name = importlib.util.resolve_name("." * level + name, package)
                if not name:
                    raise ImportError("empty module name")

            module = self._import(name)

            if not fromlist:
                if level == 0:
                    return self._import(name.partition(".")[0])
                return module

            if hasattr(module, "__path__"):
                self._handle_fromlist(module, fromlist)
            return module

    def _handle_fromlist(self, module: ModuleType, fromlist: Iterable[str]) -> None:
        for item in fromlist:
            if item == "*":
                self._handle_fromlist(module, getattr(module, "__all__", ()))
                continue
            if hasattr(module, item):
                continue
            submodule = f"{module.__name__}.{item}"
            try:
                self._import(submodule)
            except ModuleNotFoundError as e:
                if e.name != submodule:
                    raise

    def __repr__(self) -> str:
        return f"PluginLoadContext({self.name!r}, state={self.state})"


def _calling_package(globals: dict[str, Any] | None) -> str:
    if not globals:
        raise ImportError("attempted relative import with no known parent package")
    package = globals.get("__package__")
    if package is None:
        spec = globals.get("__spec__")
        package = spec.parent if spec is not None else globals["__name__"].rpartition(".")[0]
    if not package:
        raise ImportError("attempted relative import with no known parent package")
    return package


def _is_metadata_dir(part: str) -> bool:
    return part == "__pycache__" or part.endswith((".dist-info", ".egg-info", ".data"))
