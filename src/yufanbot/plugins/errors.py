"""Failure taxonomy for the plugin compilation pipeline."""

from __future__ import annotations

from enum import StrEnum


class PluginErrorKind(StrEnum):
    """Pipeline stage failures."""

    NOT_A_PLUGIN = "not_a_plugin"
    EXTRACTION_FAILED = "extraction_failed"
    MANIFEST_MISSING = "manifest_missing"
    MANIFEST_INVALID = "manifest_invalid"
    DEPENDENCY_STRING_INVALID = "dependency_string_invalid"
    DEPENDENCY_VERSION_INVALID = "dependency_version_invalid"
    DEPENDENCY_NOT_FOUND = "dependency_not_found"
    NO_PROJECT_FILE = "no_project_file"
    AMBIGUOUS_PROJECT_FILE = "ambiguous_project_file"
    COMPILE_FAILED = "compile_failed"
    LOAD_FAILED = "load_failed"
    NO_ENTRY_POINT = "no_entry_point"
    AMBIGUOUS_ENTRY_POINT = "ambiguous_entry_point"
    INSTANTIATION_FAILED = "instantiation_failed"
    CACHE_DIRECTORY_UNAVAILABLE = "cache_directory_unavailable"


class PluginCompileError(Exception):
    """A single package failed somewhere in the pipeline.

    Raised by pipeline stages and recovered by
    :meth:`yufanbot.plugins.compiler.PluginCompiler.compile_plugin`, which
    logs it and reports "no plugin".
    """

    def __init__(self, kind: PluginErrorKind, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.detail = detail

    def __str__(self) -> str:
        return f"[{self.kind}] {self.args[0]}"


class DependencyError(PluginCompileError):
    """A declared dependency could not be resolved."""

    def __init__(self, kind: PluginErrorKind, dependency: str, message: str) -> None:
        super().__init__(kind, message)
        self.dependency = dependency


class CacheDirectoryUnavailable(PluginCompileError):
    """The shared cache directory cannot be created or accessed.

    Unlike every other pipeline error this one is fatal: it is raised at
    startup and aborts the host.
    """

    def __init__(self, path: str, message: str) -> None:
        super().__init__(PluginErrorKind.CACHE_DIRECTORY_UNAVAILABLE, message)
        self.path = path
