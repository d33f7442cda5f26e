"""Dependency string parsing and resolution against package registries."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from packaging.version import InvalidVersion, Version

from yufanbot.plugins.cache import DependencyCache
from yufanbot.plugins.errors import DependencyError, PluginCompileError, PluginErrorKind
from yufanbot.plugins.package import extract_bytes
from yufanbot.plugins.registry import PackageRegistry, RegistryError, RegistryPackage

logger = logging.getLogger(__name__)

LATEST = "latest"


@dataclass(frozen=True)
class DependencySpec:
    """A parsed ``name[:version]`` dependency string."""

    name: str
    version: str = LATEST

    @property
    def is_latest(self) -> bool:
        return self.version == LATEST

    def __str__(self) -> str:
        return f"{self.name}:{self.version}"


@dataclass
class ResolvedDependency:
    """Files extracted from a fetched dependency, ready to ship with a build."""

    name: str
    version: str
    root: Path
    files: list[Path] = field(default_factory=list)


def parse_dependency_string(value: str) -> DependencySpec | None:
    """Parse ``<name>`` or ``<name>:<version>``.

    Both parts are trimmed. A bare name means the latest version. Returns
    None for a blank string, a blank part, or more than one colon.

    >>> parse_dependency_string(" Pkg : 1.0.0 ")
    DependencySpec(name='Pkg', version='1.0.0')
    >>> parse_dependency_string("a")
    DependencySpec(name='a', version='latest')
    """
    if not value or not value.strip():
        return None

    parts = value.split(":")
    if len(parts) == 1:
        return DependencySpec(parts[0].strip(), LATEST)
    if len(parts) != 2:
        return None

    name, version = parts[0].strip(), parts[1].strip()
    if not name or not version:
        return None
    return DependencySpec(name, version)


class DependencyResolver:
    """Resolves dependency specs against registries in priority order.

    Args:
        registries: Registry sources, highest priority first
        cache: Shared on-disk dependency store
    """

    def __init__(self, registries: Sequence[PackageRegistry], cache: DependencyCache) -> None:
        self.registries = list(registries)
        self.cache = cache

    async def resolve_all(self, dependencies: Iterable[str]) -> list[ResolvedDependency]:
        """Resolve every dependency string; the first failure aborts.

        Raises:
            DependencyError: Naming the offending dependency string and kind
        """
        resolved = []
        for dependency in dependencies:
            spec = parse_dependency_string(dependency)
            if spec is None:
                raise DependencyError(
                    PluginErrorKind.DEPENDENCY_STRING_INVALID,
                    dependency,
                    f"Invalid dependency string {dependency!r}",
                )
            try:
                resolved.append(await self.resolve(spec))
            except DependencyError as e:
                e.dependency = dependency
                raise
        return resolved

    async def resolve(self, spec: DependencySpec) -> ResolvedDependency:
        """Resolve one dependency to extracted files.

        Raises:
            DependencyError: ``DEPENDENCY_VERSION_INVALID`` if an explicit
                version is not a valid version string (no network access
                happens); ``DEPENDENCY_NOT_FOUND`` once every registry
                has been tried
        """
        if spec.is_latest:
            version = await self._latest_version(spec.name)
            if version is None:
                raise DependencyError(
                    PluginErrorKind.DEPENDENCY_NOT_FOUND,
                    str(spec),
                    f"No registry lists any version of {spec.name}",
                )
        else:
            try:
                Version(spec.version)
            except InvalidVersion as e:
                raise DependencyError(
                    PluginErrorKind.DEPENDENCY_VERSION_INVALID,
                    str(spec),
                    f"Invalid version {spec.version!r} for {spec.name}",
                ) from e
            version = spec.version

        cached = self.cache.get(spec.name, version)
        if cached is not None:
            logger.debug("Using cached %s %s", spec.name, version)
            return _collect(spec.name, version, cached)

        for registry in self.registries:
            try:
                package = await registry.fetch(spec.name, version)
            except RegistryError as e:
                logger.warning("Registry %s failed for %s %s: %s", registry.base_url, spec.name, version, e)
                continue
            if package is None:
                continue

            try:
                folder = await asyncio.to_thread(self._store, package)
            except (PluginCompileError, OSError) as e:
                logger.warning("Discarding unusable %s from %s: %s", package.filename, registry.base_url, e)
                continue
            logger.info("Resolved %s %s from %s", spec.name, version, registry.base_url)
            return _collect(spec.name, version, folder)

        raise DependencyError(
            PluginErrorKind.DEPENDENCY_NOT_FOUND,
            str(spec),
            f"{spec.name} {version} not found in any registry",
        )

    async def _latest_version(self, name: str) -> str | None:
        for registry in self.registries:
            try:
                versions = await registry.list_versions(name)
            except RegistryError as e:
                logger.warning("Registry %s failed listing %s: %s", registry.base_url, name, e)
                continue
            if versions:
                return max(versions, key=Version)
        return None

    def _store(self, package: RegistryPackage) -> Path:
        return self.cache.get_or_create(
            package.name,
            package.version,
            lambda staging: extract_bytes(package.content, staging, package.filename),
        )


def _collect(name: str, version: str, root: Path) -> ResolvedDependency:
    files = [
        path
        for path in sorted(root.rglob("*"))
        if path.is_file() and not any(part.endswith(".dist-info") for part in path.relative_to(root).parts)
    ]
    return ResolvedDependency(name=name, version=version, root=root, files=files)
