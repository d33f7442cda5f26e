"""Package registry client for PyPI-compatible JSON APIs.

A registry answers two questions: which versions of a package exist, and
what is the best wheel for a given version on this interpreter. Registries
are consulted in priority order by
:class:`yufanbot.plugins.dependencies.DependencyResolver`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from packaging.tags import Tag, sys_tags
from packaging.utils import InvalidWheelFilename, canonicalize_name, parse_wheel_filename
from packaging.version import InvalidVersion, Version

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://pypi.org"


class RegistryError(Exception):
    """A registry could not be reached or returned an unusable answer."""


@dataclass
class RegistryPackage:
    """A wheel fetched from a registry."""

    name: str
    version: str
    filename: str
    content: bytes


class PackageRegistry:
    """Client for one registry source.

    Args:
        base_url: Registry root, e.g. ``https://pypi.org``
        client: Shared async HTTP client; one is created if omitted
        timeout: Request timeout in seconds when creating the client
    """

    def __init__(
        self,
        base_url: str = DEFAULT_REGISTRY,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def list_versions(self, name: str) -> list[str]:
        """List published versions of ``name``; empty if the package is unknown.

        Versions without downloadable files, or with non-PEP 440 strings, are skipped.

        Raises:
            RegistryError: On network failure or a non-404 error status
        """
        data = await self._get_json(f"{self.base_url}/pypi/{canonicalize_name(name)}/json")
        if data is None:
            return []

        versions = []
        for raw, files in data.get("releases", {}).items():
            if not any(not f.get("yanked", False) for f in files or []):
                continue
            try:
                Version(raw)
            except InvalidVersion:
                logger.debug("Skipping unparsable version %r of %s", raw, name)
                continue
            versions.append(raw)
        return versions

    async def fetch(self, name: str, version: str) -> RegistryPackage | None:
        """Download the best-matching wheel for ``name`` at ``version``.

        Returns:
            The wheel, or None if this registry has no usable wheel

        Raises:
            RegistryError: On network failure or a non-404 error status
        """
        url = f"{self.base_url}/pypi/{canonicalize_name(name)}/{version}/json"
        data = await self._get_json(url)
        if data is None:
            return None

        release_file = select_wheel(data.get("urls", []))
        if release_file is None:
            logger.debug("No compatible wheel for %s %s at %s", name, version, self.base_url)
            return None

        try:
            response = await self._client.get(release_file["url"])
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise RegistryError(f"Failed to download {release_file['filename']}: {e}") from e

        return RegistryPackage(
            name=name,
            version=version,
            filename=release_file["filename"],
            content=response.content,
        )

    async def _get_json(self, url: str) -> dict[str, Any] | None:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise RegistryError(f"Request to {url} failed: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise RegistryError(f"{url} returned HTTP {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise RegistryError(f"{url} returned invalid JSON") from e

    async def close(self) -> None:
        """Close the HTTP client if this registry created it."""
        if self._owns_client:
            await self._client.aclose()

    def __repr__(self) -> str:
        return f"PackageRegistry({self.base_url!r})"


def select_wheel(
    files: list[dict[str, Any]],
    supported: list[Tag] | None = None,
) -> dict[str, Any] | None:
    """Pick the release file whose tags best match the running interpreter.

    Wheels are ranked by the position of their best tag in ``supported``
    (defaults to :func:`packaging.tags.sys_tags`, most specific first).
    Wheels with no supported tag sort last and are never chosen; source
    distributions and yanked files are ignored.
    """
    if supported is None:
        supported = list(sys_tags())
    priority = {tag: index for index, tag in enumerate(supported)}
    unknown = len(priority)

    ranked = []
    for release_file in files:
        filename = release_file.get("filename", "")
        if release_file.get("yanked") or not filename.endswith(".whl"):
            continue
        try:
            _, _, _, tags = parse_wheel_filename(filename)
        except InvalidWheelFilename:
            continue
        rank = min((priority.get(tag, unknown) for tag in tags), default=unknown)
        ranked.append((rank, filename, release_file))

    ranked.sort(key=lambda item: (item[0], item[1]))
    if not ranked or ranked[0][0] == unknown:
        return None
    return ranked[0][2]
