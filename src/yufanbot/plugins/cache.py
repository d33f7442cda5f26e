"""On-disk plugin cache: workspace root and the shared dependency store."""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from collections.abc import Callable
from pathlib import Path

from packaging.utils import canonicalize_name

from yufanbot.plugins.errors import CacheDirectoryUnavailable

logger = logging.getLogger(__name__)

PACKAGES_DIR = "packages"


class DependencyCache:
    """Dependency folders keyed by ``(name, version)``.

    Content for a given name and version is immutable once published, so an
    entry is created once and reused afterwards. Concurrent first use is
    safe: each writer fills a private temporary folder and renames it into
    place; a writer that loses the race discards its copy.

    Layout::

        <root>/
            <uuid>/                 workspaces (transient)
            packages/<name>/<ver>/  extracted dependencies (persistent)
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.packages_root = self.root / PACKAGES_DIR

    def prepare(self) -> None:
        """Create the cache directory and clear stale top-level entries.

        Top-level files and leftover workspaces from an interrupted run are
        deleted; dependency folders persist.

        Raises:
            CacheDirectoryUnavailable: If the directory cannot be created or accessed
        """
        try:
            self.packages_root.mkdir(parents=True, exist_ok=True)
            entries = list(self.root.iterdir())
        except OSError as e:
            logger.critical("Cannot create plugin cache directory %s: %s", self.root, e)
            raise CacheDirectoryUnavailable(str(self.root), f"Cannot use {self.root}: {e}") from e

        for entry in entries:
            try:
                if entry.is_file() or entry.is_symlink():
                    entry.unlink()
                elif entry.is_dir() and _is_workspace_name(entry.name):
                    shutil.rmtree(entry)
            except OSError as e:
                logger.warning(
                    "Exception when trying to delete %s in compiler cache: %s", entry.name, e
                )

    def path_for(self, name: str, version: str) -> Path:
        return self.packages_root / canonicalize_name(name) / version

    def get(self, name: str, version: str) -> Path | None:
        """Return the cached folder for ``(name, version)`` if present."""
        path = self.path_for(name, version)
        return path if path.is_dir() else None

    def get_or_create(self, name: str, version: str, populate: Callable[[Path], None]) -> Path:
        """Return the folder for ``(name, version)``, creating it with ``populate`` if absent.

        ``populate`` receives an empty temporary folder to fill. It only runs
        when no entry exists yet.
        """
        existing = self.get(name, version)
        if existing is not None:
            return existing

        final = self.path_for(name, version)
        final.parent.mkdir(parents=True, exist_ok=True)
        staging = final.parent / f".{version}.{uuid.uuid4().hex}.tmp"
        staging.mkdir()
        try:
            populate(staging)
            try:
                os.rename(staging, final)
            except OSError:
                if not final.is_dir():
                    raise
                logger.debug("Cache entry %s/%s created concurrently, reusing it", name, version)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)
        return final


def _is_workspace_name(name: str) -> bool:
    try:
        return uuid.UUID(hex=name).hex == name
    except ValueError:
        return False
