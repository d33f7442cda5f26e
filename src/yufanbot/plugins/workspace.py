"""Scratch directories for one extract-and-build cycle."""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class Workspace:
    """A uniquely named directory that is deleted exactly once.

    Use as a context manager so the directory is released on every exit
    path, including exceptions::

        with Workspace.acquire(cache_root) as workspace:
            extract_package(package, workspace.path)
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.id = path.name
        self._released = False

    @classmethod
    def acquire(cls, root: str | Path) -> Workspace:
        """Create a new empty workspace under ``root``.

        Raises:
            OSError: If the directory cannot be created
        """
        path = Path(root) / uuid.uuid4().hex
        path.mkdir(parents=True, exist_ok=False)
        logger.debug("Acquired workspace %s", path)
        return cls(path)

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Recursively delete the workspace. Later calls do nothing."""
        if self._released:
            return
        self._released = True
        try:
            shutil.rmtree(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to delete workspace %s: %s", self.path, e)
            return
        logger.debug("Released workspace %s", self.path)

    def __enter__(self) -> Workspace:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"Workspace({str(self.path)!r})"
