"""Plugin package intake: suffix check, archive extraction, manifest reading."""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path

from pydantic import ValidationError

from yufanbot.plugins.contract import PLUGIN_SUFFIX
from yufanbot.plugins.errors import PluginCompileError, PluginErrorKind
from yufanbot.plugins.manifest import MANIFEST_NAME, PluginMetadata

logger = logging.getLogger(__name__)

_MAX_ZIP_ENTRIES = 10_000
_MAX_SINGLE_FILE_BYTES = 64 * 1024 * 1024
_MAX_TOTAL_UNCOMPRESSED_BYTES = 512 * 1024 * 1024


def validate_suffix(path: str | Path) -> bool:
    """Return True if the file name ends with the plugin suffix (case-sensitive)."""
    return Path(path).name.endswith(PLUGIN_SUFFIX)


def extract_package(path: str | Path, destination: str | Path) -> None:
    """Unpack a plugin package into ``destination``.

    Raises:
        PluginCompileError: ``EXTRACTION_FAILED`` for corrupt or non-zip
            archives, oversized archives, or members escaping ``destination``
    """
    _extract(path, destination, f"plugin at {path}")


def extract_bytes(data: bytes, destination: str | Path, label: str = "archive") -> None:
    """Unpack an in-memory zip archive (e.g. a downloaded wheel).

    Raises:
        PluginCompileError: ``EXTRACTION_FAILED``, as for :func:`extract_package`
    """
    _extract(io.BytesIO(data), destination, label)


def _extract(source: str | Path | io.BytesIO, destination: str | Path, label: str) -> None:
    try:
        with zipfile.ZipFile(source, "r") as zf:
            safe_extract(zf, Path(destination))
    except PluginCompileError:
        raise
    except (zipfile.BadZipFile, OSError, ValueError, EOFError) as e:
        raise PluginCompileError(
            PluginErrorKind.EXTRACTION_FAILED,
            f"Error extracting {label}: {e}",
        ) from e


def safe_extract(zf: zipfile.ZipFile, destination: Path) -> None:
    """Extract every member after checking archive limits and member paths."""
    _enforce_zip_limits(zf)
    root = destination.resolve()
    for info in zf.infolist():
        target = (root / info.filename).resolve()
        if target != root and not target.is_relative_to(root):
            raise PluginCompileError(
                PluginErrorKind.EXTRACTION_FAILED,
                f"Archive member escapes extraction root: {info.filename}",
            )
    zf.extractall(root)


def _enforce_zip_limits(zf: zipfile.ZipFile) -> None:
    infos = zf.infolist()
    if len(infos) > _MAX_ZIP_ENTRIES:
        raise ValueError(f"ZIP has too many entries: {len(infos)} > {_MAX_ZIP_ENTRIES}")

    total = 0
    for info in infos:
        if info.file_size > _MAX_SINGLE_FILE_BYTES:
            raise ValueError(f"ZIP entry too large: {info.filename} ({info.file_size})")
        total += info.file_size
        if total > _MAX_TOTAL_UNCOMPRESSED_BYTES:
            raise ValueError(f"ZIP total too large: {total}")


def read_metadata(workspace: str | Path) -> PluginMetadata | None:
    """Read ``META_INF`` from the workspace root.

    Returns None when the manifest is absent, unparsable, or has a blank
    ``id``. Parse failures are logged, never raised.
    """
    meta_path = Path(workspace) / MANIFEST_NAME
    if not meta_path.is_file():
        return None

    try:
        meta = PluginMetadata.model_validate_json(meta_path.read_text(encoding="utf-8-sig"))
    except (ValidationError, UnicodeDecodeError, OSError) as e:
        logger.error("Failed to parse %s: %s", meta_path, e)
        return None

    if not meta.id.strip():
        logger.error("Manifest %s has no id", meta_path)
        return None
    return meta
