"""Builds an extracted plugin project with an external toolchain.

The toolchain is a message-passing boundary: the builder sends it an argv
(project path and flags) and receives the exit code plus captured output.
By default it is pip, installing the project into ``build/publish``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import sys
import tomllib
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from yufanbot.plugins.dependencies import ResolvedDependency
from yufanbot.plugins.errors import PluginCompileError, PluginErrorKind
from yufanbot.plugins.manifest import PluginMetadata

logger = logging.getLogger(__name__)

PROJECT_FILE = "pyproject.toml"
OUTPUT_DIR = Path("build") / "publish"

DEFAULT_BUILD_COMMAND = [
    "{python}",
    "-m",
    "pip",
    "install",
    "--no-deps",
    "--no-index",
    "--no-build-isolation",
    "--compile",
    "--disable-pip-version-check",
    "--target",
    "{output}",
    "{project_dir}",
]

@dataclass
class ToolchainResult:
    """What came back from one toolchain run."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        if self.stdout and self.stderr:
            return f"{self.stdout}\n--- stderr ---\n{self.stderr}"
        return self.stdout or self.stderr


@dataclass
class BuildArtifact:
    """Output of a successful build."""

    output_dir: Path
    entry_name: str
    entry_path: Path
    project_file: Path
    log: str = ""


async def run_toolchain(
    argv: Sequence[str],
    cwd: Path,
    timeout: float | None = None,
) -> ToolchainResult:
    """Run the toolchain and wait for it, capturing stdout and stderr in full.

    Raises:
        TimeoutError: If ``timeout`` elapses; the process is killed first
        OSError: If the toolchain cannot be launched
    """
    process = await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        process.kill()
        await process.wait()
        raise

    return ToolchainResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def entry_module_name(project_name: str) -> str:
    """Import name for a distribution name (``My-Plugin`` -> ``my_plugin``)."""
    return re.sub(r"[-_.]+", "_", project_name).lower()


class PluginBuilder:
    """Builds one workspace into a :class:`BuildArtifact`.

    Args:
        command: Toolchain argv template. ``{python}``, ``{project}``,
            ``{project_dir}`` and ``{output}`` are substituted.
        timeout: Seconds to wait for the toolchain; None waits indefinitely
    """

    def __init__(
        self,
        command: Sequence[str] | None = None,
        timeout: float | None = 600.0,
    ) -> None:
        self.command = list(command or DEFAULT_BUILD_COMMAND)
        self.timeout = timeout

    def find_project_file(self, workspace: Path) -> Path:
        """Locate the single project file in the workspace.

        Raises:
            PluginCompileError: ``NO_PROJECT_FILE`` or ``AMBIGUOUS_PROJECT_FILE``
        """
        candidates = [
            path
            for path in workspace.rglob(PROJECT_FILE)
            if not _inside_output_dir(path.relative_to(workspace))
        ]
        if not candidates:
            raise PluginCompileError(
                PluginErrorKind.NO_PROJECT_FILE, f"No {PROJECT_FILE} found in package"
            )
        if len(candidates) > 1:
            names = ", ".join(sorted(str(p.relative_to(workspace)) for p in candidates))
            raise PluginCompileError(
                PluginErrorKind.AMBIGUOUS_PROJECT_FILE,
                f"Multiple project files found: {names}",
            )
        return candidates[0]

    async def build(
        self,
        workspace: Path,
        metadata: PluginMetadata,
        dependencies: Sequence[ResolvedDependency] = (),
    ) -> BuildArtifact:
        """Build the project in ``workspace`` and locate its entry module.

        Raises:
            PluginCompileError: On any build failure; toolchain output is
                attached as ``detail``
        """
        project_file = self.find_project_file(workspace)
        project_dir = project_file.parent
        entry_name = entry_module_name(_project_name(project_file))
        output_dir = project_dir / OUTPUT_DIR

        _clean_intermediates(project_dir)

        argv = [
            part.format(
                python=sys.executable,
                project=str(project_file),
                project_dir=str(project_dir),
                output=str(output_dir),
            )
            for part in self.command
        ]
        logger.debug("Building plugin %s: %s", metadata.id, " ".join(argv))

        try:
            result = await run_toolchain(argv, cwd=workspace, timeout=self.timeout)
        except TimeoutError as e:
            raise PluginCompileError(
                PluginErrorKind.COMPILE_FAILED,
                f"Build of {metadata.id} timed out after {self.timeout} seconds",
            ) from e
        except OSError as e:
            raise PluginCompileError(
                PluginErrorKind.COMPILE_FAILED, f"Build toolchain cannot be launched: {e}"
            ) from e

        if result.returncode != 0:
            raise PluginCompileError(
                PluginErrorKind.COMPILE_FAILED,
                f"Build of {metadata.id} failed with exit code {result.returncode}",
                detail=result.output,
            )

        entry_path = _find_entry(output_dir, entry_name)
        if entry_path is None:
            raise PluginCompileError(
                PluginErrorKind.COMPILE_FAILED,
                f"Entry module {entry_name!r} not found in build output {output_dir}",
                detail=result.output,
            )

        for dependency in dependencies:
            _install_dependency(dependency, output_dir)

        return BuildArtifact(
            output_dir=output_dir,
            entry_name=entry_name,
            entry_path=entry_path,
            project_file=project_file,
            log=result.output,
        )


def _project_name(project_file: Path) -> str:
    try:
        with open(project_file, "rb") as f:
            data = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise PluginCompileError(
            PluginErrorKind.COMPILE_FAILED, f"Invalid project file {project_file.name}: {e}"
        ) from e

    name = data.get("project", {}).get("name")
    if not isinstance(name, str) or not name.strip():
        raise PluginCompileError(
            PluginErrorKind.COMPILE_FAILED,
            f"{project_file.name} does not declare [project].name",
        )
    return name.strip()


def _inside_output_dir(relative: Path) -> bool:
    parts = relative.parts[:-1]
    size = len(OUTPUT_DIR.parts)
    return any(parts[i : i + size] == OUTPUT_DIR.parts for i in range(len(parts)))


def _clean_intermediates(project_dir: Path) -> None:
    # Toolchain output only
    stale = [project_dir / OUTPUT_DIR]
    stale.extend(project_dir.glob("*.egg-info"))
    for path in stale:
        if path.is_dir():
            logger.debug("Removing stale build directory %s", path)
            shutil.rmtree(path)


def _find_entry(output_dir: Path, entry_name: str) -> Path | None:
    package_init = output_dir / entry_name / "__init__.py"
    if package_init.is_file():
        return package_init
    module = output_dir / f"{entry_name}.py"
    if module.is_file():
        return module
    return None


def _install_dependency(dependency: ResolvedDependency, output_dir: Path) -> None:
    for path in dependency.files:
        target = output_dir / path.relative_to(dependency.root)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, target)
    logger.debug("Bundled %s %s into %s", dependency.name, dependency.version, output_dir)
