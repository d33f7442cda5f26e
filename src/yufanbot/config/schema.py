"""Pydantic models for yufanbot.yaml configuration."""

from typing import Literal

from pydantic import BaseModel, Field

from yufanbot.plugins.builder import DEFAULT_BUILD_COMMAND
from yufanbot.plugins.registry import DEFAULT_REGISTRY


class PluginsConfig(BaseModel):
    """Plugin compilation and loading configuration."""

    directory: str = Field(
        default="~/.yufanbot/plugins",
        description="Directory scanned for .yf plugin packages",
    )
    cache_dir: str = Field(
        default="~/.yufanbot/.plugincache",
        description="Workspaces and the shared dependency cache",
    )
    registries: list[str] = Field(
        default_factory=lambda: [DEFAULT_REGISTRY],
        description="Package registries in priority order",
    )
    registry_timeout: float = Field(
        default=30.0, description="Registry request timeout in seconds", gt=0
    )
    build_command: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BUILD_COMMAND),
        description=(
            "Build toolchain argv; {python}, {project}, {project_dir} and {output} "
            "are substituted"
        ),
        min_length=1,
    )
    build_timeout: float | None = Field(
        default=600.0,
        description="Seconds before a build is killed (null waits indefinitely)",
        gt=0,
    )
    max_workers: int = Field(
        default=4, description="Packages compiled concurrently", ge=1, le=64
    )
    shared_modules: list[str] = Field(
        default_factory=list,
        description="Extra host modules shared with plugins by identity",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Root log level"
    )


class YufanConfig(BaseModel):
    """Root configuration schema for yufanbot."""

    plugins: PluginsConfig = Field(
        default_factory=PluginsConfig,
        description="Plugin system configuration",
    )
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
