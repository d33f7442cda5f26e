"""Plugin manifest and metadata models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from yufanbot.plugins.contract import Plugin
    from yufanbot.plugins.isolation import PluginLoadContext

MANIFEST_NAME = "META_INF"


class PluginMetadata(BaseModel):
    """Contents of a package's ``META_INF`` manifest.

    ``id`` is the unique plugin key and must be non-blank; see
    :func:`yufanbot.plugins.package.read_metadata`.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = ""
    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    authors: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("dependencies", "nuget_dependencies"),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass
class LoadedPlugin:
    """A compiled plugin: its entry instance paired with its metadata."""

    entry: Plugin
    metadata: PluginMetadata
    context: PluginLoadContext | None = field(default=None, repr=False)

    def unload(self) -> None:
        """Dispose the plugin's load context so its modules can be collected."""
        if self.context is not None:
            self.context.unload()
            self.context = None
