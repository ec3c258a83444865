"""
Configuration and tenant fact models.

Stored configuration is parsed with pydantic so that camelCase keys written
by the admin UI ("addQueryTools") and snake_case keys written by hand
("add_query_tools") both load. Parsing is strict about types: a flag that is
not a boolean is a configuration error, which the access layer treats as
"configuration unavailable" and therefore as denial.
"""

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

logger = logging.getLogger("mcp-server.config")

# Tool group names.
TOOL_GROUP_DEVELOPER = "developer"
TOOL_GROUP_AGENT_TOOLS = "agent_tools"
# Deprecated. Still accepted in stored configuration, grants nothing.
TOOL_GROUP_APPROVED_QUERIES = "approved_queries"

KNOWN_TOOL_GROUPS: frozenset[str] = frozenset(
    {TOOL_GROUP_DEVELOPER, TOOL_GROUP_AGENT_TOOLS, TOOL_GROUP_APPROVED_QUERIES}
)

# Add-on app ids.
APP_MCP_SERVER = "mcp-server"
APP_AI_DATA_LIAISON = "ai-data-liaison"
APP_AI_AGENTS = "ai-agents"

# Version 1 configs predate the Data Liaison split and carry `enabled` /
# `forceMode` with their old meaning. Version 2 keeps the fields for
# compatibility but they no longer affect user tool access.
CURRENT_SCHEMA_VERSION = 2


class ToolGroupConfig(BaseModel):
    """
    Flags for one tool group.

    `enabled` is legacy: it gates the Agent loadout for the agent_tools group
    and means nothing for users. `force_mode` is inert.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    enabled: StrictBool = False
    add_query_tools: StrictBool = Field(default=False, alias="addQueryTools")
    add_ontology_maintenance: StrictBool = Field(default=False, alias="addOntologyMaintenance")
    add_ontology_questions: StrictBool = Field(default=False, alias="addOntologyQuestions")
    force_mode: StrictBool = Field(default=False, alias="forceMode")


class MCPConfig(BaseModel):
    """Stored MCP configuration for one project."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION, alias="schemaVersion")
    tool_groups: dict[str, ToolGroupConfig] = Field(default_factory=dict, alias="toolGroups")

    @field_validator("schema_version")
    @classmethod
    def _known_schema_version(cls, value: int) -> int:
        if value < 1 or value > CURRENT_SCHEMA_VERSION:
            raise ValueError(
                f"unsupported schemaVersion {value}, this server understands 1..{CURRENT_SCHEMA_VERSION}"
            )
        return value


def default_tool_groups() -> dict[str, ToolGroupConfig]:
    """
    Tool groups for a project that has never saved MCP configuration.

    A freshly provisioned project with a datasource gets query tools and
    ontology maintenance out of the box. The legacy flags default on but have
    no effect on users.
    """
    return {
        TOOL_GROUP_DEVELOPER: ToolGroupConfig(
            enabled=True,
            add_query_tools=True,
            add_ontology_maintenance=True,
            add_ontology_questions=False,
            force_mode=True,
        ),
        TOOL_GROUP_AGENT_TOOLS: ToolGroupConfig(enabled=True, force_mode=True),
        TOOL_GROUP_APPROVED_QUERIES: ToolGroupConfig(enabled=True, force_mode=True),
    }


class ConfigSnapshot(Mapping[str, ToolGroupConfig]):
    """
    Immutable view of one project's tool group configuration.

    Built through from_tool_groups() it is always complete: every known group
    is present, either as stored or as its documented default. Unknown group
    names never make it in.
    """

    def __init__(self, groups: Mapping[str, ToolGroupConfig]):
        self._groups = MappingProxyType(dict(groups))

    def __repr__(self) -> str:
        return f"ConfigSnapshot({dict(self._groups)!r})"

    @classmethod
    def from_tool_groups(cls, groups: Mapping[str, ToolGroupConfig] | None) -> "ConfigSnapshot":
        """
        Merge provider-supplied groups over the defaults.

        A stored group that is None or not a ToolGroupConfig is replaced by a
        disabled config, never by its default.
        """
        merged = default_tool_groups()
        for name, config in (groups or {}).items():
            if name not in KNOWN_TOOL_GROUPS:
                logger.warning("Ignoring unknown tool group %r", name)
                continue
            if not isinstance(config, ToolGroupConfig):
                logger.warning(
                    "Tool group %r has no usable configuration (%s), treating it as disabled",
                    name,
                    type(config).__name__,
                )
                config = ToolGroupConfig()
            merged[name] = config
        return cls(merged)

    @classmethod
    def defaults(cls) -> "ConfigSnapshot":
        return cls.from_tool_groups(None)

    def group(self, name: str) -> ToolGroupConfig:
        # A disabled config for anything unexpected keeps lookups total.
        return self._groups.get(name, ToolGroupConfig())

    def __getitem__(self, name: str) -> ToolGroupConfig:
        return self._groups[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)


class ProjectRecord(BaseModel):
    """
    One project's entry in a tenant store.

    `mcp_config` stays raw until it is asked for, so that one project with a
    bad configuration cannot take the others down with it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    default_datasource_id: str | None = Field(default=None, alias="defaultDatasourceId")
    installed_apps: list[str] = Field(default_factory=list, alias="installedApps")
    mcp_config: dict[str, Any] | None = Field(default=None, alias="mcpConfig")


class TenantRegistry(BaseModel):
    """Top-level layout of the tenant file."""

    projects: dict[str, ProjectRecord] = Field(default_factory=dict)
