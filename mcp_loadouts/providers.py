"""
External fact providers and the fail-closed policy that wraps them.

Resolving tool access needs three facts about a project, all owned by other
systems:

- its tool group configuration (ConfigProvider)
- whether it has a default datasource (DatasourceProvider)
- which add-on apps are installed (InstalledAppsProvider)

Any of these lookups can fail, hang, or be missing entirely. FailClosedPolicy
is the single place that decides what happens then: the lookup is abandoned
after a deadline, the failure is logged with the gate name and project, and
the gate's denial value is used instead. No call site handles provider
errors on its own.

Two stores implement all three providers: InMemoryTenantStore for tests and
embedding, FileTenantStore for the JSON tenant file named by
MCP_TENANTS_FILE.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pydantic import ValidationError

from mcp_loadouts.errors import ConfigFetchError, ProviderError
from mcp_loadouts.models import (
    APP_MCP_SERVER,
    MCPConfig,
    ProjectRecord,
    TenantRegistry,
    ToolGroupConfig,
    default_tool_groups,
)

logger = logging.getLogger("mcp-server.providers")

T = TypeVar("T")


class ConfigProvider(Protocol):
    async def get_tool_groups_state(self, project_id: uuid.UUID) -> Mapping[str, ToolGroupConfig]: ...


class DatasourceProvider(Protocol):
    async def get_default_datasource_id(self, project_id: uuid.UUID) -> uuid.UUID | None: ...


class InstalledAppsProvider(Protocol):
    async def is_installed(self, project_id: uuid.UUID, app_id: str) -> bool: ...


class FailClosedPolicy:
    """
    Runs one gate lookup and turns every kind of ambiguity into denial.

    Ambiguity means: no provider configured, the provider raised, or the
    provider did not answer within `timeout_seconds`. Cancellation of the
    surrounding request is not ambiguity and propagates.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds

    async def evaluate(
        self,
        gate: str,
        project_id: uuid.UUID,
        call: Callable[[], Awaitable[T]] | None,
        denied: T,
    ) -> T:
        if call is None:
            logger.debug("No provider for gate %s, denying", gate)
            return denied

        try:
            return await asyncio.wait_for(call(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            reason = "timeout"
            detail = f"no answer within {self.timeout_seconds}s"
        except Exception as e:
            reason = "provider_error"
            detail = str(e)

        logger.error(
            "Access gate failed closed",
            extra={
                "auth_data": {
                    "gate": gate,
                    "project_id": str(project_id),
                    "decision": "denied",
                    "reason": reason,
                    "error": detail,
                }
            },
        )
        return denied


def _parse_datasource_id(raw: str | None) -> uuid.UUID | None:
    if not raw:
        return None
    try:
        datasource_id = uuid.UUID(raw)
    except ValueError:
        raise ProviderError(f"invalid default datasource id {raw!r}")
    # The nil UUID is how an unset datasource is stored.
    if datasource_id.int == 0:
        return None
    return datasource_id


class _RecordTenantStore:
    """Provider implementations shared by stores that hold ProjectRecords."""

    async def _record(self, project_id: uuid.UUID) -> ProjectRecord | None:
        raise NotImplementedError

    async def get_tool_groups_state(self, project_id: uuid.UUID) -> Mapping[str, ToolGroupConfig]:
        try:
            record = await self._record(project_id)
        except ProviderError as e:
            raise ConfigFetchError(f"failed to get MCP config: {e}") from e

        if record is None or record.mcp_config is None:
            return default_tool_groups()

        try:
            config = MCPConfig.model_validate(record.mcp_config)
        except ValidationError as e:
            raise ConfigFetchError(f"invalid MCP config for project {project_id}: {e}") from e
        return config.tool_groups

    async def get_default_datasource_id(self, project_id: uuid.UUID) -> uuid.UUID | None:
        record = await self._record(project_id)
        if record is None:
            return None
        return _parse_datasource_id(record.default_datasource_id)

    async def is_installed(self, project_id: uuid.UUID, app_id: str) -> bool:
        if app_id == APP_MCP_SERVER:
            return True
        record = await self._record(project_id)
        if record is None:
            return False
        return app_id in record.installed_apps


class InMemoryTenantStore(_RecordTenantStore):
    """Tenant facts held in a dict. Changes are visible to the next lookup."""

    def __init__(self) -> None:
        self._projects: dict[uuid.UUID, ProjectRecord] = {}

    def set_project(
        self,
        project_id: uuid.UUID,
        *,
        datasource_id: uuid.UUID | None = None,
        installed_apps: Iterable[str] = (),
        tool_groups: Mapping[str, ToolGroupConfig | Mapping[str, Any]] | None = None,
        mcp_config: Mapping[str, Any] | None = None,
    ) -> None:
        """
        Register or replace a project.

        Pass `tool_groups` for the common case; pass `mcp_config` to store a
        raw stored-config document (e.g. one with an explicit schemaVersion).
        Leaving both out stores no configuration, so defaults apply.
        """
        if tool_groups is not None:
            mcp_config = {
                "toolGroups": {
                    name: group.model_dump(by_alias=True) if isinstance(group, ToolGroupConfig) else dict(group)
                    for name, group in tool_groups.items()
                }
            }
        self._projects[project_id] = ProjectRecord(
            default_datasource_id=str(datasource_id) if datasource_id else None,
            installed_apps=list(installed_apps),
            mcp_config=dict(mcp_config) if mcp_config is not None else None,
        )

    def remove_project(self, project_id: uuid.UUID) -> None:
        self._projects.pop(project_id, None)

    async def _record(self, project_id: uuid.UUID) -> ProjectRecord | None:
        return self._projects.get(project_id)


class FileTenantStore(_RecordTenantStore):
    """
    Tenant facts read from a JSON file.

    Every lookup checks the file, so edits take effect without a restart,
    but it is only parsed again when its modification time or size changed.
    Reads run in a worker thread: a slow disk holds up neither the event
    loop nor the lookup deadline. A missing file means there are no
    projects yet.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._cache: tuple[tuple[int, int], TenantRegistry] | None = None

    def load(self) -> TenantRegistry:
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            return TenantRegistry()
        except OSError as e:
            raise ProviderError(f"failed to read tenant file {self.path}: {e}") from e

        key = (stat.st_mtime_ns, stat.st_size)
        cached = self._cache
        if cached is not None and cached[0] == key:
            return cached[1]

        try:
            registry = TenantRegistry.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise ProviderError(f"failed to read tenant file {self.path}: {e}") from e
        self._cache = (key, registry)
        return registry

    async def _record(self, project_id: uuid.UUID) -> ProjectRecord | None:
        registry = await asyncio.to_thread(self.load)
        for key, record in registry.projects.items():
            try:
                if uuid.UUID(key) == project_id:
                    return record
            except ValueError:
                logger.warning("Skipping tenant entry with invalid project id %r", key)
        return None
