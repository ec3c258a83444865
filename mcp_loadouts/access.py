"""
Tool access service: the list filter and the invocation guard.

Both entry points go through ToolAccessService.resolve(), which classifies
the caller, gathers the project's facts and runs the pure resolver. There is
no second code path that re-derives permissions, so a tool is listed if and
only if a call to it would be authorized under the same facts.

    resolve(claims)                 -> Resolution (principal, project, permitted set)
    filter_tools(tools, claims)     -> the tools the caller may see
    acquire(claims, tool_name)      -> async context manager yielding ToolAccess

Facts are fetched fresh on every resolution. Two calls for the same project
that race a configuration change may see different snapshots; each call is
internally consistent and that is all that is promised.
"""

import logging
import uuid
from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Protocol, TypeVar

from mcp_loadouts.auth import Claims
from mcp_loadouts.errors import (
    AuthenticationRequiredError,
    InvalidProjectIDError,
    ResourceAcquisitionError,
    ToolNotEnabledError,
)
from mcp_loadouts.models import APP_AI_AGENTS, APP_AI_DATA_LIAISON, ConfigSnapshot
from mcp_loadouts.principal import PrincipalClass, classify_principal, parse_project_id
from mcp_loadouts.providers import (
    ConfigProvider,
    DatasourceProvider,
    FailClosedPolicy,
    InstalledAppsProvider,
)
from mcp_loadouts.resolver import BASELINE_TOOLS, resolve_permitted_tools
from mcp_loadouts.tenancy import LocalTenantScopes, TenantScope, TenantScopeFactory
from mcp_loadouts.tools import get_tool_spec

logger = logging.getLogger("mcp-server.access")


class NamedTool(Protocol):
    name: str


ToolT = TypeVar("ToolT", bound=NamedTool)

# Add-on apps whose installation matters for each principal class.
GATED_APPS: dict[PrincipalClass, tuple[str, ...]] = {
    PrincipalClass.AGENT: (APP_AI_AGENTS,),
    PrincipalClass.USER: (APP_AI_DATA_LIAISON,),
}


@dataclass(frozen=True)
class TenantFacts:
    """
    Everything the resolver needs to know about a project.

    snapshot is None when the configuration could not be read.
    """

    snapshot: ConfigSnapshot | None
    datasource_configured: bool
    installed_apps: frozenset[str] = frozenset()

    @classmethod
    def unavailable(cls) -> "TenantFacts":
        return cls(snapshot=None, datasource_configured=False)


@dataclass(frozen=True)
class Resolution:
    principal: PrincipalClass
    project_id: uuid.UUID | None
    facts: TenantFacts
    permitted: frozenset[str]
    subject: str | None = None
    project_error: InvalidProjectIDError | None = None


@dataclass(frozen=True)
class Provenance:
    """Who made a change through MCP. user_id is None for agents."""

    source: str = "mcp"
    user_id: uuid.UUID | None = None


@dataclass(frozen=True)
class ToolAccess:
    """
    The augmented call context handed to an authorized tool body.

    scope is None only for tools authorized without a project (health
    called anonymously or with an unusable project id).
    """

    tool_name: str
    principal: PrincipalClass
    project_id: uuid.UUID | None
    scope: TenantScope | None
    subject: str | None = None
    provenance: Provenance = field(default_factory=Provenance)


def filter_permitted(tools: Sequence[ToolT], permitted: frozenset[str]) -> list[ToolT]:
    """Keep tools whose name is permitted, in input order, first occurrence only."""
    seen: set[str] = set()
    visible: list[ToolT] = []
    for tool in tools:
        if tool.name in permitted and tool.name not in seen:
            seen.add(tool.name)
            visible.append(tool)
    return visible


def _provenance(principal: PrincipalClass, subject: str | None) -> Provenance:
    if principal is not PrincipalClass.USER or not subject:
        return Provenance()
    try:
        return Provenance(user_id=uuid.UUID(subject))
    except ValueError:
        return Provenance()


class ToolAccessService:
    """
    The one capability-resolution service every tool call goes through.

    Providers may be None. A missing provider behaves like one that always
    fails: its gate denies.
    """

    def __init__(
        self,
        config_provider: ConfigProvider | None = None,
        datasource_provider: DatasourceProvider | None = None,
        installed_apps_provider: InstalledAppsProvider | None = None,
        scopes: TenantScopeFactory | None = None,
        policy: FailClosedPolicy | None = None,
    ):
        self.config_provider = config_provider
        self.datasource_provider = datasource_provider
        self.installed_apps_provider = installed_apps_provider
        self.scopes = scopes if scopes is not None else LocalTenantScopes()
        self.policy = policy if policy is not None else FailClosedPolicy()

    # ----- Fact gathering -----

    async def datasource_configured(self, project_id: uuid.UUID) -> bool:
        provider = self.datasource_provider
        call = (lambda: provider.get_default_datasource_id(project_id)) if provider else None
        datasource_id = await self.policy.evaluate("datasource", project_id, call, denied=None)
        return isinstance(datasource_id, uuid.UUID) and datasource_id.int != 0

    async def _snapshot(self, project_id: uuid.UUID) -> ConfigSnapshot | None:
        provider = self.config_provider
        call = (lambda: provider.get_tool_groups_state(project_id)) if provider else None
        groups = await self.policy.evaluate("config", project_id, call, denied=None)
        if groups is None:
            return None
        if not isinstance(groups, Mapping):
            logger.error(
                "Config provider returned an unusable answer",
                extra={
                    "auth_data": {
                        "gate": "config",
                        "project_id": str(project_id),
                        "decision": "denied",
                        "reason": f"expected a mapping, got {type(groups).__name__}",
                    }
                },
            )
            return None
        return ConfigSnapshot.from_tool_groups(groups)

    async def _installed_apps(self, project_id: uuid.UUID, app_ids: Sequence[str]) -> frozenset[str]:
        provider = self.installed_apps_provider
        installed: set[str] = set()
        for app_id in app_ids:
            call = (lambda app=app_id: provider.is_installed(project_id, app)) if provider else None
            answer = await self.policy.evaluate(f"installed_app:{app_id}", project_id, call, denied=False)
            # Anything other than a literal True is not an answer we trust.
            if answer is True:
                installed.add(app_id)
        return frozenset(installed)

    async def load_facts(self, project_id: uuid.UUID, principal: PrincipalClass) -> TenantFacts:
        """
        Gather the project's facts for one resolution.

        The datasource gate dominates everything else, so when it denies the
        remaining lookups are skipped.
        """
        if not await self.datasource_configured(project_id):
            return TenantFacts.unavailable()

        snapshot = await self._snapshot(project_id)
        if snapshot is None:
            return TenantFacts(snapshot=None, datasource_configured=True)

        apps = await self._installed_apps(project_id, GATED_APPS.get(principal, ()))
        return TenantFacts(snapshot=snapshot, datasource_configured=True, installed_apps=apps)

    # ----- Resolution -----

    async def resolve(self, claims: Claims | None) -> Resolution:
        principal = classify_principal(claims)
        if claims is None:
            return Resolution(
                principal=principal,
                project_id=None,
                facts=TenantFacts.unavailable(),
                permitted=BASELINE_TOOLS,
            )

        try:
            project_id = parse_project_id(claims)
        except InvalidProjectIDError as e:
            logger.warning(
                "Invalid project ID in claims",
                extra={
                    "auth_data": {
                        "subject": claims.subject,
                        "project_id": claims.project_id,
                        "reason": "invalid_project_id",
                    }
                },
            )
            return Resolution(
                principal=principal,
                project_id=None,
                facts=TenantFacts.unavailable(),
                permitted=BASELINE_TOOLS,
                subject=claims.subject,
                project_error=e,
            )

        facts = await self.load_facts(project_id, principal)
        permitted = resolve_permitted_tools(
            principal,
            facts.snapshot,
            facts.datasource_configured,
            facts.installed_apps,
        )
        return Resolution(
            principal=principal,
            project_id=project_id,
            facts=facts,
            permitted=permitted,
            subject=claims.subject,
        )

    # ----- List filter -----

    async def filter_tools(self, tools: Sequence[ToolT], claims: Claims | None) -> list[ToolT]:
        resolution = await self.resolve(claims)
        return filter_permitted(tools, resolution.permitted)

    # ----- Invocation guard -----

    @staticmethod
    def check(resolution: Resolution, tool_name: str) -> None:
        """
        Raise the appropriate ToolAccessError unless tool_name is permitted.
        """
        if tool_name in resolution.permitted:
            return
        if get_tool_spec(tool_name) is None:
            logger.warning("Call to unknown tool %r", tool_name)
        if resolution.principal is PrincipalClass.UNAUTHENTICATED:
            raise AuthenticationRequiredError()
        if resolution.project_error is not None:
            raise resolution.project_error
        raise ToolNotEnabledError(tool_name)

    @asynccontextmanager
    async def acquire(self, claims: Claims | None, tool_name: str) -> AsyncIterator[ToolAccess]:
        """
        Authorize one call and hold its tenant scope for the duration.

        Usage:
            async with access_service.acquire(claims, "query") as access:
                ...  # access.scope is open here

        The scope is closed when the block exits, whether it returns, raises
        or is cancelled.

        Raises:
            ToolAccessError: The call is not authorized
            ResourceAcquisitionError: The tenant scope could not be opened
        """
        resolution = await self.resolve(claims)
        self.check(resolution, tool_name)

        scope: TenantScope | None = None
        if resolution.project_id is not None:
            try:
                scope = await self.scopes.open(resolution.project_id)
            except Exception as e:
                logger.error(
                    "Failed to acquire tenant scope",
                    extra={
                        "auth_data": {
                            "project_id": str(resolution.project_id),
                            "tool": tool_name,
                            "error": str(e),
                        }
                    },
                )
                raise ResourceAcquisitionError(resolution.project_id, e) from e

        access = ToolAccess(
            tool_name=tool_name,
            principal=resolution.principal,
            project_id=resolution.project_id,
            scope=scope,
            subject=resolution.subject,
            provenance=_provenance(resolution.principal, resolution.subject),
        )
        try:
            yield access
        finally:
            if scope is not None:
                await scope.close()


# ---------------------------------------------------------------------------
# Per-call binding
# ---------------------------------------------------------------------------
# The middleware binds the ToolAccess of the call in flight so tool bodies can
# reach their tenant scope without it being threaded through every signature.

_current_access: ContextVar[ToolAccess | None] = ContextVar("mcp_tool_access", default=None)


@contextmanager
def bind_tool_access(access: ToolAccess) -> Iterator[ToolAccess]:
    token = _current_access.set(access)
    try:
        yield access
    finally:
        _current_access.reset(token)


def current_tool_access() -> ToolAccess:
    """
    Return the ToolAccess of the tool call being executed.

    Raises:
        RuntimeError: If called outside an authorized tool call
    """
    access = _current_access.get()
    if access is None:
        raise RuntimeError("No tool access is bound: not inside an authorized tool call")
    return access
