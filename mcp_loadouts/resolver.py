"""
Capability resolver: which tools may this caller see and invoke?

This is a pure function of four inputs:

    principal               Unauthenticated, Agent or User
    snapshot                the project's tool group configuration, or None
                            when it could not be read
    datasource_configured   whether the project has a default datasource
    installed_apps          add-on apps installed for the project

It does no I/O and keeps no state, so the list filter and the invocation
guard can both call it and are guaranteed the same answer for the same
facts. Gathering the facts is the job of access.py.

Gates are evaluated in order and each one short-circuits:

    1. Unauthenticated                      -> {health}
    2. Configuration unavailable            -> {health}
    3. No default datasource                -> {health}
    4. Agent
         ai-agents app not installed        -> {health}
         agent_tools.enabled is false       -> {health}
         otherwise                          -> {health} + Limited Query
    5. User
         always                             Default + Developer Core
         developer.addQueryTools            + Query
             and ai-data-liaison installed  + Data Liaison (business)
         developer.addOntologyMaintenance   + Ontology Maintenance
             and ai-data-liaison installed  + Data Liaison (developer)
         developer.addOntologyQuestions     + Ontology Questions

User roles are deliberately not an input: every authenticated non-agent
caller resolves the same way. The legacy `developer.enabled` and
`forceMode` flags are not read.
"""

from collections.abc import Iterable

from mcp_loadouts.models import (
    APP_AI_AGENTS,
    APP_AI_DATA_LIAISON,
    TOOL_GROUP_AGENT_TOOLS,
    TOOL_GROUP_DEVELOPER,
    ConfigSnapshot,
)
from mcp_loadouts.principal import PrincipalClass
from mcp_loadouts.tools import (
    LOADOUT_DATA_LIAISON_BUSINESS,
    LOADOUT_DATA_LIAISON_DEVELOPER,
    LOADOUT_DEFAULT,
    LOADOUT_DEVELOPER_CORE,
    LOADOUT_LIMITED_QUERY,
    LOADOUT_ONTOLOGY_MAINTENANCE,
    LOADOUT_ONTOLOGY_QUESTIONS,
    LOADOUT_QUERY,
    ToolSpec,
    loadout_tools,
    merge_loadouts,
)

# The floor every principal gets, including anonymous ones.
BASELINE_TOOLS: frozenset[str] = loadout_tools(LOADOUT_DEFAULT)


def resolve_loadouts(
    principal: PrincipalClass,
    snapshot: ConfigSnapshot | None,
    datasource_configured: bool,
    installed_apps: Iterable[str],
) -> list[str]:
    """Return the ids of the loadouts granted for the given facts."""
    if principal is PrincipalClass.UNAUTHENTICATED:
        return [LOADOUT_DEFAULT]

    if snapshot is None:
        return [LOADOUT_DEFAULT]

    if not datasource_configured:
        return [LOADOUT_DEFAULT]

    apps = frozenset(installed_apps)

    if principal is PrincipalClass.AGENT:
        if APP_AI_AGENTS not in apps:
            return [LOADOUT_DEFAULT]
        if not snapshot.group(TOOL_GROUP_AGENT_TOOLS).enabled:
            return [LOADOUT_DEFAULT]
        return [LOADOUT_DEFAULT, LOADOUT_LIMITED_QUERY]

    if principal is not PrincipalClass.USER:
        return [LOADOUT_DEFAULT]

    developer = snapshot.group(TOOL_GROUP_DEVELOPER)
    data_liaison = APP_AI_DATA_LIAISON in apps

    loadouts = [LOADOUT_DEFAULT, LOADOUT_DEVELOPER_CORE]
    if developer.add_query_tools:
        loadouts.append(LOADOUT_QUERY)
        if data_liaison:
            loadouts.append(LOADOUT_DATA_LIAISON_BUSINESS)
    if developer.add_ontology_maintenance:
        loadouts.append(LOADOUT_ONTOLOGY_MAINTENANCE)
        if data_liaison:
            loadouts.append(LOADOUT_DATA_LIAISON_DEVELOPER)
    if developer.add_ontology_questions:
        loadouts.append(LOADOUT_ONTOLOGY_QUESTIONS)
    return loadouts


def resolve_permitted_tools(
    principal: PrincipalClass,
    snapshot: ConfigSnapshot | None,
    datasource_configured: bool,
    installed_apps: Iterable[str] = (),
) -> frozenset[str]:
    """Return the names of every tool the caller may list and invoke."""
    permitted: set[str] = set()
    for loadout_id in resolve_loadouts(principal, snapshot, datasource_configured, installed_apps):
        permitted |= loadout_tools(loadout_id)
    return frozenset(permitted)


def permitted_tool_specs(
    principal: PrincipalClass,
    snapshot: ConfigSnapshot | None,
    datasource_configured: bool,
    installed_apps: Iterable[str] = (),
) -> list[ToolSpec]:
    """Same as resolve_permitted_tools, as catalog entries in canonical order."""
    return merge_loadouts(*resolve_loadouts(principal, snapshot, datasource_configured, installed_apps))
