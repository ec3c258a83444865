"""
Tool catalog and loadout registry.

This module is the central registry for what tools exist and how they are
bundled. Tools are defined once, in canonical order, in ALL_TOOLS_ORDERED.
Loadouts reference tools by name and are the unit that configuration turns
on and off:

    LOADOUTS = {
        "loadout_id": ("tool_a", "tool_b"),
    }

The capability resolver (resolver.py) decides which loadouts a caller gets;
this module only answers "which tools are in which loadout" and "in what
order are they presented".

Both tables are append-only. Removing or renaming a tool is a breaking
change for every MCP client that remembers it, and moving a tool between
loadouts changes who can call it. tests/test_loadouts.py pins the exact
membership so such a change shows up in review.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToolSpec:
    """A tool's stable name and the description shown to MCP clients."""

    name: str
    description: str


# Loadout ids - use these constants when referencing loadouts.
LOADOUT_DEFAULT = "default"
LOADOUT_DEVELOPER_CORE = "developer_core"
LOADOUT_LIMITED_QUERY = "limited_query"
LOADOUT_QUERY = "query"
LOADOUT_ONTOLOGY_MAINTENANCE = "ontology_maintenance"
LOADOUT_ONTOLOGY_QUESTIONS = "ontology_questions"
LOADOUT_DATA_LIAISON_BUSINESS = "data_liaison_business"
LOADOUT_DATA_LIAISON_DEVELOPER = "data_liaison_developer"

HEALTH_TOOL = "health"


# Canonical presentation order. tools/list returns tools in this order and
# merged loadouts are sorted by it.
ALL_TOOLS_ORDERED: tuple[ToolSpec, ...] = (
    # Default
    ToolSpec("health", "Server health check"),
    # Developer Core
    ToolSpec("echo", "Echo back input message for testing"),
    ToolSpec("execute", "Execute DDL/DML statements"),
    # Query
    ToolSpec("validate", "Check SQL syntax without executing"),
    ToolSpec("query", "Execute read-only SQL SELECT statements"),
    ToolSpec("explain_query", "Analyze SQL query performance using EXPLAIN ANALYZE with execution plan and optimization hints"),
    ToolSpec("list_approved_queries", "List pre-approved SQL queries"),
    ToolSpec("execute_approved_query", "Execute a pre-approved query by ID"),
    # Data Liaison (business)
    ToolSpec("suggest_approved_query", "Suggest a reusable parameterized query for approval"),
    ToolSpec("suggest_query_update", "Suggest an update to an existing pre-approved query for review"),
    # Query (continued)
    ToolSpec("search_schema", "Full-text search across tables, columns, and entities using pattern matching with relevance ranking"),
    ToolSpec("get_schema", "Get database schema with entity semantics"),
    ToolSpec("get_context", "Get unified database context with progressive depth (consolidates ontology, schema, glossary)"),
    ToolSpec("get_entity", "Retrieve full entity details including aliases, key columns, occurrences, and relationships"),
    ToolSpec("get_glossary_sql", "Get SQL definition for a business term"),
    ToolSpec("get_ontology", "Get business ontology for query generation"),
    ToolSpec("get_query_history", "Get recent query execution history to avoid rewriting queries"),
    ToolSpec("list_glossary", "List all business glossary terms"),
    ToolSpec("probe_column", "Deep-dive into specific column with statistics, joinability, and semantic information"),
    ToolSpec("probe_columns", "Batch variant of probe_column for analyzing multiple columns at once"),
    ToolSpec("probe_relationship", "Deep-dive into relationships between entities with cardinality and data quality metrics"),
    ToolSpec("sample", "Quick data preview from a table"),
    # Ontology Questions
    ToolSpec("list_ontology_questions", "List ontology questions with filtering by status, category, entity, priority, and pagination"),
    ToolSpec("dismiss_ontology_question", "Mark a question as not worth pursuing"),
    ToolSpec("escalate_ontology_question", "Mark a question as requiring human domain knowledge"),
    ToolSpec("resolve_ontology_question", "Mark an ontology question as resolved after researching and updating the ontology"),
    ToolSpec("skip_ontology_question", "Mark a question as skipped for revisiting later"),
    # Ontology Maintenance
    ToolSpec("create_glossary_term", "Create a new business glossary term with SQL definition"),
    ToolSpec("update_column", "Add or update semantic information about a column (description, enum_values, entity, role)"),
    ToolSpec("update_entity", "Create or update entity metadata with upsert semantics (description, aliases, key_columns)"),
    ToolSpec("update_glossary_term", "Create or update a business glossary term with upsert semantics (definition, sql, aliases)"),
    ToolSpec("update_project_knowledge", "Create or update domain facts (terminology, business rules, enumerations, conventions)"),
    ToolSpec("update_relationship", "Create or update relationship between entities with upsert semantics (description, label, cardinality)"),
    ToolSpec("delete_column_metadata", "Clear custom metadata for a column, reverting to schema-only information"),
    ToolSpec("delete_entity", "Remove an entity that was incorrectly identified (soft delete)"),
    ToolSpec("delete_glossary_term", "Delete a business glossary term that's no longer relevant"),
    ToolSpec("delete_project_knowledge", "Remove incorrect or outdated domain facts"),
    ToolSpec("delete_relationship", "Remove a relationship that doesn't exist or was incorrectly identified"),
    ToolSpec("refresh_schema", "Refresh schema from datasource and detect changes (new tables, columns, etc.)"),
    ToolSpec("scan_data_changes", "Scan for data-level changes (new enum values, FK patterns) in selected tables"),
    ToolSpec("list_pending_changes", "List pending ontology changes awaiting review"),
    ToolSpec("approve_change", "Approve a pending ontology change and apply it"),
    ToolSpec("reject_change", "Reject a pending ontology change without applying it"),
    ToolSpec("approve_all_changes", "Approve all pending ontology changes that can be applied"),
    # Data Liaison (developer)
    ToolSpec("list_query_suggestions", "List pending query suggestions awaiting review"),
    ToolSpec("approve_query_suggestion", "Approve a pending query suggestion and publish it as an approved query"),
    ToolSpec("reject_query_suggestion", "Reject a pending query suggestion with a reason"),
    ToolSpec("create_approved_query", "Create a new pre-approved query directly"),
    ToolSpec("update_approved_query", "Update an existing pre-approved query"),
    ToolSpec("delete_approved_query", "Delete a pre-approved query"),
)


LOADOUTS: dict[str, tuple[str, ...]] = {
    # Always available to every principal.
    LOADOUT_DEFAULT: (
        "health",
    ),
    # Granted to every authenticated user once a datasource exists.
    LOADOUT_DEVELOPER_CORE: (
        "echo",
        "execute",
    ),
    # Agents only ever run pre-approved queries.
    LOADOUT_LIMITED_QUERY: (
        "list_approved_queries",
        "execute_approved_query",
    ),
    LOADOUT_QUERY: (
        "validate",
        "query",
        "explain_query",
        "list_approved_queries",
        "execute_approved_query",
        "search_schema",
        "get_schema",
        "get_context",
        "get_entity",
        "get_glossary_sql",
        "get_ontology",
        "get_query_history",
        "list_glossary",
        "probe_column",
        "probe_columns",
        "probe_relationship",
        "sample",
    ),
    LOADOUT_ONTOLOGY_MAINTENANCE: (
        "create_glossary_term",
        "update_column",
        "update_entity",
        "update_glossary_term",
        "update_project_knowledge",
        "update_relationship",
        "delete_column_metadata",
        "delete_entity",
        "delete_glossary_term",
        "delete_project_knowledge",
        "delete_relationship",
        # Schema management (living ontology)
        "refresh_schema",
        "scan_data_changes",
        "list_pending_changes",
        "approve_change",
        "reject_change",
        "approve_all_changes",
    ),
    LOADOUT_ONTOLOGY_QUESTIONS: (
        "list_ontology_questions",
        "dismiss_ontology_question",
        "escalate_ontology_question",
        "resolve_ontology_question",
        "skip_ontology_question",
    ),
    # Requires the AI Data Liaison app in addition to the Query loadout.
    LOADOUT_DATA_LIAISON_BUSINESS: (
        "suggest_approved_query",
        "suggest_query_update",
    ),
    # Requires the AI Data Liaison app in addition to Ontology Maintenance.
    LOADOUT_DATA_LIAISON_DEVELOPER: (
        "list_query_suggestions",
        "approve_query_suggestion",
        "reject_query_suggestion",
        "create_approved_query",
        "update_approved_query",
        "delete_approved_query",
    ),
}

_TOOL_INDEX: dict[str, int] = {tool.name: i for i, tool in enumerate(ALL_TOOLS_ORDERED)}


def get_tool_spec(name: str) -> ToolSpec | None:
    """Return the ToolSpec for a tool name, or None if it isn't in the catalog."""
    index = _TOOL_INDEX.get(name)
    if index is None:
        return None
    return ALL_TOOLS_ORDERED[index]


def loadout_tools(loadout_id: str) -> frozenset[str]:
    """
    Return the tool names in a loadout.

    An unknown loadout id yields an empty set rather than an error so that a
    typo can only ever take tools away.
    """
    return frozenset(LOADOUTS.get(loadout_id, ()))


def merge_loadouts(*loadout_ids: str) -> list[ToolSpec]:
    """Combine loadouts into one deduplicated list in canonical order."""
    names: set[str] = set()
    for loadout_id in loadout_ids:
        names |= loadout_tools(loadout_id)
    return [tool for tool in ALL_TOOLS_ORDERED if tool.name in names]


def loadouts_for_tool(tool_name: str) -> list[str]:
    """Return every loadout id a tool belongs to, in LOADOUTS order."""
    return [loadout_id for loadout_id, names in LOADOUTS.items() if tool_name in names]
