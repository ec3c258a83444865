"""
Tests for the tool catalog and loadout registry (mcp_loadouts/tools.py).

Loadout membership decides who can call what, so these tests spell it out
verbatim. Adding, removing or moving a tool must fail here first and get a
reviewer's attention.
"""

import pytest

from mcp_loadouts.tools import (
    ALL_TOOLS_ORDERED,
    HEALTH_TOOL,
    LOADOUT_DATA_LIAISON_BUSINESS,
    LOADOUT_DATA_LIAISON_DEVELOPER,
    LOADOUT_DEFAULT,
    LOADOUT_DEVELOPER_CORE,
    LOADOUT_LIMITED_QUERY,
    LOADOUT_ONTOLOGY_MAINTENANCE,
    LOADOUT_ONTOLOGY_QUESTIONS,
    LOADOUT_QUERY,
    LOADOUTS,
    get_tool_spec,
    loadout_tools,
    loadouts_for_tool,
    merge_loadouts,
)

# ---------------------------------------------------------------------------
# Pinned membership
# ---------------------------------------------------------------------------

EXPECTED_LOADOUTS = {
    LOADOUT_DEFAULT: {"health"},
    LOADOUT_DEVELOPER_CORE: {"echo", "execute"},
    LOADOUT_LIMITED_QUERY: {"list_approved_queries", "execute_approved_query"},
    LOADOUT_QUERY: {
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
    },
    LOADOUT_ONTOLOGY_MAINTENANCE: {
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
        "refresh_schema",
        "scan_data_changes",
        "list_pending_changes",
        "approve_change",
        "reject_change",
        "approve_all_changes",
    },
    LOADOUT_ONTOLOGY_QUESTIONS: {
        "list_ontology_questions",
        "dismiss_ontology_question",
        "escalate_ontology_question",
        "resolve_ontology_question",
        "skip_ontology_question",
    },
    LOADOUT_DATA_LIAISON_BUSINESS: {"suggest_approved_query", "suggest_query_update"},
    LOADOUT_DATA_LIAISON_DEVELOPER: {
        "list_query_suggestions",
        "approve_query_suggestion",
        "reject_query_suggestion",
        "create_approved_query",
        "update_approved_query",
        "delete_approved_query",
    },
}


class TestLoadoutMembership:
    """Exact membership of every loadout."""

    def test_loadout_ids_are_exactly_the_known_set(self):
        assert set(LOADOUTS) == set(EXPECTED_LOADOUTS)

    @pytest.mark.parametrize("loadout_id", sorted(EXPECTED_LOADOUTS))
    def test_loadout_membership_is_pinned(self, loadout_id):
        assert loadout_tools(loadout_id) == frozenset(EXPECTED_LOADOUTS[loadout_id])

    @pytest.mark.parametrize("loadout_id", sorted(EXPECTED_LOADOUTS))
    def test_loadout_has_no_duplicate_entries(self, loadout_id):
        assert len(LOADOUTS[loadout_id]) == len(set(LOADOUTS[loadout_id]))

    def test_limited_query_is_a_subset_of_query(self):
        """Agents never get anything a query-enabled user doesn't."""
        assert loadout_tools(LOADOUT_LIMITED_QUERY) <= loadout_tools(LOADOUT_QUERY)

    def test_data_liaison_tools_are_not_in_query_or_maintenance(self):
        """Data Liaison tools are only reachable through their own loadouts."""
        liaison = loadout_tools(LOADOUT_DATA_LIAISON_BUSINESS) | loadout_tools(LOADOUT_DATA_LIAISON_DEVELOPER)
        assert not liaison & loadout_tools(LOADOUT_QUERY)
        assert not liaison & loadout_tools(LOADOUT_ONTOLOGY_MAINTENANCE)

    def test_health_is_only_in_default(self):
        assert loadouts_for_tool(HEALTH_TOOL) == [LOADOUT_DEFAULT]

    def test_unknown_loadout_is_empty(self):
        assert loadout_tools("superuser") == frozenset()
        assert merge_loadouts("superuser") == []


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class TestCatalog:
    """The canonical catalog that tools/list is ordered by."""

    def test_catalog_names_are_unique(self):
        names = [tool.name for tool in ALL_TOOLS_ORDERED]
        assert len(names) == len(set(names))

    def test_every_loadout_tool_is_in_the_catalog(self):
        for loadout_id, names in LOADOUTS.items():
            for name in names:
                assert get_tool_spec(name) is not None, f"{name} in {loadout_id} is not in the catalog"

    def test_every_catalog_tool_belongs_to_a_loadout(self):
        """A tool no loadout grants could never be called."""
        for tool in ALL_TOOLS_ORDERED:
            assert loadouts_for_tool(tool.name), f"{tool.name} is not in any loadout"

    def test_health_comes_first(self):
        assert ALL_TOOLS_ORDERED[0].name == HEALTH_TOOL

    def test_every_tool_has_a_description(self):
        for tool in ALL_TOOLS_ORDERED:
            assert tool.description.strip(), tool.name

    def test_unknown_tool_lookups(self):
        assert get_tool_spec("drop_database") is None
        assert loadouts_for_tool("drop_database") == []


# ---------------------------------------------------------------------------
# Merging and ordering
# ---------------------------------------------------------------------------


class TestMergeLoadouts:
    """merge_loadouts() deduplicates and sorts into canonical order."""

    def test_merge_deduplicates_shared_tools(self):
        """Limited Query and Query overlap; each tool appears once."""
        merged = merge_loadouts(LOADOUT_LIMITED_QUERY, LOADOUT_QUERY)
        names = [tool.name for tool in merged]

        assert len(names) == len(set(names))
        assert set(names) == EXPECTED_LOADOUTS[LOADOUT_QUERY]

    def test_merge_is_in_canonical_order_regardless_of_argument_order(self):
        forward = merge_loadouts(LOADOUT_DEFAULT, LOADOUT_DEVELOPER_CORE, LOADOUT_QUERY)
        backward = merge_loadouts(LOADOUT_QUERY, LOADOUT_DEVELOPER_CORE, LOADOUT_DEFAULT)

        assert forward == backward
        canonical = [tool.name for tool in ALL_TOOLS_ORDERED]
        orders = [canonical.index(tool.name) for tool in forward]
        assert orders == sorted(orders)

    def test_merge_default_and_developer_core(self):
        assert [tool.name for tool in merge_loadouts(LOADOUT_DEFAULT, LOADOUT_DEVELOPER_CORE)] == [
            "health",
            "echo",
            "execute",
        ]

    def test_loadouts_for_tool_lists_every_grant(self):
        """Denial logs name these loadouts as what would have granted the tool."""
        assert loadouts_for_tool("execute_approved_query") == [LOADOUT_LIMITED_QUERY, LOADOUT_QUERY]
        assert loadouts_for_tool("suggest_approved_query") == [LOADOUT_DATA_LIAISON_BUSINESS]
