"""
Tool backends: where authorized calls go for their business logic.

The server registers every catalog tool, but apart from `health` and `echo`
the tool bodies live elsewhere (query execution, schema introspection,
ontology and glossary maintenance). A ToolBackend receives the call only
after the access middleware has authorized it, together with the ToolAccess
carrying the open tenant scope.
"""

import logging
from typing import Any, Protocol

from fastmcp.exceptions import ToolError

from mcp_loadouts.access import ToolAccess

logger = logging.getLogger("mcp-server.backends")


class ToolBackend(Protocol):
    async def invoke(self, tool_name: str, arguments: dict[str, Any], access: ToolAccess) -> Any: ...


class UnavailableBackend:
    """Backend for a server started without tool implementations."""

    async def invoke(self, tool_name: str, arguments: dict[str, Any], access: ToolAccess) -> Any:
        logger.warning("No backend configured for tool %s", tool_name)
        raise ToolError(f"{tool_name} is not available on this server")
