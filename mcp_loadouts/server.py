"""
MCP server exposing the tool catalog behind loadout-based access control.

This module creates and runs the FastMCP server with:
- Every catalog tool registered (tools.py)
- A middleware that filters tools/list and guards tools/call through one
  ToolAccessService (access.py)
- Health and readiness HTTP endpoints (for Kubernetes probes)
- Structured JSON logging for every access decision
- Streamable HTTP transport

Architecture:
    For every MCP request:

    1. Client sends "Authorization: Bearer <jwt>" (or nothing at all)
    2. ToolAccessMiddleware reads the header via get_http_request()
    3. auth.validate_token() turns it into Claims; a missing or invalid
       token means the caller is unauthenticated
    4. tools/list: the access service resolves the permitted set and the
       full tool list is filtered down to it
    5. tools/call: the access service resolves the same permitted set,
       rejects the call if the tool is not in it, otherwise opens a tenant
       scope, binds it for the tool body and closes it afterwards

    Listing and calling share the resolution code, so a client can call
    exactly the tools it was shown.

Running the server:
    python -m mcp_loadouts.server

    This starts the server on http://0.0.0.0:8080 with:
    - MCP endpoint at /mcp (Streamable HTTP)
    - Health check at /health
    - Readiness check at /ready
"""

import asyncio
import json
import logging
import sys
import uuid
from typing import Any, Sequence

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from mcp_loadouts.access import (
    ToolAccessService,
    bind_tool_access,
    current_tool_access,
    filter_permitted,
)
from mcp_loadouts.auth import AuthError, Claims, validate_token
from mcp_loadouts.backends import ToolBackend, UnavailableBackend
from mcp_loadouts.config import Settings, settings
from mcp_loadouts.errors import ProviderError, ResourceAcquisitionError, ToolAccessError
from mcp_loadouts.providers import FailClosedPolicy, FileTenantStore
from mcp_loadouts.tenancy import LocalTenantScopes
from mcp_loadouts.tools import ALL_TOOLS_ORDERED, HEALTH_TOOL, loadouts_for_tool

# ---------------------------------------------------------------------------
# Structured JSON Logging
# ---------------------------------------------------------------------------


class JSONLogFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Example output:

        {"timestamp": "2026-02-06 10:30:00,123", "level": "INFO", "logger": "mcp-server",
         "message": "Tool call authorized", "subject": "agent", "tool": "execute_approved_query"}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Structured access data passed via logger.info("msg", extra={"auth_data": {...}})
        if hasattr(record, "auth_data"):
            log_entry.update(record.auth_data)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


handler = logging.StreamHandler(sys.stdout)
handler.setFormatter(JSONLogFormatter())

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    handlers=[handler],
)
logger = logging.getLogger("mcp-server")


# ---------------------------------------------------------------------------
# Access Middleware
# ---------------------------------------------------------------------------


class ToolAccessMiddleware(Middleware):
    """
    Loadout-based access control for tools/list and tools/call.

    Both hooks authenticate the same way and ask the same ToolAccessService,
    so the list a client sees is exactly the set of tools it can call.
    """

    def __init__(self, access: ToolAccessService):
        self.access = access

    def _get_auth_header(self) -> str | None:
        """
        Extract the Authorization header from the current HTTP request.

        Returns None if no HTTP request is available (e.g., stdio transport).
        """
        try:
            request = get_http_request()
            return request.headers.get("authorization")
        except RuntimeError:
            return None

    def _authenticate(self, request_id: str) -> Claims | None:
        """
        Return the caller's verified claims, or None for an anonymous caller.

        A token that fails validation is logged and treated exactly like no
        token: the caller is unauthenticated and gets the baseline tools.
        """
        auth_header = self._get_auth_header()
        if not auth_header:
            return None

        try:
            claims = validate_token(auth_header)
        except AuthError as e:
            logger.warning(
                "Authentication failed",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "decision": "unauthenticated",
                        "reason": e.message,
                    }
                },
            )
            return None

        logger.debug(
            "Authentication successful",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "subject": claims.subject,
                    "project_id": claims.project_id,
                }
            },
        )
        return claims

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        request_id = str(uuid.uuid4())[:8]
        claims = self._authenticate(request_id)

        resolution = await self.access.resolve(claims)
        all_tools = await call_next(context)
        visible = filter_permitted(all_tools, resolution.permitted)

        logger.info(
            "Tool list filtered",
            extra={
                "auth_data": {
                    "request_id": request_id,
                    "subject": resolution.subject,
                    "project_id": str(resolution.project_id) if resolution.project_id else None,
                    "principal": resolution.principal.value,
                    "total_tools": len(all_tools),
                    "visible_tools": len(visible),
                    "decision": "filtered",
                }
            },
        )
        return visible

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        request_id = str(uuid.uuid4())[:8]
        tool_name = context.message.name
        claims = self._authenticate(request_id)

        try:
            async with self.access.acquire(claims, tool_name) as access:
                logger.info(
                    "Tool call authorized",
                    extra={
                        "auth_data": {
                            "request_id": request_id,
                            "subject": access.subject,
                            "project_id": str(access.project_id) if access.project_id else None,
                            "principal": access.principal.value,
                            "tool": tool_name,
                            "decision": "allowed",
                        }
                    },
                )
                with bind_tool_access(access):
                    return await call_next(context)
        except ToolAccessError as e:
            # An ordinary outcome: the caller asked for something it doesn't have.
            logger.info(
                "Tool call denied",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "subject": claims.subject if claims else None,
                        "tool": tool_name,
                        "decision": "denied",
                        "reason": e.code,
                        "granted_by": loadouts_for_tool(tool_name),
                    }
                },
            )
            raise ToolError(e.message) from e
        except ResourceAcquisitionError as e:
            # Not a denial. The details stay in the server log.
            logger.error(
                "Tool call failed: tenant scope unavailable",
                extra={
                    "auth_data": {
                        "request_id": request_id,
                        "project_id": str(e.project_id),
                        "tool": tool_name,
                        "decision": "error",
                    }
                },
            )
            raise ToolError("internal error") from e


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def _register_tools(server: FastMCP, access_service: ToolAccessService, backend: ToolBackend) -> None:
    """Register every catalog tool, in canonical order, on the server."""

    async def health() -> dict[str, Any]:
        """Report engine health, and the project's datasource when known."""
        access = current_tool_access()
        result: dict[str, Any] = {"engine": "healthy", "version": settings.server_version}
        if access.project_id is not None:
            configured = await access_service.datasource_configured(access.project_id)
            result["project_id"] = str(access.project_id)
            result["datasource"] = "configured" if configured else "not_configured"
        return result

    async def echo(message: str) -> dict[str, Any]:
        """Echo the message back."""
        return {"echo": message}

    builtins = {HEALTH_TOOL: health, "echo": echo}

    for spec in ALL_TOOLS_ORDERED:
        fn = builtins.get(spec.name) or _backend_tool(spec.name, backend)
        server.tool(fn, name=spec.name, description=spec.description)


def _backend_tool(tool_name: str, backend: ToolBackend):
    async def call_backend(arguments: dict[str, Any] | None = None) -> Any:
        access = current_tool_access()
        return await backend.invoke(tool_name, arguments or {}, access)

    return call_backend


# ---------------------------------------------------------------------------
# Server assembly
# ---------------------------------------------------------------------------


def build_access_service(config: Settings) -> ToolAccessService:
    """Access service backed by the JSON tenant file named in the settings."""
    store = FileTenantStore(config.tenants_file)
    return ToolAccessService(
        config_provider=store,
        datasource_provider=store,
        installed_apps_provider=store,
        scopes=LocalTenantScopes(),
        policy=FailClosedPolicy(config.provider_timeout_seconds),
    )


def create_server(access_service: ToolAccessService, backend: ToolBackend | None = None) -> FastMCP:
    server = FastMCP(
        name=settings.server_name,
        instructions=(
            "MCP server for database access and ontology maintenance. The tools "
            "you can see depend on your credentials and on the project's MCP "
            "configuration."
        ),
        middleware=[ToolAccessMiddleware(access_service)],
    )
    _register_tools(server, access_service, backend or UnavailableBackend())

    # Plain HTTP endpoints for Kubernetes probes; not MCP, no authentication.

    @server.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness probe: is the server process alive and responsive?"""
        return JSONResponse({"status": "healthy"})

    @server.custom_route("/ready", methods=["GET"])
    async def readiness_check(request: Request) -> Response:
        """Readiness probe: can tenant facts be read?"""
        provider = access_service.config_provider
        if provider is None:
            return JSONResponse(
                {"status": "not_ready", "reason": "no tenant configuration provider"},
                status_code=503,
            )
        if isinstance(provider, FileTenantStore):
            try:
                await asyncio.to_thread(provider.load)
            except ProviderError as e:
                logger.error("Readiness check failed: %s", e)
                return JSONResponse(
                    {"status": "not_ready", "reason": "tenant file unreadable"},
                    status_code=503,
                )
        body: dict[str, Any] = {"status": "ready"}
        if isinstance(access_service.scopes, LocalTenantScopes):
            body["active_scopes"] = access_service.scopes.active
        return JSONResponse(body)

    return server


mcp = create_server(build_access_service(settings))


# ---------------------------------------------------------------------------
# Server entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    logger.info(
        "Starting MCP server on %s:%d (transport=streamable-http, tenants=%s)",
        settings.host,
        settings.port,
        settings.tenants_file,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )
