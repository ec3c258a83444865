"""
Tenant-scoped resources handed to authorized tool bodies.

A TenantScope stands for whatever per-project handle a tool body needs (in a
database-backed deployment, a connection with row-level security bound to
the project). The access layer opens exactly one per authorized call and
closes it when the call ends, however it ends.
"""

import logging
import uuid
from typing import Any, Protocol

logger = logging.getLogger("mcp-server.tenancy")


class TenantScope:
    """
    A per-call handle bound to one project.

    `state` is scratch space private to the call. Closing is idempotent.
    """

    def __init__(self, project_id: uuid.UUID):
        self.project_id = project_id
        self.state: dict[str, Any] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.state.clear()

    async def __aenter__(self) -> "TenantScope":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class TenantScopeFactory(Protocol):
    async def open(self, project_id: uuid.UUID) -> TenantScope: ...


class LocalTenantScopes:
    """
    Opens in-process TenantScopes and keeps count of the ones still open.

    `active` is reported by the /ready endpoint as `active_scopes`; it must
    drop back to zero once every call has finished.
    """

    def __init__(self) -> None:
        self._open: set[TenantScope] = set()
        self.opened_total = 0

    @property
    def active(self) -> int:
        return len(self._open)

    async def open(self, project_id: uuid.UUID) -> TenantScope:
        scope = _TrackedScope(project_id, self)
        self._open.add(scope)
        self.opened_total += 1
        logger.debug("Opened tenant scope for project %s", project_id)
        return scope

    def _release(self, scope: TenantScope) -> None:
        self._open.discard(scope)


class _TrackedScope(TenantScope):
    def __init__(self, project_id: uuid.UUID, owner: LocalTenantScopes):
        super().__init__(project_id)
        self._owner = owner

    async def close(self) -> None:
        if self.closed:
            return
        await super().close()
        self._owner._release(self)
