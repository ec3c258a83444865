"""
Shared test fixtures for the MCP server test suite.

Pytest fixtures are reusable setup functions that tests can request by name.
They run before each test and provide the test with preconfigured objects.

Key fixtures:
- make_token / make_auth_header: Factories for JWTs with any claims
- project_id / datasource_id: Fresh UUIDs for the tenant under test
- store: An InMemoryTenantStore implementing all three fact providers
- scopes: LocalTenantScopes, so tests can assert every scope was closed
- access_service: A ToolAccessService wired to store and scopes
- user_claims / agent_claims: Verified claims for the project under test

Testing approach:
- test_auth.py: validate_token() in isolation, plus the token script.
- test_loadouts.py: Pins the catalog and loadout membership.
- test_resolver.py: The pure resolver, one gate at a time.
- test_access.py: The access service: list/invoke consistency, fail-closed
  providers, tenant scope lifetime, error messages.
- test_tools.py: The full MCP server over in-memory HTTP.
"""

import asyncio
import datetime
import uuid

import jwt
import pytest

from mcp_loadouts.access import ToolAccessService
from mcp_loadouts.auth import Claims
from mcp_loadouts.config import settings
from mcp_loadouts.errors import ProviderError
from mcp_loadouts.models import APP_AI_AGENTS, APP_AI_DATA_LIAISON
from mcp_loadouts.principal import AGENT_SUBJECT
from mcp_loadouts.providers import FailClosedPolicy, InMemoryTenantStore
from mcp_loadouts.tenancy import LocalTenantScopes

# ---------------------------------------------------------------------------
# Known test secret
# ---------------------------------------------------------------------------
# This must match settings.jwt_secret_key so that tokens generated in tests
# are accepted by validate_token(). The default is "dev-secret-change-me".
TEST_SECRET = settings.jwt_secret_key
TEST_ALGORITHM = settings.jwt_algorithm

# A user subject that looks like what the identity service issues.
TEST_USER_ID = "2b1e5c1e-7f0d-4c55-9a43-1f3f4f6f8a90"


# ---------------------------------------------------------------------------
# Token factory fixture
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to generate JWT tokens for testing.

    Usage in tests:
        def test_something(make_token):
            token = make_token(sub="alice", project_id=str(uuid.uuid4()))
            # token is a raw JWT string (not "Bearer ..." prefixed)
    """

    def _make_token(
        sub: str = TEST_USER_ID,
        project_id: str | None = None,
        roles: list[str] | None = None,
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_hours: float = 1.0,
        extra_claims: dict | None = None,
        include_exp: bool = True,
        include_sub: bool = True,
    ) -> str:
        """
        Generate a signed JWT token with the given claims.

        Args:
            sub: Subject claim ("agent" for an agent token)
            project_id: Project claim (None means omit the claim entirely)
            roles: List of roles (None means omit the claim entirely)
            secret: Signing key
            algorithm: JWT algorithm
            exp_hours: Hours until expiration (negative = already expired)
            extra_claims: Additional claims to include in the payload
            include_exp: Whether to include the exp claim
            include_sub: Whether to include the sub claim
        """
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {}

        if include_sub:
            payload["sub"] = sub

        if project_id is not None:
            payload["project_id"] = project_id

        if roles is not None:
            payload["roles"] = roles

        if include_exp:
            payload["exp"] = now + datetime.timedelta(hours=exp_hours)

        payload["iat"] = now

        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


@pytest.fixture
def make_auth_header(make_token):
    """Convenience fixture that returns a full "Bearer <token>" string."""

    def _make_auth_header(**kwargs) -> str:
        return f"Bearer {make_token(**kwargs)}"

    return _make_auth_header


# ---------------------------------------------------------------------------
# Tenant fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def project_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def datasource_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def store() -> InMemoryTenantStore:
    return InMemoryTenantStore()


@pytest.fixture
def scopes() -> LocalTenantScopes:
    return LocalTenantScopes()


@pytest.fixture
def access_service(store, scopes) -> ToolAccessService:
    return ToolAccessService(
        config_provider=store,
        datasource_provider=store,
        installed_apps_provider=store,
        scopes=scopes,
        policy=FailClosedPolicy(timeout_seconds=0.5),
    )


@pytest.fixture
def user_claims(project_id) -> Claims:
    return Claims(subject=TEST_USER_ID, project_id=str(project_id))


@pytest.fixture
def agent_claims(project_id) -> Claims:
    return Claims(subject=AGENT_SUBJECT, project_id=str(project_id))


@pytest.fixture
def configure_project(store, project_id, datasource_id):
    """
    Factory fixture that registers the project under test in the store.

    Defaults give a project with a datasource and both add-on apps
    installed, so individual tests only spell out what they change.

    Usage in tests:
        def test_something(configure_project):
            configure_project(tool_groups={"developer": {"addQueryTools": False}})
    """

    def _configure_project(
        with_datasource: bool = True,
        installed_apps=(APP_AI_DATA_LIAISON, APP_AI_AGENTS),
        tool_groups=None,
        mcp_config=None,
    ) -> None:
        store.set_project(
            project_id,
            datasource_id=datasource_id if with_datasource else None,
            installed_apps=installed_apps,
            tool_groups=tool_groups,
            mcp_config=mcp_config,
        )

    return _configure_project


# ---------------------------------------------------------------------------
# Misbehaving providers
# ---------------------------------------------------------------------------
class FailingProvider:
    """Every lookup raises."""

    def __init__(self):
        self.calls = 0

    async def get_tool_groups_state(self, project_id):
        self.calls += 1
        raise ProviderError("config store unavailable")

    async def get_default_datasource_id(self, project_id):
        self.calls += 1
        raise ProviderError("datasource store unavailable")

    async def is_installed(self, project_id, app_id):
        self.calls += 1
        raise ProviderError("app registry unavailable")


class SlowProvider:
    """Every lookup hangs well past any test timeout."""

    async def get_tool_groups_state(self, project_id):
        await asyncio.sleep(60)

    async def get_default_datasource_id(self, project_id):
        await asyncio.sleep(60)

    async def is_installed(self, project_id, app_id):
        await asyncio.sleep(60)
        return True


class FailingScopes:
    """A scope factory that can never open a scope."""

    async def open(self, project_id):
        raise ConnectionError("connection pool exhausted")


@pytest.fixture
def failing_provider() -> FailingProvider:
    return FailingProvider()


@pytest.fixture
def slow_provider() -> SlowProvider:
    return SlowProvider()


@pytest.fixture
def failing_scopes() -> FailingScopes:
    return FailingScopes()
