"""Principal classification for an inbound call."""

import enum
import uuid

from mcp_loadouts.auth import Claims
from mcp_loadouts.errors import InvalidProjectIDError

# The subject API-key agents authenticate with. It is the only thing that
# separates an Agent from a User; roles are not consulted.
AGENT_SUBJECT = "agent"


class PrincipalClass(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AGENT = "agent"
    USER = "user"


def classify_principal(claims: Claims | None) -> PrincipalClass:
    if claims is None:
        return PrincipalClass.UNAUTHENTICATED
    if claims.subject == AGENT_SUBJECT:
        return PrincipalClass.AGENT
    return PrincipalClass.USER


def parse_project_id(claims: Claims) -> uuid.UUID:
    """
    Parse the project id carried by the claims.

    Raises:
        InvalidProjectIDError: If the claim is empty or not a UUID
    """
    try:
        return uuid.UUID(claims.project_id)
    except (ValueError, AttributeError, TypeError):
        raise InvalidProjectIDError(claims.project_id)
