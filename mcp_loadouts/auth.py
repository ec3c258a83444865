"""
JWT token validation and claim extraction.

This module turns the HTTP Authorization header into the auth context the
access layer consumes:
- Extracts Bearer tokens from the Authorization header
- Validates the JWT signature and expiration
- Extracts the subject, project and role claims

It answers "who is calling, for which project" and nothing more. Deciding
what that caller may see or invoke happens in `mcp_loadouts.access`.

Token structure (JWT payload):
    {
        "sub": "agent",                  # "agent" for API-key agents, else a user id
        "project_id": "6f1c...",          # The tenant the caller acts in
        "roles": ["admin"],               # Carried through, never used for tool access
        "exp": 1738800000
    }
"""

from dataclasses import dataclass, field

import jwt

from mcp_loadouts.config import settings


class AuthError(Exception):
    """
    Raised when token validation fails for any reason.

    The detailed reason is logged server-side; callers that fail validation
    are treated as unauthenticated.

    Attributes:
        message: Human-readable error description (logged server-side)
        status_code: HTTP status code associated with the failure
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class Claims:
    """
    Verified claims extracted from a JWT.

    Frozen so that nothing downstream can rewrite the identity after it was
    verified.

    Attributes:
        subject: The "sub" claim. The literal "agent" marks API-key agents.
        project_id: The raw "project_id" claim. Not parsed here: a malformed
                    value is reported by the access layer, not by auth.
        roles: Role names from the token (e.g. ["admin", "data"])
    """

    subject: str
    project_id: str = ""
    roles: tuple[str, ...] = field(default_factory=tuple)


def _string_list_claim(payload: dict, name: str) -> tuple[str, ...]:
    value = payload.get(name, [])
    if not isinstance(value, list):
        raise AuthError(f"Invalid {name} claim: must be a list")
    if not all(isinstance(item, str) for item in value):
        raise AuthError(f"Invalid {name} claim: all entries must be strings")
    return tuple(value)


def validate_token(authorization_header: str | None) -> Claims:
    """
    Validate a Bearer token from the Authorization header.

    Steps:
    1. Check that a header is present
    2. Extract the token from "Bearer <token>" format
    3. Decode and verify the JWT (signature + expiration)
    4. Extract and validate the claims (sub, project_id, roles)

    Args:
        authorization_header: The raw Authorization header value,
                              expected format: "Bearer <jwt-token>"

    Returns:
        Claims with the validated subject, project and roles

    Raises:
        AuthError: If any validation step fails
    """
    if not authorization_header:
        raise AuthError("Missing Authorization header")

    # The "Bearer" scheme (RFC 6750) is matched case-insensitively.
    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")

    token = parts[1]

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}")

    subject = payload.get("sub", "")

    project_id = payload.get("project_id", "")
    if not isinstance(project_id, str):
        raise AuthError("Invalid project_id claim: must be a string")

    roles = _string_list_claim(payload, "roles")

    return Claims(subject=subject, project_id=project_id, roles=roles)
