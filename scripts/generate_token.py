"""
CLI utility to mint JWT tokens for exercising the MCP server locally.

In production, tokens come from the platform's identity service: users get
one when they sign in, agents get one from their API key. This script stands
in for both, minting tokens with the claims the server reads:

    sub          "agent" for an API-key agent, anything else is a user
    project_id   the project (tenant) the caller acts in
    roles        carried through for audit, not used for tool access

Usage examples:

    # User token for a project
    python -m scripts.generate_token --sub 2b1e5c1e-7f0d-4c55-9a43-1f3f4f6f8a90 \\
        --project-id 6f1c2a44-0d2b-4b8e-8d55-3b1f7f0a9c11

    # Agent token (sub is forced to "agent")
    python -m scripts.generate_token --agent --project-id 6f1c2a44-0d2b-4b8e-8d55-3b1f7f0a9c11

    # With roles and a custom expiration (2 hours)
    python -m scripts.generate_token --sub alice --project-id <uuid> --role admin data --exp-hours 2

    # Custom secret (must match MCP_JWT_SECRET_KEY on the server)
    python -m scripts.generate_token --sub alice --project-id <uuid> --secret my-prod-secret

    # Expired token (for testing rejection)
    python -m scripts.generate_token --sub alice --project-id <uuid> --exp-hours -1

The generated token can be used with curl:

    curl -X POST http://localhost:8080/mcp \\
      -H "Content-Type: application/json" \\
      -H "Authorization: Bearer <token>" \\
      -d '{"jsonrpc":"2.0","id":1,"method":"initialize",...}'
"""

import argparse
import datetime

import jwt

from mcp_loadouts.principal import AGENT_SUBJECT


def generate_token(
    subject: str,
    project_id: str,
    secret: str,
    roles: list[str] | None = None,
    algorithm: str = "HS256",
    exp_hours: float = 8.0,
) -> str:
    """
    Generate a signed JWT token with the given claims.

    Args:
        subject: The "sub" claim. "agent" marks an API-key agent.
        project_id: The project the token is scoped to
        secret: The signing key (must match the server's MCP_JWT_SECRET_KEY)
        roles: Role names to embed (omitted from the token when None)
        algorithm: JWT signing algorithm (default: HS256)
        exp_hours: Hours until expiration (negative = already expired)

    Returns:
        The encoded JWT token string
    """
    now = datetime.datetime.now(datetime.timezone.utc)
    expiration = now + datetime.timedelta(hours=exp_hours)

    payload = {
        "sub": subject,
        "project_id": project_id,
        "iat": now,
        "exp": expiration,
    }
    if roles is not None:
        payload["roles"] = roles

    return jwt.encode(payload, secret, algorithm=algorithm)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate JWT tokens for the MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  User token:
    %(prog)s --sub alice --project-id <uuid>

  Agent token:
    %(prog)s --agent --project-id <uuid>

  Expired token (for testing):
    %(prog)s --sub alice --project-id <uuid> --exp-hours -1
        """,
    )

    identity = parser.add_mutually_exclusive_group(required=True)
    identity.add_argument(
        "--sub",
        help="Subject claim for a user token (e.g., a user id)",
    )
    identity.add_argument(
        "--agent",
        action="store_true",
        help=f"Mint an agent token (sub={AGENT_SUBJECT!r})",
    )
    parser.add_argument(
        "--project-id",
        required=True,
        help="Project (tenant) id the token is scoped to",
    )
    parser.add_argument(
        "--role",
        nargs="+",
        default=None,
        help="Space-separated list of roles (e.g., admin data)",
    )
    parser.add_argument(
        "--secret",
        default="dev-secret-change-me",
        help="JWT signing secret (must match server's MCP_JWT_SECRET_KEY)",
    )
    parser.add_argument(
        "--algorithm",
        default="HS256",
        help="JWT signing algorithm (default: HS256)",
    )
    parser.add_argument(
        "--exp-hours",
        type=float,
        default=8.0,
        help="Hours until token expires (negative = already expired, default: 8)",
    )

    args = parser.parse_args()
    subject = AGENT_SUBJECT if args.agent else args.sub

    token = generate_token(
        subject=subject,
        project_id=args.project_id,
        secret=args.secret,
        roles=args.role,
        algorithm=args.algorithm,
        exp_hours=args.exp_hours,
    )

    exp_time = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(
        hours=args.exp_hours
    )

    print(f"Subject:    {subject}")
    print(f"Project:    {args.project_id}")
    print(f"Roles:      {args.role or []}")
    print(f"Expires:    {exp_time.isoformat()}")
    print(f"Algorithm:  {args.algorithm}")
    print()
    print(f"Token: {token}")

    print()
    print("Usage with curl (initialize MCP session):")
    print('  curl -X POST http://localhost:8080/mcp \\')
    print('    -H "Content-Type: application/json" \\')
    print('    -H "Accept: application/json, text/event-stream" \\')
    print(f'    -H "Authorization: Bearer {token}" \\')
    print(
        '    -d \'{"jsonrpc":"2.0","id":1,"method":"initialize",'
        '"params":{"protocolVersion":"2025-03-26","capabilities":{},'
        '"clientInfo":{"name":"test","version":"1.0"}}}\''
    )


if __name__ == "__main__":
    main()
