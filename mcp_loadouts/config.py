"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables. All settings use the MCP_ prefix, for example
MCP_PORT, MCP_JWT_SECRET_KEY or MCP_TENANTS_FILE.

Locally, you can set them via environment variables or a .env file.
"""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the MCP_ prefix.
    For example, `host` reads from MCP_HOST, `provider_timeout_seconds` reads
    from MCP_PROVIDER_TIMEOUT_SECONDS.
    """

    # --- Server settings ---

    # "0.0.0.0" listens on all interfaces, which is what a container needs.
    host: str = "0.0.0.0"
    port: int = 8080

    # Logging verbosity. Maps to Python's logging levels.
    log_level: str = "info"

    # Reported by the server handshake and by the health tool.
    server_name: str = "mcp-loadouts"
    server_version: str = "0.1.0"

    # --- Authentication settings ---

    # Secret used to validate JWT signatures.
    # Default is for local development only - NEVER use this in production.
    jwt_secret_key: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"

    # --- Tenant facts ---

    # JSON file holding per-project tool group configuration, default
    # datasource and installed apps. Checked on every resolution and parsed
    # again only when it changes.
    tenants_file: Path = Path("tenants.json")

    # Deadline applied to every external lookup made while resolving tool
    # access (config, datasource, installed apps). A lookup that exceeds it
    # counts as a failed gate and resolves toward denial.
    provider_timeout_seconds: float = 5.0

    model_config = {
        "env_prefix": "MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


# Singleton instance: import this from other modules.
settings = Settings()
