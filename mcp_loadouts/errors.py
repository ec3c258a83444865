"""
Error taxonomy for tool access.

Two families:

- ToolAccessError and its subclasses are expected outcomes. Their message is
  shown to the MCP client verbatim so the calling model can act on it.
- Everything else (ResourceAcquisitionError, ProviderError) is an internal
  failure. It is logged with full context server-side and reaches the client
  only as an opaque internal error.
"""


class ToolAccessError(Exception):
    """
    Base class for user-facing access outcomes.

    Attributes:
        code: Stable machine-readable code (e.g. "tool_not_enabled")
        message: Text returned to the MCP client
    """

    code = "access_denied"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationRequiredError(ToolAccessError):
    """No verified claims are attached to the call."""

    code = "authentication_required"

    def __init__(self) -> None:
        super().__init__("authentication required")


class InvalidProjectIDError(ToolAccessError):
    """Claims are present but the project id in them cannot be parsed."""

    code = "invalid_project_id"

    def __init__(self, raw_value: str = ""):
        self.raw_value = raw_value
        super().__init__("invalid project ID")


class ToolNotEnabledError(ToolAccessError):
    """The tool is not in the caller's permitted set. The common denial."""

    code = "tool_not_enabled"

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name} tool is not enabled for this project")


class ResourceAcquisitionError(Exception):
    """The tenant-scoped resource for an authorized call could not be opened."""

    def __init__(self, project_id, cause: BaseException | None = None):
        self.project_id = project_id
        self.cause = cause
        super().__init__(f"failed to acquire tenant scope for project {project_id}")


class ProviderError(Exception):
    """An external fact provider failed."""


class ConfigFetchError(ProviderError):
    """Tool group configuration could not be read or parsed."""
