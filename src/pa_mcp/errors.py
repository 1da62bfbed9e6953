"""Error taxonomy for tool invocations.

Every failure inside a tool call is converted to one of these kinds at the
Tool Invocation Wrapper boundary and returned to the host as a JSON
envelope with a human-readable ``error`` string.
"""

from pathlib import Path
from typing import Any


class ToolError(Exception):
    """Base class for classified tool failures."""

    kind = "operation"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_envelope(self) -> dict[str, Any]:
        """Convert to the uniform response envelope."""
        return {"error": self.message, "error_type": self.kind}


class ConfigurationError(ToolError):
    """No usable credential tuple could be resolved."""

    kind = "configuration"


class CorruptCredentialsError(ConfigurationError):
    """A credential or key file exists but does not hold a valid JSON object."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Credentials file {path} is corrupt: {reason}")
        self.path = path


class AuthenticationError(ToolError):
    """Credentials are present but rejected, expired or unrefreshable."""

    kind = "authentication"

    def __init__(self, message: str, remediation: str | None = None) -> None:
        if remediation:
            message = f"{message}. Please re-authenticate by running: {remediation}"
        super().__init__(message)
        self.remediation = remediation


class ScopePermissionError(ToolError):
    """Credentials are valid but lack a required OAuth scope."""

    kind = "permission"

    def __init__(self, message: str, required_scopes: list[str] | None = None) -> None:
        self.required_scopes = list(required_scopes or [])
        if self.required_scopes:
            message = (
                f"{message}. Please ensure your app has the required OAuth scopes "
                f"approved: {', '.join(self.required_scopes)}"
            )
        super().__init__(message)


class OperationError(ToolError):
    """Any other upstream or validation failure, surfaced verbatim."""

    kind = "operation"

    def __init__(self, message: str) -> None:
        super().__init__(f"Tool execution failed: {message}")
