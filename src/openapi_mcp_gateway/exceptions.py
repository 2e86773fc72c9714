class GatewayError(Exception):
    """Base exception for gateway errors."""
    pass

class ConfigurationError(GatewayError):
    """Raised when the configuration file is missing or invalid."""
    pass

class LoaderError(GatewayError):
    """Raised when an OpenAPI document cannot be loaded."""
    pass

class DereferenceError(LoaderError):
    """Raised when a reference cannot be resolved."""
    pass

class SessionError(GatewayError):
    """Raised when a request does not belong to a usable session."""
    pass

class SessionNotFoundError(SessionError):
    """Raised when the session identifier is missing, unknown or closed."""
    pass

class AuthenticationError(SessionError):
    """Raised when the bearer token is missing or rejected upstream."""
    pass

class ToolNotFoundError(GatewayError):
    """Raised when a tool name is not in the catalog."""
    pass

class ToolAccessDeniedError(GatewayError):
    """Raised when a tool is outside the session's category."""
    pass

class ToolExecutionError(GatewayError):
    """Raised when the upstream call fails or returns a non-success status."""

    def __init__(self, message: str, status: int = 0, body=None):
        super().__init__(message)
        self.status = status
        self.body = body
