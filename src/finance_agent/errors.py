"""
Error taxonomy for the finance agent.

Every error carries a stable ``code`` that ends up in the user-visible
``[ERROR <code>] <message>`` stream marker.
"""


class FinanceAgentError(Exception):
    """Base class for all agent errors."""

    code = "AGENT_ERROR"

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_chunk(self) -> str:
        """Render the error as a terminal stream chunk."""
        return f"[ERROR {self.code}] {self.message}"


class InvalidRequest(FinanceAgentError):
    """Malformed turn submission."""

    code = "INVALID_REQUEST"


class UnknownSession(FinanceAgentError):
    """A store operation referenced a session that was never resolved."""

    code = "UNKNOWN_SESSION"


class DuplicateTool(FinanceAgentError):
    """A tool with the same name is already registered."""

    code = "DUPLICATE_TOOL"


class SchemaValidationError(FinanceAgentError):
    """Tool arguments do not match the tool's input schema."""

    code = "SCHEMA_VALIDATION_ERROR"


class ToolLoopExceeded(FinanceAgentError):
    """The turn hit the tool dispatch ceiling."""

    code = "TOOL_LOOP_EXCEEDED"


class ModelError(FinanceAgentError):
    """An error returned by the model itself (bad request, quota, safety)."""

    code = "MODEL_ERROR"


class ModelTransportError(FinanceAgentError):
    """The model collaborator could not be reached."""

    code = "MODEL_UNAVAILABLE"
