"""
ToolStream - Custom exceptions for error handling.
"""

from typing import Any, Optional


class ToolStreamError(Exception):
    """Base exception for all ToolStream errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response = response


class ValidationError(ToolStreamError):
    """Raised when a conversation or tool schema is malformed.

    Always raised before any request reaches the model endpoint.
    """

    def __init__(self, message: str, errors: Optional[list[str]] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.errors = errors or []


class InvalidToolDefinition(ValidationError):
    """Raised when a tool's name, description or parameter schema is invalid."""

    pass


class InvalidMessage(ValidationError):
    """Raised when a conversation message has the wrong shape."""

    def __init__(self, message: str, index: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.index = index


class RemoteError(ToolStreamError):
    """Raised when the model endpoint answers with a non-success response."""

    pass


class ProtocolError(ToolStreamError):
    """Raised when a reply payload cannot be interpreted."""

    def __init__(self, message: str, payload: Any = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.payload = payload


class ToolExecutionError(ToolStreamError):
    """Raised when a tool handler fails.

    The registry converts this into a structured error result; it only
    escapes when a handler is called directly.
    """

    def __init__(self, message: str, tool_name: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.tool_name = tool_name


class ToolNotFoundError(ToolStreamError):
    """Raised when looking up a tool that was never registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"tool not found: {tool_name}")
        self.tool_name = tool_name


class TooManyToolRounds(ToolStreamError):
    """Raised when the model keeps requesting tools past the round limit."""

    def __init__(self, max_rounds: int) -> None:
        super().__init__(f"Maximum number of tool calls reached ({max_rounds})")
        self.max_rounds = max_rounds


class Cancelled(ToolStreamError):
    """Raised when the caller cancels a run in progress."""

    def __init__(self, message: str = "Orchestration cancelled") -> None:
        super().__init__(message)
