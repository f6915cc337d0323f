"""
ToolStream - Streaming multi-turn tool-call orchestration for generative models.

Streams a model's reply to the caller while transparently running the tools
the model asks for, feeding their results back and continuing until the
model produces a final answer.
"""

from .client import CompletionClient
from .config import ClientConfig
from .exceptions import (
    Cancelled,
    InvalidMessage,
    InvalidToolDefinition,
    ProtocolError,
    RemoteError,
    ToolExecutionError,
    ToolNotFoundError,
    TooManyToolRounds,
    ToolStreamError,
    ValidationError,
)
from .models import (
    Chunk,
    GenerationOptions,
    Message,
    Part,
    Reply,
    Role,
    TextPart,
    ToolInvocation,
    ToolResult,
    part_from_dict,
)
from .orchestrator import (
    OrchestrationResult,
    OrchestrationRound,
    OrchestrationState,
    StreamOrchestrator,
)
from .streaming import (
    ChannelClosedError,
    EventChannel,
    EventType,
    QueueChannel,
    StreamEvent,
    WriterChannel,
)
from .tools import ToolCallResult, ToolDefinition, ToolRegistry, define_tool, load_registry
from .validation import (
    validate_conversation,
    validate_message,
    validate_parameter_schema,
    validate_tool,
    validate_tool_definition,
)


def get_server():
    """Lazy import for server components (requires server extras)."""
    try:
        from .server import ServerConfig, ToolStreamServer, create_app

        return ToolStreamServer, ServerConfig, create_app
    except ImportError:
        raise ImportError(
            "Server components require the 'server' extras. "
            "Install with: pip install toolstream[server]"
        )


__version__ = "0.1.0"

__all__ = [
    # Client
    "CompletionClient",
    "ClientConfig",
    # Orchestration
    "StreamOrchestrator",
    "OrchestrationResult",
    "OrchestrationRound",
    "OrchestrationState",
    # Models
    "Chunk",
    "GenerationOptions",
    "Message",
    "Part",
    "Reply",
    "Role",
    "TextPart",
    "ToolInvocation",
    "ToolResult",
    "part_from_dict",
    # Streaming
    "ChannelClosedError",
    "EventChannel",
    "EventType",
    "QueueChannel",
    "StreamEvent",
    "WriterChannel",
    # Tools
    "ToolCallResult",
    "ToolDefinition",
    "ToolRegistry",
    "define_tool",
    "load_registry",
    # Validation
    "validate_conversation",
    "validate_message",
    "validate_parameter_schema",
    "validate_tool",
    "validate_tool_definition",
    # Exceptions
    "Cancelled",
    "InvalidMessage",
    "InvalidToolDefinition",
    "ProtocolError",
    "RemoteError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "TooManyToolRounds",
    "ToolStreamError",
    "ValidationError",
    "get_server",
]
