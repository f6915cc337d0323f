"""
ToolStream Server - streams orchestrated completions over Server-Sent Events.

Run with:
    toolstream-server                  # CLI entry point
    python -m toolstream.server        # Module entry point

Or programmatically:
    from toolstream.server import ToolStreamServer
    server = ToolStreamServer(port=8000, registry=my_registry)
    server.run()
"""

from ..tools import load_registry
from .app import CompletionRequest, ToolStreamServer, create_app
from .config import ServerConfig

__all__ = [
    "create_app",
    "load_registry",
    "CompletionRequest",
    "ToolStreamServer",
    "ServerConfig",
]
