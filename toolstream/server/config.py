"""
Server configuration for ToolStream.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ServerConfig:
    """Configuration for the ToolStream server."""

    host: str = "0.0.0.0"
    port: int = 8000

    cors_origins: list = field(default_factory=lambda: ["*"])

    debug: bool = False

    log_level: str = "info"

    # "package.module:attribute" resolving to a ToolRegistry
    tools: Optional[str] = None

    def __post_init__(self):
        env_origins = os.environ.get("TOOLSTREAM_CORS_ORIGINS")
        if env_origins:
            self.cors_origins = env_origins.split(",")

        if self.tools is None:
            self.tools = os.environ.get("TOOLSTREAM_TOOLS") or None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from environment variables."""
        return cls(
            host=os.environ.get("TOOLSTREAM_HOST", "0.0.0.0"),
            port=int(os.environ.get("TOOLSTREAM_PORT", "8000")),
            debug=os.environ.get("TOOLSTREAM_DEBUG", "").lower() == "true",
            log_level=os.environ.get("TOOLSTREAM_LOG_LEVEL", "info"),
        )
