"""
Configuration for ToolStream clients and the orchestrator.
"""

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_MAX_TOOL_ROUNDS = 10


@dataclass
class ClientConfig:
    """Configuration for the completion client and orchestrator."""

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    stream: bool = True
    timeout: float = 60.0
    max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS

    def __post_init__(self):
        if self.api_key is None:
            self.api_key = os.environ.get("TOOLSTREAM_API_KEY") or os.environ.get("GEMINI_API_KEY")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Create configuration from environment variables."""
        return cls(
            api_key=os.environ.get("TOOLSTREAM_API_KEY") or os.environ.get("GEMINI_API_KEY"),
            model=os.environ.get("TOOLSTREAM_MODEL", DEFAULT_MODEL),
            base_url=os.environ.get("TOOLSTREAM_BASE_URL", DEFAULT_BASE_URL),
            stream=os.environ.get("TOOLSTREAM_STREAM", "true").lower() == "true",
            timeout=float(os.environ.get("TOOLSTREAM_TIMEOUT", "60")),
            max_tool_rounds=int(
                os.environ.get("TOOLSTREAM_MAX_TOOL_ROUNDS", str(DEFAULT_MAX_TOOL_ROUNDS))
            ),
        )
