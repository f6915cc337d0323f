"""
ToolStream - Data models for conversations and streamed model replies.

Parts are an explicit tagged variant: every part is exactly one of
``TextPart``, ``ToolInvocation`` or ``ToolResult``. The wire shape follows
the Gemini ``generateContent`` REST API (``text`` / ``functionCall`` /
``functionResponse`` keys).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

from .exceptions import ProtocolError

if TYPE_CHECKING:
    from .tools import ToolDefinition


class Role(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    MODEL = "model"


@dataclass
class TextPart:
    """Plain text produced by the user or the model."""

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass
class ToolInvocation:
    """A request from the model to run a tool."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"functionCall": {"name": self.name, "args": self.args}}


@dataclass
class ToolResult:
    """The outcome of a tool invocation, sent back to the model."""

    name: str
    response: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"functionResponse": {"name": self.name, "response": self.response}}


Part = Union[TextPart, ToolInvocation, ToolResult]

PART_KEYS = ("text", "functionCall", "functionResponse")


def part_from_dict(data: Any) -> Part:
    """Parse a wire part into its variant.

    Raises:
        ProtocolError: If the part does not carry exactly one known key.
    """
    if not isinstance(data, dict):
        raise ProtocolError("part must be an object", payload=data)

    present = [key for key in PART_KEYS if key in data]
    if len(present) != 1:
        raise ProtocolError(
            "part must contain exactly one of text, functionCall or functionResponse",
            payload=data,
        )

    key = present[0]
    if key == "text":
        if not isinstance(data["text"], str):
            raise ProtocolError("text part must be a string", payload=data)
        return TextPart(text=data["text"])

    body = data[key]
    if not isinstance(body, dict) or not isinstance(body.get("name"), str):
        raise ProtocolError(f"{key} part must be an object with a name", payload=data)

    if key == "functionCall":
        return ToolInvocation(name=body["name"], args=body.get("args") or {})
    return ToolResult(name=body["name"], response=body.get("response") or {})


def parts_text(parts: list[Part]) -> str:
    """Concatenate the text parts of a part list."""
    return "".join(part.text for part in parts if isinstance(part, TextPart))


@dataclass
class Message:
    """One turn of a conversation."""

    role: Role
    parts: list[Part] = field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, parts=[TextPart(text=text)])

    @property
    def text(self) -> str:
        return parts_text(self.parts)

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [part for part in self.parts if isinstance(part, ToolInvocation)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.role.value,
            "parts": [part.to_dict() for part in self.parts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            role=Role(str(data["role"]).lower()),
            parts=[part_from_dict(part) for part in data.get("parts", [])],
        )


@dataclass
class Chunk:
    """One increment of a streamed model reply.

    A chunk has the same content shape as a model message, but a single
    model turn may be spread across several consecutive chunks.
    """

    parts: list[Part] = field(default_factory=list)
    role: Role = Role.MODEL
    finish_reason: Optional[str] = None
    usage_metadata: dict[str, Any] = field(default_factory=dict)
    model_version: Optional[str] = None
    response_id: Optional[str] = None

    @property
    def uses_tools(self) -> bool:
        """True if any part of this chunk is a tool invocation."""
        return any(isinstance(part, ToolInvocation) for part in self.parts)

    @property
    def text(self) -> str:
        return parts_text(self.parts)

    @property
    def tool_invocations(self) -> list[ToolInvocation]:
        return [part for part in self.parts if isinstance(part, ToolInvocation)]

    def to_message(self) -> Message:
        return Message(role=self.role, parts=list(self.parts))

    def to_dict(self) -> dict[str, Any]:
        candidate: dict[str, Any] = {
            "content": {
                "role": self.role.value,
                "parts": [part.to_dict() for part in self.parts],
            },
        }
        if self.finish_reason:
            candidate["finishReason"] = self.finish_reason

        payload: dict[str, Any] = {"candidates": [candidate]}
        if self.usage_metadata:
            payload["usageMetadata"] = self.usage_metadata
        if self.model_version:
            payload["modelVersion"] = self.model_version
        if self.response_id:
            payload["responseId"] = self.response_id
        return payload

    @classmethod
    def from_dict(cls, data: Any) -> "Chunk":
        """Parse an endpoint payload.

        A payload without candidates (for example a usage-only trailer)
        yields a chunk with no parts.

        Raises:
            ProtocolError: If the payload is not shaped like a reply.
        """
        if not isinstance(data, dict):
            raise ProtocolError("reply payload must be an object", payload=data)

        candidates = data.get("candidates") or []
        if not isinstance(candidates, list):
            raise ProtocolError("candidates must be a list", payload=data)

        parts: list[Part] = []
        role = Role.MODEL
        finish_reason = None
        if candidates:
            candidate = candidates[0]
            if not isinstance(candidate, dict):
                raise ProtocolError("candidate must be an object", payload=data)
            content = candidate.get("content") or {}
            if not isinstance(content, dict):
                raise ProtocolError("candidate content must be an object", payload=data)
            raw_parts = content.get("parts") or []
            if not isinstance(raw_parts, list):
                raise ProtocolError("content parts must be a list", payload=data)
            parts = [part_from_dict(part) for part in raw_parts]
            if content.get("role") == Role.USER.value:
                role = Role.USER
            finish_reason = candidate.get("finishReason")

        return cls(
            parts=parts,
            role=role,
            finish_reason=finish_reason,
            usage_metadata=data.get("usageMetadata") or {},
            model_version=data.get("modelVersion"),
            response_id=data.get("responseId"),
        )

    @classmethod
    def merge(cls, chunks: list["Chunk"]) -> "Chunk":
        """Merge buffered chunks into one logical model turn.

        Parts are concatenated in arrival order. Round metadata (finish
        reason, token usage, model version) comes from the last chunk,
        which carries the final counts.
        """
        if not chunks:
            raise ValueError("cannot merge an empty chunk list")
        last = chunks[-1]
        return cls(
            parts=[part for chunk in chunks for part in chunk.parts],
            role=last.role,
            finish_reason=last.finish_reason,
            usage_metadata=dict(last.usage_metadata),
            model_version=last.model_version,
            response_id=last.response_id,
        )


ConversationInput = list[Union[Message, dict[str, Any]]]


def conversation_to_dicts(contents: Any) -> Any:
    """Serialise Message objects to wire dicts, leaving dicts untouched.

    Anything that is not a list is returned as-is so that validation can
    report it.
    """
    if not isinstance(contents, list):
        return contents
    return [item.to_dict() if isinstance(item, Message) else item for item in contents]


class Reply(Chunk):
    """A complete, non-streamed model reply."""


@dataclass
class GenerationOptions:
    """Per-request options for the completion endpoint.

    Sampling controls left as ``None`` are omitted from the request.
    """

    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_output_tokens: Optional[int] = None
    tools: list["ToolDefinition"] = field(default_factory=list)

    def generation_config(self) -> dict[str, Any]:
        config = {
            "temperature": self.temperature,
            "maxOutputTokens": self.max_output_tokens,
            "topP": self.top_p,
            "topK": self.top_k,
        }
        return {key: value for key, value in config.items() if value is not None}
