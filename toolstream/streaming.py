"""
ToolStream - Server-Sent Events support.

Covers both directions of the stream:

- parsing the SSE body returned by the model endpoint into messages, and
- encoding orchestrator events for the caller and delivering them through
  an output channel that is closed exactly once.
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union


class EventType(str, Enum):
    """Kinds of events emitted to the caller."""

    DATA = "data"
    EXECUTED_TOOLS = "executed_tools"
    TOOL_ERROR = "tool_error"
    COMPLETE = "complete"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.COMPLETE, EventType.ERROR})


@dataclass
class StreamEvent:
    """An event pushed to the caller.

    ``data`` events are framed as unnamed SSE messages so that a browser
    ``EventSource`` delivers them through ``onmessage``; every other kind
    carries an ``event:`` line. Events without a payload are sent with an
    empty JSON object since SSE drops messages with no data.
    """

    event: EventType
    data: Optional[str] = None

    @classmethod
    def chunk(cls, payload: dict[str, Any]) -> "StreamEvent":
        return cls(EventType.DATA, json.dumps(payload))

    @classmethod
    def executed_tools(cls) -> "StreamEvent":
        return cls(EventType.EXECUTED_TOOLS)

    @classmethod
    def tool_error(cls, message: str) -> "StreamEvent":
        return cls(EventType.TOOL_ERROR, message)

    @classmethod
    def complete(cls) -> "StreamEvent":
        return cls(EventType.COMPLETE, json.dumps({"status": "done"}))

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(EventType.ERROR, json.dumps({"status": "error", "error": message}))

    @property
    def is_terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS

    def json(self) -> Any:
        """Decode the payload, or None for events without JSON data."""
        if self.data is None or self.event == EventType.TOOL_ERROR:
            return None
        return json.loads(self.data)

    def to_sse(self) -> dict[str, str]:
        """Return the event as a dict understood by sse_starlette."""
        message = {"data": self.data if self.data is not None else "{}"}
        if self.event != EventType.DATA:
            message["event"] = self.event.value
        return message

    def encode(self) -> str:
        """Encode the event as SSE wire text."""
        message = self.to_sse()
        lines = []
        if "event" in message:
            lines.append(f"event: {message['event']}")
        for line in message["data"].splitlines() or [""]:
            lines.append(f"data: {line}")
        return "\n".join(lines) + "\n\n"


# ---------------------------------------------------------------------------
# Output channels
# ---------------------------------------------------------------------------


class ChannelClosedError(RuntimeError):
    """Raised when writing to, or closing, a channel that is already closed."""


class EventChannel:
    """Destination for orchestrator events.

    Subclasses implement ``_write`` and ``_close``; this base class enforces
    that nothing is written after close and that close happens once.
    """

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write(self, event: StreamEvent) -> None:
        if self._closed:
            raise ChannelClosedError("channel is closed")
        await self._write(event)

    async def close(self) -> None:
        if self._closed:
            raise ChannelClosedError("channel already closed")
        self._closed = True
        await self._close()

    async def _write(self, event: StreamEvent) -> None:
        raise NotImplementedError

    async def _close(self) -> None:
        raise NotImplementedError


class QueueChannel(EventChannel):
    """
    A queue-backed channel that a consumer iterates asynchronously.

    Usage:
        ```python
        channel = QueueChannel()
        task = asyncio.create_task(orchestrator.stream_completion(contents))
        async for event in channel:
            print(event.event, event.data)
        ```
    """

    def __init__(self, maxsize: int = 0) -> None:
        super().__init__()
        self._queue: "asyncio.Queue[Optional[StreamEvent]]" = asyncio.Queue(maxsize=maxsize)

    async def _write(self, event: StreamEvent) -> None:
        await self._queue.put(event)

    async def _close(self) -> None:
        await self._queue.put(None)

    async def get(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """Get the next event, or None once the channel has been drained."""
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._iter_events()

    async def _iter_events(self) -> AsyncIterator[StreamEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event


Sink = Callable[[str], Union[None, Awaitable[None]]]


class WriterChannel(EventChannel):
    """A channel that writes SSE-encoded events to a text sink.

    The sink is any callable taking a string, for example
    ``sys.stdout.write`` or an async response writer. ``on_close`` is
    invoked once when the channel closes.
    """

    def __init__(self, sink: Sink, on_close: Optional[Callable[[], Any]] = None) -> None:
        super().__init__()
        self._sink = sink
        self._on_close = on_close

    async def _write(self, event: StreamEvent) -> None:
        result = self._sink(event.encode())
        if asyncio.iscoroutine(result):
            await result

    async def _close(self) -> None:
        if self._on_close is None:
            return
        result = self._on_close()
        if asyncio.iscoroutine(result):
            await result


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass
class SSEMessage:
    """A message read from an SSE response body."""

    event: str
    data: str
    id: Optional[str] = None


async def iter_sse_messages(lines: AsyncIterator[str]) -> AsyncIterator[SSEMessage]:
    """Assemble SSE lines into messages.

    Comment lines are ignored, ``data`` fields are joined with newlines and
    a blank line dispatches the pending message.
    """
    event_type = "message"
    event_data: list[str] = []
    event_id: Optional[str] = None

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if line.startswith(":"):
            continue

        if not line:
            if event_data:
                yield SSEMessage(event=event_type, data="\n".join(event_data), id=event_id)
            event_type = "message"
            event_data = []
            event_id = None
            continue

        if ":" in line:
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
        else:
            field = line
            value = ""

        if field == "event":
            event_type = value
        elif field == "data":
            event_data.append(value)
        elif field == "id":
            event_id = value

    if event_data:
        yield SSEMessage(event=event_type, data="\n".join(event_data), id=event_id)
