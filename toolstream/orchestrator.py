"""
ToolStream - Streaming multi-turn tool-call orchestration.

The orchestrator drives rounds of request, stream and tool resolution
against a :class:`~toolstream.client.CompletionClient` and pushes an ordered
event stream to an output channel:

    Requesting -> Streaming -> (ResolvingTools -> Requesting)* -> Done | Failed

Plain chunks are forwarded as soon as they arrive. Chunks that carry a tool
invocation are held back, since one invocation may span several chunks, and
are emitted once as a merged model turn after the stream ends and every
requested tool has run. The run always ends with exactly one ``complete`` or
``error`` event, after which the channel is closed.

Usage:
    ```python
    channel = QueueChannel()
    orchestrator = StreamOrchestrator(client, channel, registry=registry)

    async def save(orchestrator, text):
        await store_transcript(text)

    task = asyncio.create_task(
        orchestrator.stream_completion(
            [{"role": "user", "parts": [{"text": "What time is it in Paris?"}]}],
            GenerationOptions(tools=[registry.lookup("get_time")]),
            on_complete=save,
        )
    )
    async for event in channel:
        print(event.encode(), end="")
    result = await task
    ```
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Optional, Union

from .config import DEFAULT_MAX_TOOL_ROUNDS
from .exceptions import Cancelled, ToolStreamError, TooManyToolRounds
from .models import (
    Chunk,
    ConversationInput,
    GenerationOptions,
    Message,
    Role,
    ToolResult,
    conversation_to_dicts,
)
from .streaming import EventChannel, StreamEvent
from .tools import ToolCallResult, ToolRegistry
from .validation import validate_conversation, validate_tool

if TYPE_CHECKING:
    from .client import CompletionClient

logger = logging.getLogger("toolstream.orchestrator")


class OrchestrationState(str, Enum):
    """States of one orchestration run."""

    REQUESTING = "requesting"
    STREAMING = "streaming"
    RESOLVING_TOOLS = "resolving_tools"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OrchestrationRound:
    """One request/stream/tool-resolution cycle."""

    round_index: int
    pending_tool_chunks: list[Chunk] = field(default_factory=list)


@dataclass
class OrchestrationResult:
    """Outcome of a complete orchestration run."""

    state: OrchestrationState
    text: str
    rounds: int
    contents: list[dict[str, Any]] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.state == OrchestrationState.DONE


CompletionCallback = Callable[["StreamOrchestrator", str], Any]


class StreamOrchestrator:
    """
    Runs one streamed, tool-using conversation turn to completion.

    Each instance owns its conversation copy, text accumulator and round
    counter, and runs once. The registry is only read during a run.
    """

    def __init__(
        self,
        client: "CompletionClient",
        channel: EventChannel,
        registry: Optional[ToolRegistry] = None,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ):
        self.client = client
        self.channel = channel
        self.registry = registry if registry is not None else client.registry
        self.max_tool_rounds = max_tool_rounds
        self.state = OrchestrationState.REQUESTING
        self.round_index = 0
        self.contents: list[dict[str, Any]] = []
        self._text_buffer: list[str] = []
        self._task: Optional["asyncio.Future[None]"] = None
        self._cancel_requested = False
        self._started = False

    @property
    def text(self) -> str:
        """All text observed so far across every round."""
        return "".join(self._text_buffer)

    def cancel(self) -> None:
        """Abort the run; it ends in the failed state with a Cancelled error."""
        self._cancel_requested = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stream_completion(
        self,
        contents: ConversationInput,
        options: Optional[GenerationOptions] = None,
        on_complete: Optional[CompletionCallback] = None,
    ) -> OrchestrationResult:
        """Stream a completion, resolving tool calls until the model is done.

        Args:
            contents: Initial conversation history (non-empty).
            options: System instruction, sampling controls and tools.
            on_complete: Called with ``(orchestrator, text)`` after the last
                round and before the ``complete`` event. May be async.

        Returns:
            OrchestrationResult with the final state and accumulated text.
        """
        if self._started:
            raise RuntimeError("StreamOrchestrator instances can only run once")
        self._started = True

        error: Optional[BaseException] = None
        outer_cancelled = False

        try:
            if self._cancel_requested:
                error = Cancelled()
            else:
                self._task = asyncio.ensure_future(
                    self._run(contents, options or GenerationOptions(), on_complete)
                )
                try:
                    await self._task
                except asyncio.CancelledError:
                    outer_cancelled = not self._cancel_requested
                    error = Cancelled()
                except ToolStreamError as e:
                    error = e
                except Exception as e:
                    logger.exception("Orchestration failed unexpectedly")
                    error = e

            if error is not None:
                self.state = OrchestrationState.FAILED
                logger.error("Orchestration failed in round %d: %s", self.round_index, error)
                await self.channel.write(StreamEvent.error(_error_message(error)))
        finally:
            await self.channel.close()

        if outer_cancelled:
            raise asyncio.CancelledError()

        return OrchestrationResult(
            state=self.state,
            text=self.text,
            rounds=self.round_index,
            contents=self.contents,
            error=error,
        )

    async def _run(
        self,
        contents: ConversationInput,
        options: GenerationOptions,
        on_complete: Optional[CompletionCallback],
    ) -> None:
        payload = conversation_to_dicts(contents)
        validate_conversation(payload)
        for tool in options.tools:
            validate_tool(tool, self.registry)
        self.contents = list(payload)

        while True:
            self.state = OrchestrationState.REQUESTING
            current = OrchestrationRound(round_index=self.round_index)
            logger.debug("Round %d: requesting completion", current.round_index)
            reply = await self.client.generate(self.contents, options)

            self.state = OrchestrationState.STREAMING
            await self._consume(reply, current)
            if not current.pending_tool_chunks:
                break

            self.state = OrchestrationState.RESOLVING_TOOLS
            turn, results = await self._resolve_tools(current)
            if not results:
                break

            self.contents.append(turn.to_message().to_dict())
            self.contents.extend(_tool_result_message(result) for result in results)

            self.round_index += 1
            if self.round_index >= self.max_tool_rounds:
                raise TooManyToolRounds(self.max_tool_rounds)

        self.state = OrchestrationState.DONE
        if on_complete is not None:
            callback_result = on_complete(self, self.text)
            if inspect.isawaitable(callback_result):
                await callback_result
        await self.channel.write(StreamEvent.complete())
        logger.debug("Orchestration done after %d tool rounds", self.round_index)

    async def _consume(
        self,
        reply: Union[Chunk, AsyncIterator[Chunk]],
        current: OrchestrationRound,
    ) -> None:
        """Forward plain chunks and buffer tool-bearing ones."""
        if isinstance(reply, Chunk):
            await self._handle_chunk(reply, current)
            return

        try:
            async for chunk in reply:
                await self._handle_chunk(chunk, current)
        finally:
            aclose = getattr(reply, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _handle_chunk(self, chunk: Chunk, current: OrchestrationRound) -> None:
        if chunk.uses_tools:
            current.pending_tool_chunks.append(chunk)
            return
        await self.channel.write(StreamEvent.chunk(chunk.to_dict()))
        self._text_buffer.append(chunk.text)

    async def _resolve_tools(self, current: OrchestrationRound) -> tuple[Chunk, list[ToolCallResult]]:
        """Run every requested tool and emit the merged model turn once."""
        turn = Chunk.merge(current.pending_tool_chunks)
        invocations = turn.tool_invocations
        logger.debug(
            "Round %d: resolving %d tool calls from %d chunks",
            current.round_index,
            len(invocations),
            len(current.pending_tool_chunks),
        )

        results = list(
            await asyncio.gather(
                *(self.registry.invoke(invocation.name, invocation.args) for invocation in invocations)
            )
        )

        for result in results:
            if not result.ok:
                await self.channel.write(StreamEvent.tool_error(result.error or ""))

        await self.channel.write(StreamEvent.chunk(turn.to_dict()))
        self._text_buffer.append(turn.text)
        if results:
            await self.channel.write(StreamEvent.executed_tools())

        return turn, results


def _tool_result_message(result: ToolCallResult) -> dict[str, Any]:
    return Message(
        role=Role.USER,
        parts=[ToolResult(name=result.name, response={"result": result.result})],
    ).to_dict()


def _error_message(error: BaseException) -> str:
    if isinstance(error, ToolStreamError):
        return error.message
    return str(error) or error.__class__.__name__
