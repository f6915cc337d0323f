"""
ToolStream - HTTP client for generative-model completion endpoints.

Speaks the Gemini ``generateContent`` REST API. Depending on the ``stream``
flag fixed at construction, :meth:`CompletionClient.generate` returns either
one complete :class:`Reply` or an async iterator of :class:`Chunk`.
"""

import json
import logging
from typing import Any, AsyncIterator, Optional, Union

import httpx

from .config import DEFAULT_BASE_URL, DEFAULT_MODEL, ClientConfig
from .exceptions import ProtocolError, RemoteError
from .models import Chunk, ConversationInput, GenerationOptions, Reply, conversation_to_dicts
from .streaming import iter_sse_messages
from .tools import ToolRegistry
from .validation import validate_conversation, validate_tool

logger = logging.getLogger("toolstream.client")


class CompletionClient:
    """
    Asynchronous client for a generative-model endpoint.

    Example:
        ```python
        registry = ToolRegistry()
        async with CompletionClient(api_key="...", stream=True, registry=registry) as client:
            chunks = await client.generate([Message.user("Hello!")])
            async for chunk in chunks:
                print(chunk.text, end="")
        ```
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        stream: bool = False,
        registry: Optional[ToolRegistry] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("API key is required")
        if not model:
            raise ValueError("Model is required")

        self.model = model
        self.stream = stream
        self.registry = registry if registry is not None else ToolRegistry()
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "x-goog-api-key": api_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        registry: Optional[ToolRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CompletionClient":
        return cls(
            api_key=config.api_key,
            model=config.model,
            stream=config.stream,
            registry=registry,
            base_url=config.base_url,
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ==================== Requests ====================

    async def generate(
        self,
        contents: ConversationInput,
        options: Optional[GenerationOptions] = None,
    ) -> Union[Reply, AsyncIterator[Chunk]]:
        """Generate content from a conversation.

        Args:
            contents: Conversation history as Message objects or wire dicts:
                ``[{"role": "user", "parts": [{"text": "Hello!"}]}]``
            options: System instruction, sampling controls and tools.

        Returns:
            A Reply, or an async iterator of Chunk when streaming.

        Raises:
            InvalidMessage: If the conversation is malformed.
            InvalidToolDefinition: If an advertised tool is invalid.
            RemoteError: If the endpoint answers with an error.
            ProtocolError: If a non-streamed reply cannot be parsed.
        """
        payload = conversation_to_dicts(contents)
        validate_conversation(payload)
        body = self.build_request_body(payload, options)

        if self.stream:
            return self._stream_content(body)
        return await self._generate_content(body)

    def build_request_body(
        self,
        contents: list[dict[str, Any]],
        options: Optional[GenerationOptions] = None,
    ) -> dict[str, Any]:
        """Build the JSON body, validating every advertised tool."""
        options = options or GenerationOptions()
        body: dict[str, Any] = {}

        if options.system_instruction:
            body["system_instruction"] = {"parts": [{"text": options.system_instruction}]}

        body["contents"] = contents

        generation_config = options.generation_config()
        if generation_config:
            body["generationConfig"] = generation_config

        if options.tools:
            for tool in options.tools:
                validate_tool(tool, self.registry)
            body["tools"] = [
                {"functionDeclarations": [tool.to_schema() for tool in options.tools]}
            ]

        return body

    async def _generate_content(self, body: dict[str, Any]) -> Reply:
        try:
            response = await self._client.post(f"/models/{self.model}:generateContent", json=body)
        except httpx.HTTPError as e:
            raise RemoteError(f"Request to model endpoint failed: {e}") from e

        if response.status_code != 200:
            raise self._remote_error(response)

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError("Reply is not valid JSON", payload=response.text) from e

        return Reply.from_dict(data)

    async def _stream_content(self, body: dict[str, Any]) -> AsyncIterator[Chunk]:
        url = f"/models/{self.model}:streamGenerateContent"
        try:
            async with self._client.stream("POST", url, params={"alt": "sse"}, json=body) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise self._remote_error(response)

                chunk_count = 0
                async for message in iter_sse_messages(response.aiter_lines()):
                    chunk = self._parse_stream_message(message.data)
                    if chunk is None:
                        continue
                    chunk_count += 1
                    yield chunk

                logger.debug("Stream finished after %d chunks", chunk_count)
        except httpx.HTTPError as e:
            raise RemoteError(f"Stream from model endpoint failed: {e}") from e

    def _parse_stream_message(self, data: str) -> Optional[Chunk]:
        """Parse one SSE payload; malformed payloads are logged and skipped."""
        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("Skipping stream chunk that is not valid JSON: %s", e)
            return None

        if isinstance(payload, dict) and "error" in payload:
            message = _error_message(payload) or "Model endpoint reported an error"
            raise RemoteError(message, response=payload)

        try:
            return Chunk.from_dict(payload)
        except ProtocolError as e:
            logger.warning("Skipping malformed stream chunk: %s", e.message)
            return None

    def _remote_error(self, response: httpx.Response) -> RemoteError:
        try:
            data = response.json()
        except ValueError:
            data = None

        message = _error_message(data)
        if not message:
            message = f"Request failed with status {response.status_code}"
        return RemoteError(
            message,
            status_code=response.status_code,
            response=data if isinstance(data, dict) else None,
        )


def _error_message(data: Any) -> Optional[str]:
    """Extract ``error.message`` from an endpoint error body."""
    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message")
    if isinstance(error, str):
        return error
    return None
