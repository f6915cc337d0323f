"""
FastAPI application exposing ToolStream orchestration over Server-Sent Events.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from .. import __version__
from ..client import CompletionClient
from ..config import ClientConfig
from ..exceptions import ToolNotFoundError, ValidationError
from ..models import GenerationOptions
from ..orchestrator import StreamOrchestrator
from ..streaming import QueueChannel
from ..tools import ToolRegistry, load_registry
from ..validation import validate_conversation, validate_tool
from .config import ServerConfig

logger = logging.getLogger("toolstream.server")


class CompletionRequest(BaseModel):
    contents: List[Dict[str, Any]]
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_output_tokens: Optional[int] = None
    tools: List[str] = Field(default_factory=list)

    def to_options(self, registry: ToolRegistry) -> GenerationOptions:
        """Resolve tool names against the registry."""
        return GenerationOptions(
            system_instruction=self.system_instruction,
            temperature=self.temperature,
            top_p=self.top_p,
            top_k=self.top_k,
            max_output_tokens=self.max_output_tokens,
            tools=[registry.lookup(name) for name in self.tools],
        )


class CompletionResponse(BaseModel):
    status: str
    text: str
    rounds: int
    error: Optional[str] = None


def create_app(
    config: Optional[ServerConfig] = None,
    registry: Optional[ToolRegistry] = None,
    client_config: Optional[ClientConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    if config is None:
        config = ServerConfig.from_env()
    if client_config is None:
        client_config = ClientConfig.from_env()
    if registry is None:
        registry = load_registry(config.tools) if config.tools else ToolRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = CompletionClient.from_config(client_config, registry, transport=transport)
        app.state.client = client
        app.state.config = config
        app.state.registry = registry
        logger.info("Serving %d tools with model %s", len(registry), client.model)
        yield
        await client.aclose()

    app = FastAPI(
        title="ToolStream Server",
        description="Streaming multi-turn tool-call orchestration",
        version=__version__,
        debug=config.debug,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def prepare(body: CompletionRequest) -> GenerationOptions:
        try:
            options = body.to_options(registry)
            validate_conversation(body.contents)
            for tool in options.tools:
                validate_tool(tool, registry)
        except ToolNotFoundError as e:
            raise HTTPException(status_code=400, detail={"message": e.message, "errors": []})
        except ValidationError as e:
            raise HTTPException(status_code=400, detail={"message": e.message, "errors": e.errors})
        return options

    def new_orchestrator(app: FastAPI, channel: QueueChannel) -> StreamOrchestrator:
        return StreamOrchestrator(
            app.state.client,
            channel,
            registry=registry,
            max_tool_rounds=client_config.max_tool_rounds,
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/v1/tools")
    async def list_tools():
        """Registered tools, as advertised to the model."""
        return {"tools": [definition.to_schema() for definition in registry.all().values()]}

    @app.post("/v1/completions/stream")
    async def stream_completion(body: CompletionRequest, request: Request):
        """Stream orchestrator events as SSE."""
        options = prepare(body)
        channel = QueueChannel()
        orchestrator = new_orchestrator(request.app, channel)

        async def event_generator():
            task = asyncio.create_task(orchestrator.stream_completion(body.contents, options))
            try:
                async for event in channel:
                    yield event.to_sse()
            finally:
                if not task.done():
                    logger.info("Client went away, cancelling orchestration")
                    orchestrator.cancel()
                (outcome,) = await asyncio.gather(task, return_exceptions=True)
                if isinstance(outcome, Exception):
                    logger.error("Orchestration task failed: %s", outcome, exc_info=outcome)

        return EventSourceResponse(event_generator())

    @app.post("/v1/completions", response_model=CompletionResponse)
    async def complete(body: CompletionRequest, request: Request):
        """Run an orchestration to the end and return its text."""
        options = prepare(body)
        channel = QueueChannel()
        orchestrator = new_orchestrator(request.app, channel)
        result = await orchestrator.stream_completion(body.contents, options)
        return CompletionResponse(
            status="done" if result.ok else "error",
            text=result.text,
            rounds=result.rounds,
            error=str(result.error) if result.error else None,
        )

    return app


class ToolStreamServer:
    """High-level server class for running ToolStream."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8000,
        registry: Optional[ToolRegistry] = None,
        client_config: Optional[ClientConfig] = None,
        **kwargs,
    ):
        self.config = ServerConfig(host=host, port=port, **kwargs)
        self.app = create_app(self.config, registry=registry, client_config=client_config)

    def run(self):
        """Run the server (blocking)."""
        import uvicorn

        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level,
        )
