"""
FastAPI application for SID Chat.

Serves the chat endpoint used by the SID table browser UI.

Usage:
    # Development server with auto-reload
    uvicorn sid_chat.api.main:app --reload --host 0.0.0.0 --port 5051

    # Debug mode (verbose logging)
    LOG_LEVEL=DEBUG uvicorn sid_chat.api.main:app --reload --port 5051
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..completion import CompletionClient
from ..config import config
from ..orchestration import ConversationOrchestrator
from ..tools import ToolRegistryClient
from ..tracing import init_tracing_client, shutdown_tracing
from .routes import chat, health


def configure_logging():
    """Configure logging based on LOG_LEVEL environment variable."""
    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("sid_chat").setLevel(log_level)


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the tool host and build the orchestrator; tear down on exit.

    A tool host that cannot be reached aborts startup.
    """
    logger.info("Starting SID Chat API server")
    logger.info("=" * 60)
    logger.info("COMPLETION SERVICE")
    logger.info(f"  Base URL: {config.completion.base_url}")
    logger.info(f"  Model: {config.completion.model}")
    logger.info(f"  Max Tokens: {config.completion.max_tokens}")
    logger.info(f"  Max Tool Rounds: {config.orchestrator.max_rounds}")

    logger.info("-" * 60)
    logger.info("TOOL HOST")
    logger.info(f"  Transport: {config.tool_host.transport}")
    if config.tool_host.transport == "http":
        logger.info(f"  URL: {config.tool_host.url}")
    else:
        logger.info(f"  Script: {config.tool_host.script}")

    tool_registry = ToolRegistryClient.from_config()
    tool_registry.connect()
    completion_client = None
    try:
        for tool in tool_registry.list_tools():
            logger.info(f"  - {tool.name}: {tool.description[:60]}")

        completion_client = CompletionClient(system_prompt=config.orchestrator.system_prompt)
        app.state.tool_registry = tool_registry
        app.state.orchestrator = ConversationOrchestrator(completion_client, tool_registry)

        logger.info("-" * 60)
        logger.info("LANGFUSE OBSERVABILITY")
        tracing_client = init_tracing_client(config.langfuse)
        if tracing_client.enabled:
            logger.info("  Status: ENABLED")
        else:
            logger.info("  Status: DISABLED")
            if tracing_client.error:
                logger.info(f"  Reason: {tracing_client.error}")
        logger.info("=" * 60)

        yield
    finally:
        logger.info("Shutting down SID Chat API server")
        tool_registry.close()
        if completion_client is not None:
            completion_client.close()
        shutdown_tracing()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="SID Chat API",
        description="Database assistant chat backed by an MCP tool host.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(chat.router, tags=["Chat"])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log validation errors before returning 400 response."""
        logger.warning(
            f"Validation error on {request.method} {request.url.path}: {exc.errors()}"
        )
        body = await request.body()
        logger.debug(f"Request body: {body.decode('utf-8', errors='replace')[:1000]}")
        return JSONResponse(
            status_code=400,
            content={
                "detail": "Invalid message format",
                "errors": jsonable_encoder(exc.errors()),
            },
        )

    return app


app = create_app()


def run_server():
    """Run the server using uvicorn."""
    import uvicorn

    uvicorn.run(
        "sid_chat.api.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
    )


if __name__ == "__main__":
    run_server()
