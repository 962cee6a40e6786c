from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware.exception_handlers import register_exception_handlers
from api.middleware.request_context import RequestContextMiddleware
from api.routes import agent, health, threads, tools
from api.services.postgres_checkpoint import PostgresCheckpointStore
from api.services.thread_service import PostgresThreadStore
from core.checkpoint import CheckpointStore, InMemoryCheckpointStore
from core.constants import Settings, get_settings
from core.executor import TurnExecutor
from core.model import OpenAIChatModelFactory
from core.threads import InMemoryThreadStore, ThreadLifecycleManager, ThreadStore
from integrations.mcp_tools import MCPToolSource
from tools.loader import ToolLoader
from tools.registry import ToolRegistry
from utils.client_factory import create_http_client, create_openai_client
from utils.db_utils import check_pool_health, create_database_pool, graceful_pool_close
from utils.logger import configure_uvicorn_logging, logger

settings = get_settings()

configure_uvicorn_logging()


def _setup_model_factory(settings: Settings) -> OpenAIChatModelFactory:
    """Configure the OpenAI(-compatible) client used by every turn."""
    client = None
    if settings.openai_api_key:
        http_client = create_http_client(
            enable_logging=settings.http_request_logging,
            read_timeout=settings.http_read_timeout,
        )
        client = create_openai_client(
            settings.openai_api_key, base_url=settings.openai_base_url, http_client=http_client
        )
        logger.info(f"Configured model provider {settings.default_provider} (default model {settings.default_model})")
    else:
        logger.warning("OPENAI_API_KEY is not set; turns will fail until a provider is configured")

    return OpenAIChatModelFactory(
        client,
        default_model=settings.default_model,
        temperature=settings.model_temperature,
        streaming=settings.model_streaming,
        default_provider=settings.default_provider,
    )


def _tool_config(settings: Settings) -> dict[str, object]:
    config: dict[str, object] = {"tool_http_timeout": settings.tool_http_timeout}
    if settings.serpapi_api_key:
        config["serpapi_api_key"] = settings.serpapi_api_key
    return config


def build_state(app: FastAPI, settings: Settings, checkpoints: CheckpointStore, thread_store: ThreadStore) -> None:
    """Wire registry, loader, MCP source, executor and thread manager onto ``app.state``."""
    registry = ToolRegistry()
    loader = ToolLoader(registry, base_config=_tool_config(settings))
    mcp_source = MCPToolSource(timeout=settings.mcp_timeout_seconds)

    app.state.settings = settings
    app.state.checkpoint_store = checkpoints
    app.state.tool_registry = registry
    app.state.tool_loader = loader
    app.state.mcp_source = mcp_source
    app.state.executor = TurnExecutor(
        checkpoints,
        _setup_model_factory(settings),
        loader,
        mcp_source=mcp_source,
        max_agent_steps=settings.max_agent_steps,
        lock_timeout=settings.turn_lock_timeout_seconds,
    )
    app.state.thread_manager = ThreadLifecycleManager(
        thread_store, checkpoints, lock_timeout=settings.turn_lock_timeout_seconds
    )
    logger.info(f"Registered {len(registry)} built-in tools")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    app.state.db_pool = None
    if settings.checkpoint_backend == "postgres":
        pool = await create_database_pool(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            command_timeout=settings.db_command_timeout,
            connection_timeout=settings.db_connection_timeout,
        )
        health = await check_pool_health(pool)
        logger.info(f"Database pool ready (size={health['pool_size']}, healthy={health['healthy']})")
        app.state.db_pool = pool
        build_state(app, settings, PostgresCheckpointStore(pool), PostgresThreadStore(pool))
    else:
        logger.info("Using in-memory checkpoint store; state is lost on restart")
        build_state(app, settings, InMemoryCheckpointStore(), InMemoryThreadStore())

    try:
        yield
    finally:
        app.state.mcp_source.clear_cache()
        if app.state.db_pool is not None:
            await graceful_pool_close(app.state.db_pool, timeout=settings.shutdown_timeout)


def create_app(lifespan_handler=lifespan) -> FastAPI:
    app = FastAPI(
        title="Agent Stream API",
        version=settings.app_version,
        lifespan=lifespan_handler,
    )

    register_exception_handlers(app)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(agent.router, prefix="/api/agent", tags=["agent"])
    app.include_router(threads.router, prefix="/api/threads", tags=["threads"])
    app.include_router(tools.router, prefix="/api/tools", tags=["tools"])
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        reload_dirs=["src"],
    )
