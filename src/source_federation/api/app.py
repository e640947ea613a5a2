"""FastAPI application factory with lifespan management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from source_federation.api.errors import register_error_handlers
from source_federation.api.middleware import RequestContextMiddleware
from source_federation.api.routes_health import router as health_router
from source_federation.api.routes_history import router as history_router
from source_federation.api.routes_query import router as query_router
from source_federation.api.routes_sources import router as sources_router
from source_federation.backends.elasticsearch import ElasticsearchBackend
from source_federation.config.settings import Settings
from source_federation.federation.engine import FederationEngine
from source_federation.history.recorder import HistoryRecorder
from source_federation.observability.logger import get_logger, setup_logging
from source_federation.registry.registry import DataSourceRegistry
from source_federation.storage.config_store import SQLiteConfigStore
from source_federation.storage.history_store import SQLiteHistoryStore

logger = get_logger("app")


def build_lifespan(settings: Settings | None = None, backend: ElasticsearchBackend | None = None):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or Settings()
        setup_logging(cfg.log_level, cfg.json_logs)

        # Ensure data directories exist
        for path in [cfg.sqlite_config_db_path, cfg.sqlite_history_db_path]:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        # Storage
        config_store = SQLiteConfigStore(cfg.sqlite_config_db_path)
        await config_store.initialize()
        history_store = SQLiteHistoryStore(cfg.sqlite_history_db_path)
        await history_store.initialize()

        # Search backend
        search_backend = backend or ElasticsearchBackend(
            base_url=cfg.elasticsearch_url,
            username=cfg.elasticsearch_username,
            password=cfg.elasticsearch_password,
            request_timeout=cfg.elasticsearch_request_timeout_s,
        )

        # Registry, history and engine
        registry = DataSourceRegistry(config_store, search_backend.for_index)
        recorder = HistoryRecorder(history_store, page_size=cfg.history_page_size)
        engine = FederationEngine(registry=registry, recorder=recorder, settings=cfg)

        # Attach to app state
        app.state.config_store = config_store
        app.state.recorder = recorder
        app.state.engine = engine
        app.state.backend = search_backend
        app.state.settings = cfg

        logger.info(
            "startup_complete",
            single_sources=await config_store.count("single"),
            multi_sources=await config_store.count("multi"),
            history_records=await recorder.count(),
        )

        yield

        # Shutdown: flush pending history writes, then release the HTTP pool
        await recorder.drain()
        await search_backend.aclose()
        logger.info("shutdown_complete")

    return lifespan


def create_app(
    settings: Settings | None = None, backend: ElasticsearchBackend | None = None
) -> FastAPI:
    app = FastAPI(
        title="Source Federation Engine",
        version="1.0.0",
        description="Data-source registry and federated query service for the ops dashboard",
        lifespan=build_lifespan(settings, backend),
    )
    app.add_middleware(RequestContextMiddleware)
    register_error_handlers(app)
    app.include_router(health_router, tags=["health"])
    app.include_router(sources_router, tags=["sources"])
    app.include_router(query_router, tags=["query"])
    app.include_router(history_router, tags=["history"])
    return app
