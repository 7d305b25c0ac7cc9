"""FastAPI application entry point.

This module assembles all components and creates the main application.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from fetchbay import __version__
from fetchbay.api import auth, download, health, jobs, metrics
from fetchbay.api import config as config_api
from fetchbay.core.config import Config, ConfigService, MonitoringConfig, SecurityConfig
from fetchbay.core.errors import HANDLED_EXCEPTIONS, global_exception_handler
from fetchbay.core.logging import clear_request_id, configure_logging, set_request_id
from fetchbay.core.metrics import MetricsCollector, initialize_metrics
from fetchbay.core.rate_limiter import configure_rate_limiter
from fetchbay.core.validation import ExtensionPolicy
from fetchbay.engines.http import HttpRetrievalEngine
from fetchbay.engines.swarm import LibtorrentSwarmClient, SwarmClient
from fetchbay.engines.torrent import TorrentRetrievalEngine
from fetchbay.middleware.auth import configure_auth
from fetchbay.services.admission import AdmissionPipeline
from fetchbay.services.dispatcher import JobDispatcher
from fetchbay.services.folders import FolderRegistry
from fetchbay.services.job_registry import configure_job_registry
from fetchbay.services.orchestrator import Orchestrator, configure_orchestrator, get_orchestrator

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the logging context and echoes it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track HTTP request metrics.

    Records request count and duration for all endpoints,
    using FastAPI route templates to normalize paths.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process request and record metrics."""
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time

        # Fixed label for unmatched routes to prevent unbounded cardinality
        route = request.scope.get("route")
        endpoint = route.path if route else "/unmatched"

        MetricsCollector.record_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            duration=duration,
        )

        return response


def build_swarm_client(config: Config) -> SwarmClient:
    """Create the shared swarm client; nothing starts until the first torrent."""
    if config.testing.fake_swarm:
        from fetchbay.testing import FakeSwarmClient

        logger.warning("fake_swarm_enabled")
        return FakeSwarmClient()

    return LibtorrentSwarmClient(
        listen_interfaces=config.torrent.listen_interfaces,
        enable_utp=config.torrent.enable_utp,
    )


def build_orchestrator(config: Config, swarm_client: Optional[SwarmClient] = None) -> Orchestrator:
    """Wire folders, admission, registry, dispatcher and engines from config."""
    folders = FolderRegistry.from_string(config.storage.download_folders)
    admission = AdmissionPipeline(
        folders=folders,
        extensions=ExtensionPolicy.from_string(config.storage.allowed_extensions),
        max_upload_size=config.storage.max_upload_bytes,
    )

    registry = configure_job_registry(retention_seconds=config.downloads.job_ttl * 3600)
    dispatcher = JobDispatcher(registry)

    http_engine = HttpRetrievalEngine(
        timeout=config.downloads.request_timeout,
        progress_bytes=config.downloads.progress_bytes,
    )
    torrent_engine = TorrentRetrievalEngine(
        swarm_client or build_swarm_client(config),
        sample_interval=config.downloads.progress_interval,
    )

    return Orchestrator(
        admission=admission,
        registry=registry,
        dispatcher=dispatcher,
        http_engine=http_engine,
        torrent_engine=torrent_engine,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown."""
    logger.info("application_starting", version=__version__)

    initialize_metrics(__version__)

    config_service = ConfigService()
    config = config_service.load()
    config_service.validate()

    configure_logging(config.logging.level, config.logging.format, config.logging.log_dir)

    configure_auth(
        password=config.security.password,
        session_ttl=config.security.session_ttl * 3600,
    )
    configure_rate_limiter(
        attempts=config.security.login_attempts,
        window=config.security.login_window,
    )

    orchestrator = configure_orchestrator(build_orchestrator(config))
    logger.info(
        "configuration_loaded",
        server_port=config.server.port,
        folders=orchestrator.folder_keys(),
        allowed_extensions=orchestrator.allowed_extensions(),
        max_upload_size=config.storage.max_upload_bytes,
        auth_enabled=config.security.auth_enabled,
    )

    logger.info("application_startup_complete", version=__version__)

    yield

    logger.info("application_shutting_down")
    await orchestrator.shutdown()
    logger.info("application_shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="fetchbay",
        description="Retrieve URLs, uploads and torrents into configured folders",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Default ["*"]; override via FETCHBAY_SECURITY_CORS_ORIGINS
    security_config = SecurityConfig()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=security_config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(Exception, global_exception_handler)
    for exc_class in HANDLED_EXCEPTIONS:
        app.add_exception_handler(exc_class, global_exception_handler)

    # Override dependency injection for routers
    app.dependency_overrides[config_api.get_orchestrator] = get_orchestrator
    app.dependency_overrides[download.get_orchestrator] = get_orchestrator
    app.dependency_overrides[jobs.get_orchestrator] = get_orchestrator
    app.dependency_overrides[health.get_orchestrator] = get_orchestrator

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(config_api.router)
    app.include_router(download.router)
    app.include_router(jobs.router)
    if MonitoringConfig().metrics_enabled:
        app.include_router(metrics.router)

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    server_config = ConfigService().load().server
    uvicorn.run(app, host=server_config.host, port=server_config.port)  # nosec B104
