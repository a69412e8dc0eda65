# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""
Gateway Publisher API
FastAPI backend publishing API definitions to vendor gateways
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .adapters.registry import CapabilityRegistry, build_default_registry
from .config import settings
from .database import close_db, get_session_factory, init_db
from .errors import PublisherError
from .logging_config import configure_logging
from .routers import deployments, gateways, products
from .services.cache_service import SyncMarker, TTLCache
from .services.config_sync_service import ConfigSyncService
from .services.consumer_service import ConsumerService
from .services.publish_service import PublishService
from .workers.deployment_worker import DeploymentWorkerPool

logger = logging.getLogger(__name__)


def build_services(
    app: FastAPI,
    session_factory,
    registry: Optional[CapabilityRegistry] = None,
    pool: Optional[DeploymentWorkerPool] = None,
    sync_cache: Optional[TTLCache] = None,
) -> None:
    """Wire the registry, worker pool and services onto ``app.state``"""
    registry = registry or build_default_registry()
    pool = pool or DeploymentWorkerPool()
    sync_cache = sync_cache or TTLCache(
        default_ttl_seconds=settings.PRODUCT_SYNC_TTL_SECONDS,
        max_size=settings.SYNC_CACHE_MAX_SIZE,
    )

    config_sync = ConfigSyncService(session_factory, registry, SyncMarker(sync_cache), pool)
    publish_service = PublishService(session_factory, registry, pool, config_sync)
    pool.set_reconcile(publish_service.reconcile_stale_records)

    app.state.registry = registry
    app.state.worker_pool = pool
    app.state.sync_cache = sync_cache
    app.state.config_sync_service = config_sync
    app.state.publish_service = publish_service
    app.state.consumer_service = ConsumerService(session_factory, registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    logger.info(f"Starting Gateway Publisher v{settings.VERSION} ({settings.ENVIRONMENT})")

    if settings.ENVIRONMENT != "production":
        await init_db()
        logger.info("Database tables ensured")

    build_services(app, get_session_factory())

    try:
        reconciled = await app.state.publish_service.reconcile_stale_records()
        if reconciled:
            logger.warning(f"Failed {reconciled} deployments left pending by a previous run")
    except Exception as e:
        logger.error(f"Startup reconcile failed: {e}", exc_info=True)

    if settings.ENABLE_DEPLOYMENT_WORKER:
        await app.state.worker_pool.start()
    else:
        logger.warning("Deployment worker disabled, submitted jobs stay queued")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.worker_pool.stop()
    await close_db()


async def publisher_error_handler(request: Request, exc: PublisherError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.warning(f"{request.method} {request.url.path} -> {exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Gateway Publisher",
        description="Publishes REST, MCP, Agent and Model APIs to vendor gateways",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(PublisherError, publisher_error_handler)

    # Routers
    app.include_router(deployments.router)
    app.include_router(products.router)
    app.include_router(gateways.router)

    @app.get("/health")
    async def health(request: Request):
        state = request.app.state
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "pending_jobs": state.worker_pool.pending,
            "sync_cache": state.sync_cache.stats(),
        }

    return app


app = create_app()
