import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dashboard_api.api.http.activity import router as activity_router
from dashboard_api.api.http.collections import router as collections_router
from dashboard_api.api.http.files import router as files_router
from dashboard_api.api.http.health import router as health_router
from dashboard_api.api.http.schemas import router as schemas_router
from dashboard_api.api.http.search import router as search_router
from dashboard_api.api.middleware import ApiLoggingMiddleware
from dashboard_api.api.ws.subscriptions import router as websocket_router
from dashboard_api.core.config import settings
from dashboard_api.core.db import SessionLocal, engine, init_models
from dashboard_api.core.errors import StoreError, Unauthenticated, ValidationFailed
from dashboard_api.core.events import ChangeDispatcher
from dashboard_api.domains.audit.services import AuditService
from dashboard_api.domains.realtime.services import SubscriptionManager
from dashboard_api.domains.storage.services import storage_service_factory
from dashboard_api.jobs.usage import build_aggregator, run_periodically

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.log_level)
    logger.info("Starting dashboard API...")

    await init_models()

    dispatcher = ChangeDispatcher()
    subscription_manager = SubscriptionManager(SessionLocal)
    storage = storage_service_factory(dispatcher)
    audit = AuditService(SessionLocal)
    dispatcher.add_listener(audit.handle_change)
    dispatcher.add_listener(subscription_manager.handle_change)

    try:
        await storage.ensure_bucket()
        logger.info(f"Bucket {storage.bucket} ready")
    except StoreError as e:
        logger.error(f"Object store connection failed: {e}")
        logger.warning("Object store not available - file operations will fail until it is reachable")

    app.state.session_factory = SessionLocal
    app.state.dispatcher = dispatcher
    app.state.subscription_manager = subscription_manager
    app.state.storage = storage

    scheduler = None
    if settings.usage_scheduler_enabled:
        aggregator = build_aggregator(SessionLocal, storage)
        scheduler = asyncio.create_task(run_periodically(aggregator, settings.usage_interval_seconds))
        logger.info(f"Usage aggregation scheduled every {settings.usage_interval_seconds}s")

    logger.info("Dashboard API startup complete")
    yield

    if scheduler is not None:
        scheduler.cancel()
        try:
            await scheduler
        except asyncio.CancelledError:
            pass
    await subscription_manager.close()
    await dispatcher.drain()
    await engine.dispose()
    logger.info("Dashboard API stopped")


app = FastAPI(
    title="Dashboard API",
    description="Collections, files, schemas, live subscriptions and activity analytics for the admin dashboard",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.api_logging_enabled:
    app.add_middleware(ApiLoggingMiddleware)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    content = {"detail": exc.message}
    headers = None
    if isinstance(exc, ValidationFailed):
        content["errors"] = exc.errors
    if isinstance(exc, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


# Fixed prefixes first so they are not captured by /api/{collection}
app.include_router(health_router)
app.include_router(files_router)
app.include_router(schemas_router)
app.include_router(search_router)
app.include_router(activity_router)
app.include_router(collections_router)
app.include_router(websocket_router)


@app.get("/")
async def root():
    return {
        "message": "Dashboard API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
