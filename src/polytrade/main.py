"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for database initialization and sync wiring, and the v1 API
router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.polytrade.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.polytrade.api.v1.router import router as v1_router
from src.polytrade.config import Settings, get_settings
from src.polytrade.core.database import close_db, get_session, init_db
from src.polytrade.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.polytrade.deals.repository import DealRepository
from src.polytrade.deals.service import DealService
from src.polytrade.events.bus import EventBus
from src.polytrade.services.google.auth import GoogleAuthManager
from src.polytrade.sync.config_store import SyncConfigStore
from src.polytrade.sync.engine import DealSyncEngine
from src.polytrade.sync.postgres import PostgresDealStore
from src.polytrade.sync.sheets import GoogleSheetsGateway


async def _build_sync_engine(
    settings: Settings,
    repository: DealRepository,
    event_bus: EventBus,
) -> DealSyncEngine | None:
    """Wire the Sheets gateway and sync engine, or None when Sheets is not configured."""
    log = structlog.get_logger(__name__)

    if not settings.sheets_configured():
        log.info("sync.sheets_not_configured")
        return None

    service_account_path = settings.get_service_account_path()
    config_store = SyncConfigStore.from_settings(settings)
    gateway = GoogleSheetsGateway(
        auth_manager=GoogleAuthManager(service_account_file=service_account_path),
        spreadsheet_id=settings.GOOGLE_SHEETS_ID,
        sheet_name=settings.GOOGLE_SHEETS_TAB,
        batch_size=config_store.get().batch_size,
    )

    # A header failure is not fatal: the sheet may be unreachable at boot
    try:
        await gateway.ensure_header()
    except Exception:
        log.warning("sync.sheet_header_check_failed", exc_info=True)

    return DealSyncEngine(
        store=PostgresDealStore(repository),
        sheet=gateway,
        event_bus=event_bus,
        config_store=config_store,
        backoff_multiplier=settings.SYNC_RETRY_BACKOFF_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and sync on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    event_bus = EventBus()
    repository = DealRepository(session_factory=get_session)
    app.state.event_bus = event_bus
    app.state.deal_service = DealService(repository, event_bus)

    try:
        sync_engine = await _build_sync_engine(settings, repository, event_bus)
    except Exception:
        log.warning("sync.init_failed", exc_info=True)
        sync_engine = None

    app.state.sync_engine = sync_engine
    if sync_engine is not None:
        sync_engine.outbox.start()
        log.info(
            "sync.ready",
            sheet_name=settings.GOOGLE_SHEETS_TAB,
            **sync_engine.get_config().model_dump(mode="json"),
        )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    if sync_engine is not None:
        sync_engine.close()
        await sync_engine.outbox.stop()

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Polytrade Deal Ledger API",
        version="0.1.0",
        description="Polymer trading deal ledger with Google Sheets sync",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
