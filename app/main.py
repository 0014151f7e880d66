# app/main.py

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import Settings, get_settings
from app.core.enums import CloseReason
from app.core.exceptions import BaseServiceError, ProductNotFoundError, ValidationError
from app.core.logging_config import configure_logging
from app.database import async_session, engine
from app.routes import events, health, products
from app.services.notifications.channel import build_channel
from app.services.notifications.dispatcher import BroadcastDispatcher
from app.services.notifications.notifier import ChangeNotifier
from app.services.notifications.registry import SubscriptionRegistry
from app.services.stock_service import LowStockEvaluator

logger = logging.getLogger(__name__)


def init_pipeline(app: FastAPI, settings: Settings, session_factory=async_session, channel=None):
    """Build the notification pipeline for this process and hang it on app.state."""
    channel = channel or build_channel(settings)
    registry = SubscriptionRegistry(
        heartbeat_interval=settings.HEARTBEAT_INTERVAL_SECONDS,
        client_timeout=settings.CLIENT_TIMEOUT_SECONDS,
        queue_size=settings.SUBSCRIBER_QUEUE_SIZE,
    )
    notifier = ChangeNotifier(
        channel,
        topic=settings.NOTIFICATION_CHANNEL,
        dedup_window=timedelta(seconds=settings.DEDUP_WINDOW_SECONDS),
    )
    dispatcher = BroadcastDispatcher(
        channel,
        registry,
        topic=settings.NOTIFICATION_CHANNEL,
        reconnect_delay=settings.LISTENER_RECONNECT_DELAY_SECONDS,
    )

    app.state.channel = channel
    app.state.registry = registry
    app.state.notifier = notifier
    app.state.dispatcher = dispatcher
    app.state.low_stock = LowStockEvaluator(session_factory, notifier, threshold=settings.LOW_STOCK_THRESHOLD)
    return app.state


async def shutdown_pipeline(app: FastAPI) -> None:
    state = app.state
    await state.dispatcher.stop()
    closed = await state.registry.close_all(CloseReason.SHUTDOWN)
    logger.info(f"Closed {closed} SSE client(s) on shutdown")
    await state.notifier.stop()
    await state.channel.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    state = init_pipeline(app, settings)
    state.notifier.start()
    state.dispatcher.start()
    logger.info(
        f"Notification pipeline started (backend={settings.NOTIFICATION_BACKEND}, "
        f"channel={settings.NOTIFICATION_CHANNEL})"
    )
    try:
        yield  # This is where the app runs
    finally:
        await shutdown_pipeline(app)
        await engine.dispose()


app = FastAPI(
    title="Seller Catalog Events",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().CORS_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["x-seller-id", "content-type"],
)


@app.exception_handler(ProductNotFoundError)
async def not_found_handler(request: Request, exc: ProductNotFoundError):
    return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(BaseServiceError)
async def service_error_handler(request: Request, exc: BaseServiceError):
    logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}")
    message = str(exc) if get_settings().is_development else "Internal Server Error"
    return JSONResponse(status_code=500, content={"success": False, "error": message})


app.include_router(products.router)
app.include_router(events.router)
app.include_router(health.router)  # Health check should be accessible without auth
