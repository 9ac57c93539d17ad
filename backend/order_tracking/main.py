"""FastAPI application entry point.

Creates the app, registers routes, and manages lifecycle (DB init, Redis
client, room manager).
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

# Route modules
from order_tracking.api import auth, couriers, dev, system, tracking, websocket
from order_tracking.config import get_config
from order_tracking.database import close_db, get_engine, get_session_factory, init_db
from order_tracking.engine.room_manager import RoomManager
from order_tracking.engine.tracking_coordinator import TrackingCoordinator
from order_tracking.errors import TrackingError
from order_tracking.services.access_guard import RoomAccessGuard
from order_tracking.services.audit_service import AuditService
from order_tracking.services.auth import ConnectionAuthenticator
from order_tracking.services.location_cache import LocationCache
from order_tracking.services.log_buffer import configure_logging

logger = logging.getLogger(__name__)


# --- Singletons (created once at startup) ---
_rooms = RoomManager()
_cache: LocationCache | None = None
_authenticator: ConnectionAuthenticator | None = None
_guard: RoomAccessGuard | None = None
_coordinator: TrackingCoordinator | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: wire services on startup, release them on shutdown."""
    global _cache, _authenticator, _guard, _coordinator
    config = get_config()

    log_dir = configure_logging(config.log_level, config.resolved_log_dir)
    logger.info("Logging to %s", log_dir)

    # Initialize database
    await init_db()
    logger.info("Database initialized at %s", get_engine().url)
    session_factory = get_session_factory()

    _cache = LocationCache(
        Redis.from_url(config.redis_url, decode_responses=True),
        ttl_seconds=config.location_ttl_seconds,
    )
    if not await _cache.ping():
        logger.warning(
            "Redis at %s unreachable; live locations will be served from the database",
            config.redis_url,
        )

    _authenticator = ConnectionAuthenticator(
        session_factory,
        config.jwt_secret,
        config.jwt_algorithm,
        timedelta(hours=config.token_ttl_hours),
    )
    _guard = RoomAccessGuard(session_factory)
    _rooms.init()
    _coordinator = TrackingCoordinator(
        session_factory,
        _cache,
        _rooms,
        AuditService(session_factory),
        delivery_window=config.delivery_window,
    )

    # Inject dependencies into route modules
    auth.set_authenticator_getter(lambda: _authenticator)
    dev.set_authenticator_getter(lambda: _authenticator)
    tracking.set_tracking_dependencies(lambda: _coordinator, lambda: _guard)
    system.set_service_getters(lambda: _rooms, lambda: _cache)
    websocket.set_ws_dependencies(
        lambda: _rooms, lambda: _coordinator, lambda: _authenticator, lambda: _guard
    )

    logger.info(
        "Order tracking backend ready on http://%s:%s",
        config.app_host,
        config.app_port,
    )

    yield

    # Shutdown
    logger.info("Shutting down...")
    _rooms.shutdown()
    await _cache.close()
    await close_db()
    logger.info("Shutdown complete")


async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    """Render domain errors as a stable code + message, nothing internal."""
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    config = get_config()

    app = FastAPI(
        title="Order Tracking",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.parsed_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(TrackingError, tracking_error_handler)

    # Register API routes
    app.include_router(tracking.router)
    app.include_router(couriers.router)
    app.include_router(system.router)
    app.include_router(websocket.router)
    if config.dev_routes:
        app.include_router(dev.router)

    return app


# For uvicorn: `uvicorn order_tracking.main:app`
app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    uvicorn.run(
        "order_tracking.main:app",
        host=config.app_host,
        port=config.app_port,
        reload=False,
        log_level=config.log_level.lower(),
    )
