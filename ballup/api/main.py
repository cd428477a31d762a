"""
BallUp API Server

FastAPI server for pickup basketball: courts, games, players, admin
moderation, and live game-room updates over WebSockets.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy import text

from ballup import config
from ballup.api.errors import register_exception_handlers
from ballup.api.rate_limit import limiter
from ballup.api.routes import router
from ballup.database import db
from ballup.services.event_bus import get_event_bus
from ballup.services.websocket_manager import get_websocket_manager
from ballup.utils.datetime_utils import utcnow

# Set up logging
numeric_level = getattr(logging, config.LOG_LEVEL, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

STALE_CONNECTION_SWEEP_SECONDS = 60


async def _sweep_stale_connections():
    manager = get_websocket_manager()
    while True:
        await asyncio.sleep(STALE_CONNECTION_SWEEP_SECONDS)
        try:
            await manager.cleanup_stale_connections()
        except Exception as e:
            logger.warning(f"Stale WebSocket sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info(f"Starting up BallUp API ({config.ENV})...")

    # Create tables if they don't exist; migrations remain the source of truth
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    sweeper = None
    if config.ENABLE_SOCKETS:
        get_event_bus().subscribe(get_websocket_manager().handle_event)
        sweeper = asyncio.create_task(_sweep_stale_connections())
        logger.info("Real-time notifier subscribed to game events")

    yield  # App is running

    logger.info("Shutting down BallUp API...")
    if sweeper is not None:
        sweeper.cancel()
    if config.ENABLE_SOCKETS:
        get_event_bus().unsubscribe(get_websocket_manager().handle_event)
    await db.engine.dispose()


app = FastAPI(
    title="BallUp API",
    description="Find courts, organize pickup basketball games, and play together",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter and error envelope
app.state.limiter = limiter
register_exception_handlers(app)

if config.ENABLE_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

if config.ENABLE_COMPRESSION:
    app.add_middleware(GZipMiddleware, minimum_size=1000)

if config.ENABLE_REQUEST_LOGGING:

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} {duration_ms:.1f}ms"
        )
        return response


# Include API routes
app.include_router(router)


@app.get("/api/health")
async def health():
    """Liveness plus a database round trip."""
    database = "connected"
    try:
        async with db.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        database = "unavailable"
    return {
        "status": "ok" if database == "connected" else "degraded",
        "timestamp": utcnow().isoformat(),
        "environment": config.ENV,
        "database": database,
        "features": {
            "sockets": config.ENABLE_SOCKETS,
            "rateLimiting": limiter.enabled,
        },
    }


@app.get("/")
async def root():
    """API root endpoint - clients are served separately."""
    return {
        "message": "BallUp API is running",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
