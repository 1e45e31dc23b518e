import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
import structlog

import database
import settings
from errors import install_error_handlers
from ratelimit import RateLimiter
from seed import run_startup_tasks
from streams import PING, Broadcaster

import activity
import admin
import analytics
import auth
import catalog
import enquiries
import inventory
import orders
import reviews

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        *([structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
          if settings.IS_PRODUCTION else [structlog.dev.ConsoleRenderer()]),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.LOG_LEVEL.upper())),
)
logger = structlog.get_logger("hanuman_bhatta")

PRUNE_INTERVAL_SECONDS = 60
STARTED_AT = time.monotonic()


async def prune_limiters(app: FastAPI, interval: float = PRUNE_INTERVAL_SECONDS):
    while True:
        await asyncio.sleep(interval)
        for limiter in (app.state.review_limiter, app.state.analytics_limiter):
            removed = limiter.prune()
            if removed:
                logger.debug("rate_limit_pruned", removed=removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is None:
        raise RuntimeError("DATABASE_URL and DATABASE_NAME must be set")
    if settings.IS_PRODUCTION and settings.JWT_SECRET == settings.DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set in production")
    try:
        await run_in_threadpool(database.db.list_collection_names)
    except PyMongoError as exc:
        raise RuntimeError(f"Database is not reachable: {exc}") from exc
    await run_in_threadpool(run_startup_tasks)
    logger.info("api_ready", environment=settings.ENVIRONMENT, prefix=settings.API_PREFIX)

    pruner = asyncio.create_task(prune_limiters(app))
    try:
        yield
    finally:
        pruner.cancel()
        try:
            await pruner
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Hanuman Bhatta API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

app.state.review_limiter = RateLimiter(
    5, 15 * 60, "Too many review submissions. Please try again after some time."
)
app.state.analytics_limiter = RateLimiter(
    120, 60, "Too many analytics requests. Please try again later."
)
app.state.reviews_stream = Broadcaster("reviews", heartbeat_seconds=25, heartbeat=PING)
app.state.gallery_stream = Broadcaster("gallery")
app.state.products_stream = Broadcaster("products")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"
    logger.info("request", method=request.method, path=request.url.path,
                status=response.status_code, duration_ms=round(elapsed_ms, 1))
    return response


for module in (auth, catalog, inventory, orders, enquiries, reviews, analytics, admin, activity):
    app.include_router(module.router, prefix=settings.API_PREFIX)


# Health checks
def database_status() -> str:
    if database.db is None:
        return "not configured"
    try:
        database.db.list_collection_names()
        return "connected"
    except PyMongoError as exc:
        return f"error: {str(exc)[:100]}"


@app.get("/")
def root():
    return {"success": True, "message": "Welcome to the Hanuman Bhatta API", "docs": "/docs"}


@app.get(settings.API_PREFIX)
def api_index():
    return {
        "success": True,
        "message": "Hanuman Bhatta API",
        "version": settings.API_VERSION,
        "endpoints": {
            "health": "/health",
            "ping": "/health/ping",
            "products": "/products",
            "inventory": "/inventory",
            "enquiries": "/enquiries",
            "gallery": "/gallery",
            "analyticsTrack": "/analytics/track",
            "orders": "/orders",
            "auth": "/auth",
            "admin": "/admin",
            "adminAnalytics": "/admin/analytics",
            "adminOrders": "/admin/orders",
            "reviews": "/reviews",
            "adminReviews": "/admin/reviews",
        },
    }


@app.get(f"{settings.API_PREFIX}/health")
def health():
    return {
        "success": True,
        "message": "Server is healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "environment": settings.ENVIRONMENT,
        "apiVersion": settings.API_VERSION,
        "database": database_status(),
    }


@app.get(f"{settings.API_PREFIX}/health/ping", response_class=PlainTextResponse)
def health_ping():
    return "pong"


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
