import importlib
import uuid
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sentry_sdk.integrations.asgi import SentryAsgiMiddleware

from busbook.config import settings
from busbook.exception_handlers import register_exception_handlers
from busbook.logging_setup import TRACE_ID_CTX, setup_logging
from busbook.redis_client import redis_client
from busbook.services.bus_cleanup import BusCleanupScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.BUS_CLEANUP_SCHEDULER_ENABLED:
        scheduler = BusCleanupScheduler().start()
    app.state.cleanup_scheduler = scheduler
    yield
    if scheduler is not None:
        await scheduler.stop()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# initialize logging and Sentry
setup_logging()
if settings.SENTRY_DSN:
    sentry_sdk.init(dsn=settings.SENTRY_DSN)
    app.add_middleware(SentryAsgiMiddleware)

register_exception_handlers(app)


@app.middleware("http")
async def add_trace_id(request: Request, call_next):
    trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
    TRACE_ID_CTX.set(trace_id)
    response = await call_next(request)
    response.headers["X-Trace-Id"] = trace_id
    return response

# List of module names to include as routers
MODULES = [
    "buses",
    "bookings",
    "admin",
]


for mod in MODULES:
    pkg = importlib.import_module(f"busbook.modules.{mod}.router")
    app.include_router(pkg.router, prefix=f"/{mod}", tags=[mod])


@app.get("/")
async def root():
    return {"app": settings.APP_NAME, "status": "ok"}


@app.get("/metrics")
async def metrics():
    content = generate_latest()
    return Response(content=content, media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
async def ready():
    # redis backs the Celery broker used by the cleanup beat schedule
    try:
        await redis_client.ping()
    except Exception:
        return Response(status_code=503, content="redis unavailable")
    return {"status": "ready"}
