# app/main.py
# Liveroom FastAPI application entry point
#
# Startup:  logging config, optional migrations, DB connection check, Redis ping
# Shutdown: Clean connection pool disposal
# Routes:   /health, /api/v1/* (all endpoints via master router)

import logging
from contextlib import asynccontextmanager

import redis as redis_lib
from alembic import command
from alembic.config import Config
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.exceptions import LiveAccessError
from app.db.session import check_db_connection, engine

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("liveroom")


def run_startup_migrations() -> bool:
    """Run `alembic upgrade head` using the project alembic.ini."""
    try:
        alembic_cfg = Config("alembic.ini")
        command.upgrade(alembic_cfg, "head")
        log.info("Database migrations: OK")
        return True
    except Exception as exc:
        log.warning("Database migrations failed -- %s", exc)
        return False


def redis_available(timeout: float = 2) -> bool:
    try:
        r = redis_lib.from_url(settings.redis_url, socket_connect_timeout=timeout)
        r.ping()
        r.close()
        return True
    except redis_lib.RedisError:
        return False


# ── Lifespan ──────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown logic.
    FastAPI's modern replacement for @app.on_event("startup").
    """
    log.info("Starting %s v%s [%s]", settings.app_name, settings.app_version, settings.app_env)

    # Apply DB migrations (development default)
    if settings.auto_migrate_on_startup:
        run_startup_migrations()

    if check_db_connection():
        log.info("Database connection: OK")
    else:
        log.warning("Database connection failed -- check DATABASE_URL")

    if redis_available():
        log.info("Redis connection: OK")
    else:
        log.warning("Redis connection failed -- check REDIS_URL")

    yield  # App runs here

    log.info("Shutting down -- disposing DB connection pool")
    engine.dispose()


# ── App Instance ──────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Live-session access service -- entitlement, capacity, attendance "
        "and purchases for scheduled live classes."
    ),
    docs_url="/api/docs",       # Swagger UI
    redoc_url="/api/redoc",     # ReDoc
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)


# ── CORS ──────────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Domain Errors ─────────────────────────────────────────────────────────────

@app.exception_handler(LiveAccessError)
async def live_access_error_handler(request: Request, exc: LiveAccessError):
    """Render every access-core error with its own status and code."""
    if exc.http_status >= 500:
        log.error("%s %s -> %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# ── Routes ────────────────────────────────────────────────────────────────────

# All API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")


# ── Health Check ──────────────────────────────────────────────────────────────

@app.get("/health", tags=["Health"], include_in_schema=False)
def health_check():
    """
    Health check endpoint for load balancers.
    Returns 200 OK if the app is running.
    DB and Redis status included for observability.
    """
    db_ok = check_db_connection()
    redis_ok = redis_available(timeout=1)

    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "app": settings.app_name,
            "version": settings.app_version,
            "environment": settings.app_env,
            "services": {
                "database": "ok" if db_ok else "unavailable",
                "redis": "ok" if redis_ok else "unavailable",
            },
        },
    )


@app.get("/", include_in_schema=False)
def root():
    return JSONResponse(
        content={
            "message": f"{settings.app_name} API",
            "docs": "/api/docs",
            "health": "/health",
        }
    )
