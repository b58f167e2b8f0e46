"""Main FastAPI application."""

import logging
import re
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models  # noqa: F401  (registers every table on Base.metadata)
from .api import (
    accounts_router,
    folders_router,
    groups_router,
    permissions_router,
    projects_router,
    rules_router,
    users_router,
)
from .core.config import settings, ConfigurationError, Environment
from .core.logging_config import setup_logging
from .database import engine, Base, get_db, SessionLocal, DATABASE_URL
from .exceptions import SyncRulesException
from .middleware.exception_handler import request_validation_handler, syncrules_exception_handler
from .middleware.request_context import RequestContextMiddleware
from .services import audit_service

VERSION = "1.0.0"

# Setup logging first
setup_logging(log_level=settings.log_level, log_format=settings.log_format)
logger = logging.getLogger(__name__)


def _mask_url(url: str) -> str:
    """Mask password in database URL for safe logging."""
    return re.sub(r'://([^:]+):([^@]+)@', r'://\1:***@', url)


def _init_database() -> None:
    """Verify connectivity and create missing tables. Exits with a clear message on failure."""
    masked = _mask_url(DATABASE_URL)
    logger.info(f"Connecting to database: {masked}")
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        Base.metadata.create_all(bind=engine)
        logger.info("Database ready")
    except SQLAlchemyError as e:
        logger.critical(
            f"Database initialisation failed.\n"
            f"  DATABASE_URL: {masked}\n"
            "  Check that the server is running and the credentials are correct,\n"
            "  or for SQLite that the directory exists and is writable.\n"
            f"  Error: {e}"
        )
        raise SystemExit(1) from e


_init_database()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle for the SyncRules API."""
    # --- Security validation ---
    logger.info(f"Environment: {settings.environment.value}")
    try:
        settings.validate_production_config()
    except ConfigurationError as e:
        logger.critical(f"STARTUP BLOCKED: {e}")
        raise SystemExit(1) from e

    if settings.environment == Environment.DEVELOPMENT:
        if settings.uses_default_jwt_secret:
            if settings.auth_enabled:
                logger.critical(
                    "SECURITY: AUTH_ENABLED=true but JWT_SECRET_KEY is the default. "
                    "Anyone can forge tokens. Generate a secure key: openssl rand -hex 32"
                )
            else:
                logger.warning(
                    "SECURITY: JWT_SECRET_KEY is the default. "
                    "Set a secure key before enabling auth: openssl rand -hex 32"
                )

        if not settings.auth_enabled:
            logger.warning(
                "SECURITY: Authentication is disabled (AUTH_ENABLED=false). "
                "Every request acts as a superuser. Set AUTH_ENABLED=true for production."
            )

    # --- Purge old audit logs ---
    if settings.audit_retention_days > 0:
        db = SessionLocal()
        try:
            purged = audit_service.purge_old_entries(db, days=settings.audit_retention_days)
            if purged > 0:
                logger.info(f"Purged {purged} audit log entries older than {settings.audit_retention_days} days")
        finally:
            db.close()

    yield  # App runs here


# Create FastAPI app
app = FastAPI(
    title="SyncRules API",
    description=(
        "Context-governance backend: account and project folder/rule hierarchies, "
        "sync/detach/resync of account folders into projects, inheritance modes, "
        "and permission resolution over users and groups.\n\n"
        "**Authentication:** When `AUTH_ENABLED=true`, every endpoint requires a "
        "`Bearer` token. When `AUTH_ENABLED=false` (default), requests act as a "
        "superuser identified by the `X-User-Id` header."
    ),
    version=VERSION,
    lifespan=lifespan,
)

# Middleware stack (outermost first, CORS wraps request context).
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Account-Id", "X-User-Id", "X-Request-ID"],
)
app.add_middleware(RequestContextMiddleware)

# Register exception handlers
app.add_exception_handler(SyncRulesException, syncrules_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

db_type = "PostgreSQL" if DATABASE_URL.startswith("postgresql") else "SQLite"
logger.info(
    "SyncRules API started | env=%s | db=%s | auth=%s | cors=%s",
    settings.environment.value,
    db_type,
    "enabled" if settings.auth_enabled else "disabled",
    ",".join(settings.get_cors_origins()),
)

# Include routers
app.include_router(accounts_router)
app.include_router(groups_router)
app.include_router(projects_router)
app.include_router(folders_router)
app.include_router(rules_router)
app.include_router(permissions_router)
app.include_router(users_router)


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "SyncRules API",
        "version": VERSION,
        "status": "running"
    }


_startup_time = time.monotonic()


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint returning database status, uptime, and account count.

    Never raises; returns degraded status on DB failure so load balancers
    can still poll it without receiving 5xx.
    """
    db_status = "ok"
    account_count = 0
    try:
        db.execute(text("SELECT 1"))
        account_count = db.execute(text("SELECT COUNT(*) FROM accounts")).scalar() or 0
    except SQLAlchemyError:
        db_status = "error"

    return {
        "status": "healthy" if db_status == "ok" else "degraded",
        "db": db_status,
        "uptime_seconds": round(time.monotonic() - _startup_time),
        "version": VERSION,
        "account_count": account_count,
    }
