"""
Main FastAPI Application
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from gstbook.core.config import settings
from gstbook.core.database import init_db, SessionLocal
from gstbook.core.mailer import build_mailer
from gstbook.core.rate_limit import RateLimitMiddleware, build_rate_limiter
from gstbook.core.results import field_errors_from
from gstbook.api.v1 import (
    auth, team, crm, products, invoices, credit_notes, bills, debit_notes,
    pos, features, webhooks, cron, reports, gst
)
from gstbook.services.feature_service import FeatureService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


def seed_catalog():
    db = SessionLocal()
    try:
        FeatureService(db).seed_catalog()
        db.commit()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting up...")
    if app.state.manage_database:
        init_db()
        seed_catalog()
        logger.info("Database initialized and feature catalog seeded")

    if getattr(app.state, "rate_limiter", None) is None:
        app.state.rate_limiter = build_rate_limiter(settings)
    if getattr(app.state, "mailer", None) is None:
        app.state.mailer = build_mailer(settings)

    yield

    logger.info("Shutting down...")
    app.state.rate_limiter.close()


def create_app(rate_limiter=None, mailer=None, manage_database: bool = True) -> FastAPI:
    """
    Build the application.

    Tests pass their own limiter and mailer and manage the schema themselves.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan
    )
    app.state.rate_limiter = rate_limiter
    app.state.mailer = mailer
    app.state.manage_database = manage_database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting middleware (must be after CORS)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.RATE_LIMIT_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        enabled=settings.RATE_LIMIT_ENABLED,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation failed", "errors": field_errors_from(exc)}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "An unexpected error occurred"}
        )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.APP_VERSION}

    for module in (auth, team, crm, products, invoices, credit_notes, bills, debit_notes,
                   pos, features, webhooks, cron, reports, gst):
        app.include_router(module.router, prefix="/api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
