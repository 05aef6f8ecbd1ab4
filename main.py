"""
Supplier Catalog & Price Scan API.

Two workflows share one Supabase catalog:

    /api/imports   supplier spreadsheets -> normalized_products,
                   with per-session snapshot, rollback and restore
    /api/scraping  competitor price scans over a supplier's catalog,
                   run as background jobs that clients poll
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from config import settings, check_connection
from routes import imports_router, scraping_router
from scrapers import get_scraper_registry
from scrapers.rate_limiter import reset_rate_limiters


def configure_logging() -> None:
    """stdlib handler at settings.log_level, structlog rendering on top."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        stream=sys.stdout,
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: report store health and the scrapers on offer.
    Shutdown: drop per-source rate limiter state.
    """
    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.debug,
        scrapers=list(get_scraper_registry().registered_keys())
    )

    db_status = check_connection()
    if db_status["status"] == "healthy":
        logger.info(
            "database_connected",
            products=db_status["products_count"],
            sources=db_status["sources_count"]
        )
    else:
        # Still start: imports fail per request with DATABASE_ERROR
        logger.error("database_connection_failed", error=db_status.get("error"))

    yield

    reset_rate_limiters()
    logger.info("application_shutting_down")


app = FastAPI(
    title="Supplier Catalog & Price Scan",
    description="Supplier spreadsheet imports with rollback, and competitor price scans",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports_router, prefix="/api/imports", tags=["Imports"])
app.include_router(scraping_router, prefix="/api/scraping", tags=["Scraping"])


# ===================
# SERVICE ROUTES
# ===================

@app.get("/health")
async def health_check():
    """Store connectivity plus the registered scraper keys."""
    db_status = check_connection()

    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.environment,
        "database": db_status,
        "scrapers": list(get_scraper_registry().registered_keys()),
    }


@app.get("/")
async def root():
    return {
        "name": "Supplier Catalog & Price Scan API",
        "version": app.version,
        "docs": "/docs" if settings.debug else "Disabled in production",
        "health": "/health",
        "endpoints": {
            "imports": "/api/imports",
            "import_upload": "/api/imports/upload",
            "import_preview": "/api/imports/preview",
            "rollback": "/api/imports/{session_id}/rollback",
            "scraping_sources": "/api/scraping/sources",
            "price_scan": "/api/scraping/price-scan",
            "scraping_jobs": "/api/scraping/jobs",
        }
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Last resort for errors the route handlers did not convert."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": str(exc) if settings.debug else None,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )
