"""
FastAPI application entry point for the Växtlistan plant search service
Includes Sentry monitoring, structured logging, CORS, rate limiting, and error handling
"""

import logging

import sentry_sdk
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from vaxtlistan.config import get_settings
from vaxtlistan.middleware.error_handler import add_error_handlers
from vaxtlistan.middleware.rate_limit import limiter
from vaxtlistan.routes import health, imports, search

settings = get_settings()

# Structured logging: readable console output while debugging, JSON otherwise
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.DEBUG if settings.debug else logging.INFO
    ),
    cache_logger_on_first_use=True,
)

# Initialize Sentry for error tracking
if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.env,
        traces_sample_rate=1.0 if settings.env == "development" else 0.1,
        profiles_sample_rate=1.0 if settings.env == "development" else 0.1,
    )

# Create FastAPI application
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    debug=settings.debug,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add custom error handlers
add_error_handlers(app)

# Include routers
app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(search.router, prefix="", tags=["Search"])
app.include_router(imports.router, prefix="/imports", tags=["Imports"])


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {
        "name": settings.api_title,
        "version": settings.api_version,
        "environment": settings.env,
        "docs": "/docs" if settings.debug else "disabled",
    }
