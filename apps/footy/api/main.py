"""
Footy API Server

FastAPI server exposing match rosters, player reputation and player requests.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from footy.api.routes import router, limiter as routes_limiter
from footy.database import db
from footy.services.errors import (
    ConflictError,
    DuplicateRating,
    FootyError,
    NotAuthorized,
    NotFoundError,
)
from footy.services.request_cleanup_service import get_request_cleanup_service

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"


def status_code_for(error: FootyError) -> int:
    """HTTP status for a service failure."""
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, NotAuthorized):
        return 403
    if isinstance(error, (ConflictError, DuplicateRating)):
        return 409
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Footy API...")

    # Initialize database (create tables if they don't exist)
    # This is a fallback for tables that might not be in migrations yet
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    # Start request cleanup worker (expire player requests, lift suspensions)
    if not IS_TEST_ENV:
        try:
            get_request_cleanup_service().start()
        except Exception as e:
            logger.error(f"Failed to start request cleanup worker: {e}", exc_info=True)

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Footy API...")

    if not IS_TEST_ENV:
        try:
            get_request_cleanup_service().stop()
        except Exception as e:
            logger.error(f"Error stopping request cleanup worker: {e}", exc_info=True)


app = FastAPI(
    title="Footy API",
    description="Match rosters, player reputation and player requests for pickup football",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(FootyError)
async def footy_error_handler(request: Request, exc: FootyError):
    """Surface service failures with their message and stable kind."""
    status_code = status_code_for(exc)
    if isinstance(exc, ConflictError):
        logger.error(f"{request.method} {request.url.path} conflict: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )


# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
