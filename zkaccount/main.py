from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
from contextlib import asynccontextmanager
import os
from loguru import logger

from zkaccount import __version__
from zkaccount.db.database import init_db
from zkaccount.api import accounts_router, health_router
from zkaccount.core.config import get_settings
from zkaccount.core.logging_config import configure_logging, RequestLoggingMiddleware
from zkaccount.core.errors import APIError
from zkaccount.core.error_handlers import (
    api_error_handler,
    http_exception_handler,
    validation_error_handler,
    database_error_handler,
    general_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import SQLAlchemyError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan events for the FastAPI application
    """
    # Startup
    configure_logging()
    logger.info("Starting ZK Email Accounts API...")

    try:
        init_db()
        logger.info("Ledger store initialized successfully")
    except Exception as e:
        logger.error(f"Error during startup: {e}")
        raise

    yield

    # Shutdown
    logger.info("Shutting down ZK Email Accounts API...")


# Get settings
settings = get_settings()

# Create FastAPI application with conditional docs
app = FastAPI(
    title=settings.app_name,
    description="Ledger accounts controlled by zero-knowledge proofs of email ownership",
    version=__version__,
    docs_url="/docs" if settings.enable_docs else None,
    redoc_url="/redoc" if settings.enable_docs else None,
    lifespan=lifespan
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=settings.allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Exception handlers
app.add_exception_handler(APIError, api_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)
app.add_exception_handler(SQLAlchemyError, database_error_handler)
app.add_exception_handler(Exception, general_exception_handler)


# Include API routes
app.include_router(health_router)  # Health checks at root level
app.include_router(accounts_router, prefix="/api/v1")


@app.get("/")
async def root():
    """
    Root endpoint with API information
    """
    return {
        "message": settings.app_name,
        "version": __version__,
        "program_id": settings.program_id,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/api/v1")
async def api_overview():
    """
    API v1 overview
    """
    return {
        "version": __version__,
        "endpoints": {
            "create_account": "POST /api/v1/accounts",
            "transfer": "POST /api/v1/accounts/transfer",
            "balance": "GET /api/v1/accounts/{email_hash}/balance?salt=...",
            "exists": "GET /api/v1/accounts/{email_hash}/exists?salt=...",
            "account": "GET /api/v1/accounts/{email_hash}?salt=...",
            "fund": "POST /api/v1/accounts/fund"
        }
    }


if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    debug = os.getenv("DEBUG", "false").lower() == "true"

    uvicorn.run(
        "zkaccount.main:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
