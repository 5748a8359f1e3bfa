"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers all API routers.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routers import scada_imports
from .core.config import settings
from .core.logging_config import configure_logging
from .domain.imports.sessions import clear_sessions

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
    else:
        from .domain.imports.history import ensure_scada_imports_table

        try:
            ensure_scada_imports_table()
        except Exception as e:
            logger.error(f"Failed to initialize database tables: {e}")
            raise  # Re-raise to prevent app from starting with broken database

    yield  # Application runs here

    # Live import sessions do not survive a restart.
    clear_sessions()


app = FastAPI(
    title="SCADA Import API",
    version="1.0.0",
    description="Bulk import of SCADA meter exports (CSV and Excel) for solar and battery projects",
    lifespan=lifespan
)

# Allow origins from environment variable or defaults for development
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(scada_imports.router)


@app.get("/")
async def root():
    """Root endpoint returning API information."""
    return {
        "message": "SCADA Import API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for deployment monitoring."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "scada-import-api"
    }
