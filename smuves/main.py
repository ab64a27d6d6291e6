"""SMUVES — FastAPI Application Entry Point.

HubSpot CMS backup, change review, sync and revert service.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from smuves.config import settings
from smuves.database import init_db, test_connection
from smuves.scheduler.jobs import start_scheduler, stop_scheduler
from smuves.api.backup_routes import router as backup_router
from smuves.api.common import error_response
from smuves.api.history_routes import router as history_router
from smuves.api.sync_routes import router as sync_router
from smuves.core.logging import get_logger

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 SMUVES starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    if test_connection():
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("SMUVES shut down")


app = FastAPI(
    title="SMUVES",
    description="Back up HubSpot CMS pages to Google Sheets, review spreadsheet edits, sync them back, and revert to any backup.",
    version=settings.service_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync_router)
app.include_router(backup_router)
app.include_router(history_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed or incomplete request bodies share one 400 shape."""
    logger.warning(f"Rejected {request.url.path}: {exc.errors()}")
    return error_response(400, "Missing required fields.")


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.service_version,
    }
