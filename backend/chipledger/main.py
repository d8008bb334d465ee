"""
ChipLedger FastAPI Application Entry Point.

Configures FastAPI, sets up middleware, registers routes, maps domain
errors to HTTP responses and manages the MongoDB connection lifecycle.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from chipledger.config import LedgerPolicy, settings
from chipledger.dal.database import (
    close_mongo_connection,
    connect_to_mongo,
    ensure_indexes,
)
from chipledger.errors import (
    Conflict,
    LedgerError,
    NotFound,
    PreconditionFailed,
    ValidationError,
)
from chipledger.routes.buy_ins import router as buy_ins_router
from chipledger.routes.cashouts import router as cashouts_router
from chipledger.routes.games import router as games_router
from chipledger.routes.health import router as health_router
from chipledger.services import build_services

logger = logging.getLogger("chipledger.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.
    Connects to MongoDB and builds the services on startup.
    """
    try:
        db = await connect_to_mongo()
        await ensure_indexes(db)
        app.state.services = build_services(db, LedgerPolicy.from_settings(settings))
        logger.info("ChipLedger v%s started with database connection", settings.APP_VERSION)
    except PyMongoError as e:
        # The app still starts so that health checks can report the outage.
        logger.warning(
            "Failed to connect to MongoDB during startup: %s. "
            "Ledger endpoints will answer 503 until the service is restarted.",
            str(e)
        )
        logger.info("ChipLedger v%s started WITHOUT database connection", settings.APP_VERSION)

    yield

    await close_mongo_connection()
    logger.info("ChipLedger shutdown complete")


# Initialize FastAPI application
app = FastAPI(
    title="ChipLedger API",
    description="Cash-game ledger: buy-ins, cashouts, reconciliation and settlement",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=600,  # Cache preflight requests for 10 minutes
)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS_BY_FAMILY: list[tuple[type[LedgerError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Conflict, status.HTTP_409_CONFLICT),
    (PreconditionFailed, status.HTTP_400_BAD_REQUEST),
]


def status_for(exc: LedgerError) -> int:
    """HTTP status code for a domain error."""
    for family, code in _STATUS_BY_FAMILY:
        if isinstance(exc, family):
            return code
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    code = status_for(exc)
    if isinstance(exc, Conflict):
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=code,
        content={"detail": exc.message, "kind": exc.kind},
    )


@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.error("%s %s failed in storage: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage unavailable", "kind": "StorageUnavailable"},
    )


# Register routers
app.include_router(health_router)  # Health endpoint at root level
app.include_router(health_router, prefix="/api")
app.include_router(games_router, prefix="/api")
app.include_router(buy_ins_router, prefix="/api")
app.include_router(cashouts_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "ChipLedger API",
        "version": settings.APP_VERSION,
        "status": "operational",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chipledger.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
