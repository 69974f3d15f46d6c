"""
FastAPI application entry point.

Main API server for the Cryptofolio portfolio dashboard.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from cryptofolio.core.config import settings
from cryptofolio.core.logging import setup_logging
from cryptofolio.core.database import close_db, init_db
from cryptofolio.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    DomainValidationError,
    NotFoundError,
    PersistenceConflictError,
    TickInProgressError,
)
from cryptofolio.core.redis import close_redis
from cryptofolio.scheduler.tick_scheduler import get_scheduler
from cryptofolio.services.auth_service import AuthService

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Crypto Portfolio Tracker - Periodic NAV Valuation and Allocation Ledger",
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error mapping ----------

@app.exception_handler(DomainValidationError)
async def domain_validation_handler(request: Request, exc: DomainValidationError) -> JSONResponse:
    return JSONResponse(status_code=409 if exc.conflict else 400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(TickInProgressError)
async def tick_in_progress_handler(request: Request, exc: TickInProgressError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(PersistenceConflictError)
async def persistence_conflict_handler(request: Request, exc: PersistenceConflictError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(AuthenticationError)
async def authentication_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": str(exc)})


@app.exception_handler(AuthorizationError)
async def authorization_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


# ---------- Lifecycle ----------

@app.on_event("startup")
async def startup() -> None:
    """Run on application startup."""
    if settings.DB_AUTO_CREATE:
        # Local runs only; deployed databases are managed by Alembic
        await init_db()

    await AuthService().ensure_super_admin()

    if settings.SCHEDULER_ENABLED and settings.SCHEDULER_BACKEND == "inprocess":
        get_scheduler().start()


@app.on_event("shutdown")
async def shutdown() -> None:
    """Run on application shutdown."""
    if settings.SCHEDULER_ENABLED and settings.SCHEDULER_BACKEND == "inprocess":
        await get_scheduler().stop()
    await close_db()
    await close_redis()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


from cryptofolio.api.auth import router as auth_router
from cryptofolio.api.users import router as users_router
from cryptofolio.api.portfolio import router as portfolio_router
from cryptofolio.api.allocations import router as allocations_router
from cryptofolio.api.assets import router as assets_router
from cryptofolio.api.system import router as system_router
from cryptofolio.api.metrics import router as metrics_router

app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(users_router, prefix="/api/v1/users", tags=["users"])
app.include_router(portfolio_router, prefix="/api/v1/portfolio", tags=["portfolio"])
app.include_router(allocations_router, prefix="/api/v1/allocations", tags=["allocations"])
app.include_router(assets_router, prefix="/api/v1/assets", tags=["assets"])
app.include_router(system_router, prefix="/api/v1/system", tags=["system"])
app.include_router(metrics_router, prefix="/api/v1/metrics", tags=["metrics"])
