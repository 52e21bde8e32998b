"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api import dashboard, snaptrade, sync
from api.helpers import NO_CACHE_HEADERS, NO_CACHE_PREFIX
from config import settings
from database import create_tables, session_scope
from logging_config import setup_logging
from services.dashboard_service import DashboardService

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and seed default asset categories on startup."""
    try:
        create_tables()
    except Exception:
        logger.error("Table creation failed on startup", exc_info=True)
        raise

    try:
        with session_scope() as db:
            DashboardService.seed_default_categories(db)
    except Exception:
        logger.warning("Asset category seeding failed on startup", exc_info=True)

    if not (settings.SNAPTRADE_CLIENT_ID and settings.SNAPTRADE_CONSUMER_KEY):
        logger.warning("SnapTrade credentials not configured; broker routes will return 503")
    yield


app = FastAPI(
    title="Net Worth Dashboard",
    description="Personal net worth tracking with SnapTrade brokerage sync",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def no_cache_headers(request: Request, call_next):
    """SnapTrade responses reflect live brokerage state and must not be cached."""
    response = await call_next(request)
    if request.url.path.startswith(NO_CACHE_PREFIX):
        response.headers.update(NO_CACHE_HEADERS)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render errors as ``{"error": message}``."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Render anything the routes did not map as a 500 ``{"error": ...}``.

    Runs outside the middleware stack, so no-cache headers are set here.
    """
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    headers = NO_CACHE_HEADERS if request.url.path.startswith(NO_CACHE_PREFIX) else None
    return JSONResponse(
        status_code=500,
        content={"error": str(exc) or "Unknown error"},
        headers=headers,
    )


# Include API routers
app.include_router(snaptrade.router)
app.include_router(sync.router)
app.include_router(dashboard.router)
app.include_router(dashboard.assets_router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
