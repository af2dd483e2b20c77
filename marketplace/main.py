"""FastAPI application initialization."""

from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import asyncpg
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace import __version__
from marketplace.api.ads import router as ads_router
from marketplace.api.admin import router as admin_router
from marketplace.api.categories import router as categories_router
from marketplace.api.middleware import CorrelationIdMiddleware
from marketplace.api.products import router as products_router
from marketplace.api.routes import router
from marketplace.api.users import router as users_router
from marketplace.config import get_settings
from marketplace.errors import MarketplaceError
from marketplace.services.logging_service import configure_logging, get_logger

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    startup_logger = get_logger("main")

    from marketplace.database import close_database, init_database, run_migrations

    await init_database()
    await run_migrations()
    startup_logger.info("database_initialized")

    startup_logger.info(
        "application_started",
        version=__version__,
        log_level=settings.log_level,
        media_enabled=settings.media_enabled,
    )

    yield

    await close_database()
    startup_logger.info("application_shutdown")


app = FastAPI(
    title="Marketplace API",
    description="Listings, categories, users and promotional ads",
    version=__version__,
    lifespan=lifespan,
)


def _error_response(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    """Render taxonomy errors as the standard failure envelope."""
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return _error_response(exc.status_code, exc.message, headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors with a 400 naming the first bad field."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(
            str(loc) for loc in first_error.get("loc", ["unknown"]) if loc != "body"
        )
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}" if field else message
    else:
        detail = "Request validation failed"

    logger.warning("validation_error", path=request.url.path, detail=detail)
    return _error_response(status.HTTP_400_BAD_REQUEST, detail)


@app.exception_handler(asyncpg.UniqueViolationError)
async def unique_violation_handler(
    request: Request, exc: asyncpg.UniqueViolationError
) -> JSONResponse:
    logger.warning("unique_violation", path=request.url.path, constraint=exc.constraint_name)
    return _error_response(status.HTTP_400_BAD_REQUEST, "Resource already exists")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log with traceback, answer without internals."""
    logger.exception("unhandled_error", path=request.url.path, error_type=type(exc).__name__)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-Id"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(users_router)
app.include_router(categories_router)
app.include_router(products_router)
app.include_router(ads_router)
app.include_router(admin_router)
app.include_router(router)
