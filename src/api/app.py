"""FastAPI application for the group expense ledger."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.ledger import router as ledger_router
from src.api.trips import router as trips_router
from src.api.users import router as users_router
from src.services import init_models
from src.services.config import load_config
from src.services.errors import AppError, ValidationError, error_response

logger = logging.getLogger(__name__)

config = load_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables on startup."""
    await init_models()
    logger.info("Database ready")
    yield
    logger.info("Shutting down")


app = FastAPI(
    title="Group Ledger",
    description="Shared trip expenses, balances and the multi-group ledger",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(trips_router)
app.include_router(ledger_router)
app.include_router(users_router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s rejected: %s %s", request.method, request.url.path, exc.code, exc.message
        )
    return JSONResponse(status_code=exc.http_status, content=error_response(exc))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    error = ValidationError(f"{location}: {message}" if location else message)
    return JSONResponse(status_code=error.http_status, content=error_response(error))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = AppError("Internal server error", "internal_error", 500)
    return JSONResponse(status_code=500, content=error_response(error))


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint for monitoring."""
    return {"status": "ok"}


__all__ = ["app"]
