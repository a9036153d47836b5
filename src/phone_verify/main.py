"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from phone_verify.api.common import INTERNAL_ERROR, failure_response
from phone_verify.api.otp import router as otp_router
from phone_verify.api.password_reset import router as password_reset_router
from phone_verify.config import settings
from phone_verify.database.engine import async_session_factory, init_db
from phone_verify.dependencies import init_services
from phone_verify.errors import ErrorCode, Failure
from phone_verify.services.background import background_tasks

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s (%s) …", settings.app_name, settings.environment)
    await init_db()
    init_services(async_session_factory)
    logger.info("Database initialised")
    if settings.otp_test_mode:
        logger.warning("OTP test mode is ON: issued codes are returned in responses")
    yield
    logger.info("Shutting down %s …", settings.app_name)
    await background_tasks.drain()


app = FastAPI(
    title=settings.app_name,
    description="Phone number verification and password reset with one-time codes",
    version=VERSION,
    lifespan=lifespan,
)

app.include_router(otp_router)
app.include_router(password_reset_router)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected malformed request to %s", request.url.path)
    return failure_response(
        Failure(ErrorCode.MISSING_REQUIRED_FIELDS, "Request body is missing or malformed")
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error on %s", request.url.path)
    return failure_response(INTERNAL_ERROR)


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {
        "status": "ok",
        "app": settings.app_name,
        "version": VERSION,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
    }
