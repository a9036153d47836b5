"""Shared pieces of the HTTP layer: wire models, failure mapping, time budget."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from phone_verify.config import settings
from phone_verify.errors import ErrorCode, Failure, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.MISSING_PHONE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PHONE_FORMAT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_REQUIRED_FIELDS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_OTP_FORMAT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_SESSION_ID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_EMAIL: status.HTTP_400_BAD_REQUEST,
    ErrorCode.WEAK_PASSWORD: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_ACTION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RATE_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PHONE_MISMATCH: status.HTTP_403_FORBIDDEN,
    ErrorCode.OTP_ALREADY_USED: status.HTTP_403_FORBIDDEN,
    ErrorCode.EXPIRED_OTP: status.HTTP_403_FORBIDDEN,
    ErrorCode.MAX_ATTEMPTS_EXCEEDED: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVALID_OTP: status.HTTP_403_FORBIDDEN,
    ErrorCode.DELIVERY_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
}

INTERNAL_ERROR = Failure(
    ErrorCode.INTERNAL_ERROR, "An unexpected error occurred. Please try again later."
)


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (``sessionId``) as well as snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def failure_response(failure: Failure) -> JSONResponse:
    """Render a :class:`Failure` as the standard error body."""
    body: dict[str, object] = {
        "success": False,
        "code": str(failure.code),
        "message": failure.message,
    }
    headers = None
    if failure.attempts_remaining is not None:
        body["attemptsRemaining"] = failure.attempts_remaining
    if failure.retry_after_seconds is not None:
        body["retryAfterSeconds"] = failure.retry_after_seconds
        headers = {"Retry-After": str(failure.retry_after_seconds)}
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(failure.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content=body,
        headers=headers,
    )


async def run_bounded(operation: Awaitable[T], timeout: float | None = None) -> T | Failure:
    """Await *operation* within the request budget.

    Upstream outages and overruns become generic server failures; nothing
    about the failing dependency reaches the caller.
    """
    budget = timeout if timeout is not None else settings.request_timeout_seconds
    try:
        async with asyncio.timeout(budget):
            return await operation
    except TimeoutError:
        logger.error("Operation exceeded its %.0fs budget", budget)
        return Failure(ErrorCode.TIMEOUT, "The request timed out. Please try again later.")
    except UpstreamError as exc:
        logger.error("Upstream dependency failed: %s", exc)
        return INTERNAL_ERROR
