"""Error responses for the Summadoc API.

Every error body uses the same Result/Message envelope:

    {"messages": [{"code": "NotFound", "messageType": "Error",
                   "text": "...", "timestamp": "..."}]}

Domain exceptions from summadoc.core.errors are mapped onto HTTP statuses by
``domain_exception_handler``; routers never catch them themselves.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from enum import Enum

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from summadoc.core.errors import (
    CompletionError,
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    SummadocError,
    UserAlreadyExistsError,
)

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """Type of message in error response."""

    ERROR = "Error"
    WARNING = "Warning"
    INFO = "Info"
    EXCEPTION = "Exception"


class Message(BaseModel):
    model_config = {"extra": "forbid", "populate_by_name": True}

    code: str
    message_type: MessageType = Field(alias="messageType")
    text: str
    timestamp: str | None = None


class Result(BaseModel):
    """Result wrapper for errors."""

    model_config = {"extra": "forbid"}

    messages: list[Message]


def _result(code: str, text: str, message_type: MessageType = MessageType.ERROR) -> Result:
    return Result(
        messages=[
            Message(
                code=code,
                messageType=message_type,
                text=text,
                timestamp=datetime.now(UTC).isoformat(),
            )
        ]
    )


class ApiError(HTTPException):
    """Base exception for API errors."""

    def __init__(
        self,
        status_code: int,
        code: str,
        text: str,
        message_type: MessageType = MessageType.ERROR,
        headers: dict[str, str] | None = None,
    ):
        self.code = code
        self.text = text
        self.message_type = message_type
        super().__init__(status_code=status_code, detail=text, headers=headers)

    def to_result(self) -> Result:
        return _result(self.code, self.text, self.message_type)


class NotFound(ApiError):
    """Owner or document not found (404)."""

    def __init__(self, text: str):
        super().__init__(status_code=404, code="NotFound", text=text)


class Conflict(ApiError):
    """Write could not be applied (409)."""

    def __init__(self, text: str):
        super().__init__(status_code=409, code="Conflict", text=text)


class Unauthorized(ApiError):
    """Missing or invalid bearer token (401)."""

    def __init__(self, text: str):
        super().__init__(
            status_code=401,
            code="Unauthorized",
            text=text,
            headers={"WWW-Authenticate": "Bearer"},
        )


class BadGateway(ApiError):
    """Upstream completion service failed (502)."""

    def __init__(self, text: str):
        super().__init__(status_code=502, code="BadGateway", text=text)


class ServiceUnavailable(ApiError):
    """Authoritative store unreachable (503). Safe for the caller to retry."""

    def __init__(self, text: str = "The document store is temporarily unavailable"):
        super().__init__(
            status_code=503,
            code="ServiceUnavailable",
            text=text,
            headers={"Retry-After": "1"},
        )


def to_api_error(exc: SummadocError) -> ApiError:
    """Map a domain exception onto its HTTP error."""
    if isinstance(exc, NotFoundError):
        return NotFound(str(exc))
    if isinstance(exc, (ConflictError, UserAlreadyExistsError)):
        return Conflict(str(exc))
    if isinstance(exc, StoreUnavailableError):
        return ServiceUnavailable()
    if isinstance(exc, CompletionError):
        return BadGateway(str(exc))
    return ApiError(
        status_code=500,
        code="InternalServerError",
        text="An unexpected error occurred",
        message_type=MessageType.EXCEPTION,
    )


async def api_exception_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_result().model_dump(by_alias=True),
        headers=exc.headers,
    )


async def domain_exception_handler(request: Request, exc: SummadocError) -> JSONResponse:
    """Exception handler for domain errors raised by the service layer."""
    error = to_api_error(exc)
    if error.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return await api_exception_handler(request, error)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler for unexpected errors."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=_result(
            "InternalServerError", "An unexpected error occurred", MessageType.EXCEPTION
        ).model_dump(by_alias=True),
    )
