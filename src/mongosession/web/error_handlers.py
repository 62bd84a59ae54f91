import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from mongosession.errors import (
    CookieDecodeError,
    DatabaseError,
    InvalidSessionIdError,
    SessionError,
    SessionNotFoundError,
    SessionValueError,
)

logger = logging.getLogger(__name__)


def create_json_error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message, "type": error_type})


async def session_error_handler(_: Request, exc: Exception) -> Response:
    """Map session errors that reached the application boundary to JSON responses."""
    if isinstance(exc, CookieDecodeError | SessionNotFoundError | InvalidSessionIdError):
        return create_json_error_response(401, "Invalid or expired session", "session_invalid")
    if isinstance(exc, SessionValueError):
        return create_json_error_response(400, str(exc), "session_value_error")
    if isinstance(exc, DatabaseError):
        logger.exception("Session store unavailable: %s", exc)
        return create_json_error_response(503, "Session store unavailable", "session_store_unavailable")

    logger.exception("Unexpected session error: %s", exc)
    return create_json_error_response(500, "An unexpected error occurred.", "internal_server_error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SessionError, session_error_handler)
