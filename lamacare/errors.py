import logging

from flask import jsonify
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from .extensions import db

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs surfaced by concurrent bookings and deadlines
SERIALIZATION_FAILURES = {"40001", "40P01", "55P03"}
QUERY_CANCELED = "57014"


class ApiError(Exception):
    status_code = 500
    default_message = "internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class BadRequest(ApiError):
    status_code = 400
    default_message = "bad request"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Unauthorization Token."


class Forbidden(ApiError):
    status_code = 403
    default_message = "Invalid role"


class NotFound(ApiError):
    status_code = 404
    default_message = "not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "conflict"


class Unprocessable(ApiError):
    status_code = 422
    default_message = "validation failed"


class InternalError(ApiError):
    status_code = 500


def _pgcode(exc) -> str | None:
    return getattr(getattr(exc, "orig", None), "pgcode", None)


def translate_db_error(exc: Exception) -> ApiError | None:
    """Map a driver-level failure onto the API taxonomy, or None if it is not ours to map."""
    if isinstance(exc, IntegrityError):
        return Conflict("resource already exists or violates a constraint")
    if isinstance(exc, OperationalError):
        code = _pgcode(exc)
        if code in SERIALIZATION_FAILURES:
            return Conflict("concurrent update, please retry")
        if code == QUERY_CANCELED:
            return InternalError("request deadline exceeded")
    return None


def _json_error(message: str, status: int):
    return jsonify({"message": message}), status


def register_error_handlers(app) -> None:
    @app.errorhandler(ApiError)
    def _api_error(exc: ApiError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message)
        return _json_error(exc.message, exc.status_code)

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return _json_error(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(IntegrityError)
    @app.errorhandler(OperationalError)
    def _db_error(exc):
        db.session.rollback()
        mapped = translate_db_error(exc)
        if mapped is None:
            logger.exception("database failure")
            return _json_error("internal server error", 500)
        return _json_error(mapped.message, mapped.status_code)

    @app.errorhandler(Exception)
    def _unexpected(exc: Exception):
        db.session.rollback()
        logger.exception("unhandled error")
        return _json_error("internal server error", 500)
