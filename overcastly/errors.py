"""
Error taxonomy for the API.

Every failure a handler can produce is one of these exceptions; the handlers
registered in main.py turn them into a JSON body of the form
``{"error": <message>, "code": <code>}``.
"""
import logging
from typing import Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class OvercastlyError(Exception):
    """Base exception, carries the HTTP status it maps to"""

    status_code = 500
    code = 'OVERCASTLY_ERROR'

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class ValidationError(OvercastlyError):
    status_code = 400
    code = 'VALIDATION_ERROR'


class AuthenticationError(OvercastlyError):
    """Missing credential is 401, a rejected one is 403"""

    status_code = 401
    code = 'AUTHENTICATION_ERROR'


class NotFoundError(OvercastlyError):
    status_code = 404
    code = 'NOT_FOUND'


class OwnershipError(OvercastlyError):
    status_code = 403
    code = 'FORBIDDEN'


class ConflictError(OvercastlyError):
    status_code = 409
    code = 'CONFLICT'


class InternalError(OvercastlyError):
    status_code = 500
    code = 'INTERNAL_ERROR'


async def overcastly_error_handler(request: Request, exc: OvercastlyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error({'msg': 'request_failed', 'path': request.url.path, 'error': exc.message})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # FastAPI answers 422 by default; the API contract is 400
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = '.'.join(str(p) for p in first.get('loc', ()) if p != 'body')
        message = f"{where}: {first.get('msg')}" if where else first.get('msg')
    else:
        message = 'Invalid request'
    err = ValidationError(message)
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


def unhandled_error_response(request: Request, exc: Exception) -> JSONResponse:
    """500 in the usual error shape for anything outside the taxonomy"""
    logger.exception({'msg': 'unhandled_error', 'path': request.url.path, 'error': str(exc)}, exc_info=exc)
    err = InternalError('Internal server error')
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    return unhandled_error_response(request, exc)


def register_exception_handlers(app):
    app.add_exception_handler(OvercastlyError, overcastly_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
