"""
Exception handlers mapping the error taxonomy onto HTTP responses.
"""
import logging

from fastapi import FastAPI, Request

from tollgate.db.exceptions import StorageError
from tollgate.errors import AuthError, ServiceUnavailable, error_response

logger = logging.getLogger(__name__)


async def auth_error_handler(request: Request, exc: AuthError):
    return error_response(exc)


async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return error_response(ServiceUnavailable())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
