"""
Domain errors raised by the lifecycle engine.

Routers let these propagate; `register_exception_handlers` maps each one to
its HTTP status so callers can tell "already taken" from "nothing there".
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)


class CareCallError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(CareCallError):
    status_code = 400


class Forbidden(CareCallError):
    status_code = 403


class NotFound(CareCallError):
    status_code = 404


class Conflict(CareCallError):
    status_code = 409


class Unavailable(CareCallError):
    status_code = 503


async def carecall_error_handler(request: Request, exc: CareCallError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def store_unavailable_handler(request: Request, exc: OperationalError):
    logger.error("Store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=Unavailable.status_code, content={"detail": "Store unavailable"})


async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CareCallError, carecall_error_handler)
    app.add_exception_handler(OperationalError, store_unavailable_handler)
    app.add_exception_handler(Exception, global_exception_handler)
