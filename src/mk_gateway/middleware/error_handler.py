"""Exception → ApiResponse envelope mapping.

AppError subclasses keep their own code and HTTP status. FastAPI's request
validation failures become InvalidRequestError (9004) so clients see one
envelope shape for every rejected request.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.mk_common.errors import AppError, InvalidRequestError
from src.mk_common.response import error_response

logger = logging.getLogger(__name__)


def _render(request: Request, exc: AppError) -> JSONResponse:
    body = error_response(exc.code, exc.message, request)
    return JSONResponse(status_code=exc.http_status, content=body.model_dump())


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    level = logging.ERROR if exc.http_status >= 500 else logging.DEBUG
    logger.log(level, "[%d] %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _render(request, exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        where = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{where}: {err.get('msg', 'invalid')}" if where else err.get("msg", "invalid"))
    return _render(request, InvalidRequestError("; ".join(problems) or "malformed request"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
