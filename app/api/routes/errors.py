from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.economy.referrals.errors import ConflictError, ReferralEngineError, ValidationError

logger = structlog.get_logger(__name__)

_HTTP_STATUS_CODES = {
    400: "E_VALIDATION",
    404: "E_NOT_FOUND",
    405: "E_METHOD_NOT_ALLOWED",
    409: "E_CONFLICT",
}


def error_envelope(*, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "code": code},
    )


async def handle_referral_engine_error(
    request: Request,
    exc: ReferralEngineError,
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "referral_engine_request_failed",
            path=request.url.path,
            code=exc.code,
            error=exc.message,
        )
    return error_envelope(status_code=exc.status_code, code=exc.code, message=exc.message)


async def handle_request_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return error_envelope(
        status_code=ValidationError.status_code,
        code=ValidationError.code,
        message="; ".join(problems) or ValidationError.default_message,
    )


async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("referral_engine_integrity_conflict", path=request.url.path)
    return error_envelope(
        status_code=ConflictError.status_code,
        code=ConflictError.code,
        message="concurrent update conflicted with an existing row",
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_envelope(
        status_code=exc.status_code,
        code=_HTTP_STATUS_CODES.get(exc.status_code, f"E_HTTP_{exc.status_code}"),
        message=str(exc.detail),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReferralEngineError, handle_referral_engine_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
