import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from booking_core.domain.exceptions import BookingCoreError, ErrorCode

logger = logging.getLogger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.COUPON_INVALID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PAYMENT_VERIFICATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSUFFICIENT_STOCK: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSUFFICIENT_FUNDS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.GATEWAY_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def booking_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = exc if isinstance(exc, BookingCoreError) else BookingCoreError(str(exc))
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(error.code, status.HTTP_400_BAD_REQUEST),
        content={"code": error.code.value, "message": error.message, **error.extra()},
    )


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "code": ErrorCode.VALIDATION_ERROR.value,
            "message": "Request validation failed",
            "errors": jsonable_encoder(errors, custom_encoder={Exception: str}),
        },
    )


async def http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    detail = exc.detail if isinstance(exc, StarletteHTTPException) else str(exc)
    status_code = exc.status_code if isinstance(exc, StarletteHTTPException) else 500
    if isinstance(detail, dict):
        content = detail
    else:
        content = {"code": "HTTP_ERROR", "message": str(detail)}
    return JSONResponse(status_code=status_code, content=content)


async def database_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected database failure. path=%s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"code": "UNKNOWN_ERROR", "message": "An unknown error occurred"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingCoreError, booking_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
