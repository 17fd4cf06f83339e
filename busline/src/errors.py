"""
Error response rendering.

Every failure leaves the API as `{"success": false, "message": ...}`,
optionally extended with exception specific keys such as
`alreadyBookedSeats` or `errors`.
"""

from typing import Any
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from busline.src.exceptions import APIException, logException


def errorBody(message: Any, **extra) -> dict:
    return {"success": False, "message": message, **jsonable_encoder(extra)}


def registerErrorHandlers(app: FastAPI) -> None:
    """Install the JSON error handlers on a FastAPI application."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        extra = exc.extra if isinstance(exc, APIException) else {}
        return JSONResponse(
            status_code=exc.status_code,
            content=errorBody(exc.detail, **extra),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return JSONResponse(
            status_code=400,
            content=errorBody("Request validation failed", errors=exc.errors()),
            headers={"X-Error": "PydanticError"},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logException(exc)
        return JSONResponse(
            status_code=500,
            content=errorBody("Internal server error"),
            headers={"X-Error": "InternalError"},
        )
