"""The ``{ok, data, error}`` envelope every chatbot endpoint answers with."""
from typing import Any, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from app.core.errors import ChatbotError


def envelope(data: Any = None, error: Optional[dict] = None) -> dict:
    return {"ok": error is None, "data": jsonable_encoder(data), "error": error}


def success(data: Any = None, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=envelope(data))


def failure(code: str, message: str, status_code: int, data: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=envelope(data, {"code": code, "message": message}),
    )


def error_response(exc: ChatbotError, data: Any = None) -> JSONResponse:
    return failure(exc.code, exc.message, exc.status_code, data)
