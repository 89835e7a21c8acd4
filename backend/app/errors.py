from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inboxie.errors import InboxieError

logger = logging.getLogger(__name__)


def _status_codes(cls: type = InboxieError) -> Dict[str, int]:
    codes = {cls.code: cls.status_code}
    for sub in cls.__subclasses__():
        codes.update(_status_codes(sub))
    return codes


def status_for(code: str) -> int:
    return _status_codes().get(code, 500)


def error_response(error: Dict[str, Any], *, summary: Optional[Dict[str, Any]] = None) -> JSONResponse:
    """Serialize an InboxieError dict; no stack traces leave the process."""
    body: Dict[str, Any] = {"success": False, "error": error.get("code"), "message": error.get("message")}
    data = dict(error.get("data") or {})
    if summary is not None:
        data["summary"] = summary
    if data:
        body["data"] = data
    return JSONResponse(status_code=status_for(error.get("code", "")), content=body)


async def inboxie_error_handler(_request: Request, exc: InboxieError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[api] %s: %s", exc.code, exc.message)
    return error_response(exc.to_dict())


async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "invalid_request", "message": "Invalid request body", "data": {"errors": jsonable_encoder(exc.errors())}},
    )


async def unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.error("[api] unhandled %s: %s", type(exc).__name__, exc, exc_info=exc)
    return error_response(InboxieError("Internal server error").to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(InboxieError, inboxie_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
