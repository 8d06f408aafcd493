"""Exception handlers rendering domain errors as JSON responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..errors import FrameError

logger = logging.getLogger(__name__)


def error_payload(kind: str, message: str) -> dict:
    return {"error": {"kind": kind, "message": message}}


async def frame_error_handler(request: Request, exc: FrameError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc.kind, exc.message))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers on ``app``; used by the service and by tests."""
    app.add_exception_handler(FrameError, frame_error_handler)
