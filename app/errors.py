"""
Exception handlers mapping service errors to HTTP responses.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import secondbrain.config as config
from secondbrain.errors import StaleEntryError, ValidationIssue


async def validation_issue_handler(request: Request, exc: ValidationIssue) -> JSONResponse:
    config.logger.info(
        "request_validation_error",
        extra={"path": request.url.path, "field": exc.field, "error_type": exc.error_type},
    )
    return JSONResponse(
        status_code=422,
        content={
            "status": "error",
            "field": exc.field,
            "error_type": exc.error_type,
            "message": str(exc),
        },
    )


async def stale_entry_handler(request: Request, exc: StaleEntryError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "status": "error",
            "error_type": "stale_entry",
            "entry_id": exc.entry_id,
            "message": str(exc),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationIssue, validation_issue_handler)
    app.add_exception_handler(StaleEntryError, stale_entry_handler)
