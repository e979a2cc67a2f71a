from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bookingdesk.api.schemas import ErrorSchema
from bookingdesk.application.exceptions import (
    AppointmentNotFoundError,
    InvalidTransitionError,
    PersistenceError,
    SlotConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, message: str, fields: dict[str, str] | None = None, retryable: bool = False) -> JSONResponse:
    body = ErrorSchema(error=error, message=message, fields=fields, retryable=retryable)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
        return _error(409, "invalid_transition", str(exc), fields=exc.fields)

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return _error(422, "validation_error", "Please check the highlighted fields", fields=exc.fields)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields: dict[str, str] = {}
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
            fields[".".join(loc) or "body"] = err.get("msg", "invalid")
        return _error(422, "validation_error", "Please check the highlighted fields", fields=fields)

    @app.exception_handler(SlotConflictError)
    async def slot_conflict_handler(request: Request, exc: SlotConflictError):
        return _error(409, "slot_conflict", "That time is no longer available. Please choose another slot.")

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError):
        logger.error("Persistence failure", extra={"error": f"{exc}: {exc.__cause__}"})
        return _error(503, "persistence_error", "The booking could not be saved. Please try again.", retryable=True)

    @app.exception_handler(AppointmentNotFoundError)
    async def not_found_handler(request: Request, exc: AppointmentNotFoundError):
        return _error(404, "not_found", str(exc))
