from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from bookingdesk.api.schemas import RescheduleRequestSchema, SessionSchema
from bookingdesk.application.exceptions import ValidationError
from bookingdesk.application.use_cases.sessions import SessionService
from bookingdesk.application.utils.validation import parse_instant
from bookingdesk.core.config import settings
from bookingdesk.domain.entities.appointment import AppointmentStatus
from bookingdesk.wiring.dependencies import get_booking_config, get_session_service


def require_admin(x_admin_token: str | None = Header(None)) -> None:
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Admin token required")


router = APIRouter(prefix="/api/sessions", dependencies=[Depends(require_admin)])


@router.get("", response_model=list[SessionSchema])
def list_sessions(
    client_id: str | None = Query(None),
    status: str | None = Query(None),
    from_: str | None = Query(None, alias="from"),
    to: str | None = Query(None),
    service: SessionService = Depends(get_session_service),
):
    errors: dict[str, str] = {}
    status_filter = None
    if status:
        try:
            status_filter = AppointmentStatus(status)
        except ValueError:
            errors["status"] = "unknown status"
    tz = get_booking_config().timezone
    start = parse_instant(from_, tz) if from_ else None
    end = parse_instant(to, tz) if to else None
    if from_ and start is None:
        errors["from"] = "must be an ISO 8601 date-time"
    if to and end is None:
        errors["to"] = "must be an ISO 8601 date-time"
    if errors:
        raise ValidationError(errors)

    sessions = service.list_sessions(client_id=client_id, status=status_filter, start=start, end=end)
    return [SessionSchema.from_appointment(a) for a in sessions]


@router.get("/{session_id}", response_model=SessionSchema)
def get_session(session_id: str, service: SessionService = Depends(get_session_service)):
    return SessionSchema.from_appointment(service.get(session_id))


@router.post("/{session_id}/cancel", response_model=SessionSchema)
def cancel_session(session_id: str, service: SessionService = Depends(get_session_service)):
    return SessionSchema.from_appointment(service.cancel(session_id))


@router.post("/{session_id}/complete", response_model=SessionSchema)
def complete_session(session_id: str, service: SessionService = Depends(get_session_service)):
    return SessionSchema.from_appointment(service.complete(session_id))


@router.post("/{session_id}/postpone", response_model=SessionSchema)
def postpone_session(session_id: str, service: SessionService = Depends(get_session_service)):
    return SessionSchema.from_appointment(service.postpone(session_id))


@router.post("/{session_id}/reschedule", response_model=SessionSchema)
def reschedule_session(
    session_id: str,
    req: RescheduleRequestSchema,
    service: SessionService = Depends(get_session_service),
):
    if not req.scheduled_at:
        raise ValidationError({"scheduled_at": "required"})
    return SessionSchema.from_appointment(service.reschedule(session_id, req.scheduled_at))
