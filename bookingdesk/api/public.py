from __future__ import annotations

import logging
import re
from datetime import date

from fastapi import APIRouter, Depends, Query

from bookingdesk.api.schemas import (
    DaySlotsResponseSchema,
    ErrorSchema,
    ReserveRequestSchema,
    ReserveResponseSchema,
)
from bookingdesk.application.exceptions import PersistenceError, RecordStoreError, ValidationError
from bookingdesk.application.use_cases.availability import SlotCalculator
from bookingdesk.application.use_cases.booking import BookingCoordinator, BookingRequest
from bookingdesk.wiring.dependencies import get_booking_coordinator, get_slot_calculator

router = APIRouter(prefix="/api/public")
logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_day(raw: str | None) -> date:
    if not raw:
        raise ValidationError({"date": "required"})
    if not _DATE_RE.match(raw):
        raise ValidationError({"date": "must be YYYY-MM-DD"})
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError({"date": "not a calendar date"})


@router.get("/available-slots", response_model=DaySlotsResponseSchema)
def available_slots(
    date_param: str | None = Query(None, alias="date"),
    calculator: SlotCalculator = Depends(get_slot_calculator),
):
    day = _parse_day(date_param)
    try:
        schedule = calculator.available_slots(day)
    except RecordStoreError as e:
        raise PersistenceError("Could not read sessions") from e
    logger.info("Slots served", extra={"reason": f"{day.isoformat()} {sum(s.available for s in schedule.slots)} free"})
    return DaySlotsResponseSchema.from_schedule(schedule)


@router.post(
    "/reserve",
    response_model=ReserveResponseSchema,
    status_code=201,
    responses={409: {"model": ErrorSchema}, 422: {"model": ErrorSchema}, 503: {"model": ErrorSchema}},
)
def reserve(
    req: ReserveRequestSchema,
    coordinator: BookingCoordinator = Depends(get_booking_coordinator),
):
    result = coordinator.book(
        BookingRequest(
            client_name=req.client_name,
            email=req.email,
            phone=req.phone,
            scheduled_at=req.scheduled_at,
            session_type=req.session_type,
            format=req.format,
            notes=req.notes or "",
            phonetic_name=req.phonetic_name,
            address=req.address or "",
            preferred_format=req.preferred_format,
        )
    )
    return ReserveResponseSchema(
        appointment_id=result.appointment_id,
        client_id=result.client_id,
        scheduled_at=result.scheduled_at,
        meeting_url=result.meeting_url,
        calendar_used=result.calendar_used,
        meeting_url_is_placeholder=result.meeting_url_is_placeholder,
    )
