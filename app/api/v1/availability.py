# ================================
# AVAILABILITY API ROUTES (api/v1/availability.py)
# ================================

from typing import List, Optional
from datetime import date, timedelta
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import uuid

from app.config import settings
from app.dependencies import get_db, get_owner_user
from app.core.security import CurrentUser
from app.core.exceptions import ValidationError
from app.services.availability_service import AvailabilityService
from app.schemas.availability import (
    AvailabilityResponse,
    OccupiedDateResponse,
    CalendarDayResponse,
    AvailabilityCalendarResponse,
    NextAvailableResponse,
    BlockDatesRequest,
    BlockDatesResponse
)
from app.utils.dates import today_utc

router = APIRouter()

@router.get("/{unit_id}/availability", response_model=AvailabilityResponse)
async def check_availability(
    unit_id: uuid.UUID,
    check_in: date = Query(...),
    check_out: date = Query(...),
    exclude_booking_id: Optional[uuid.UUID] = Query(None, description="Ignore this booking, for rescheduling"),
    db: Session = Depends(get_db)
):
    """Check whether a unit can be booked for [check_in, check_out)"""
    result = AvailabilityService.check_availability(db, unit_id, check_in, check_out, exclude_booking_id)
    return AvailabilityResponse(
        unit_id=unit_id,
        check_in=check_in,
        check_out=check_out,
        available=result.available,
        reason=result.reason,
        conflicting_dates=result.conflicting_dates
    )

@router.get("/{unit_id}/occupied-dates", response_model=List[OccupiedDateResponse])
async def get_occupied_dates(
    unit_id: uuid.UUID,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """Booked and blocked days of a unit, both bounds inclusive"""
    start = start or today_utc()
    end = end or start + timedelta(days=settings.AVAILABILITY_SEARCH_DAYS)
    if end < start:
        raise ValidationError("end must not be before start")

    occupied = AvailabilityService.get_occupied_dates(db, unit_id, start, end)
    return [OccupiedDateResponse.model_validate(item) for item in occupied]

@router.get("/{unit_id}/availability-calendar", response_model=AvailabilityCalendarResponse)
async def get_availability_calendar(
    unit_id: uuid.UUID,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db)
):
    """Per-day availability and price for one month"""
    days = AvailabilityService.get_availability_calendar(db, unit_id, year, month)
    return AvailabilityCalendarResponse(
        unit_id=unit_id,
        year=year,
        month=month,
        days=[CalendarDayResponse.model_validate(day) for day in days]
    )

@router.get("/{unit_id}/next-available", response_model=NextAvailableResponse)
async def find_next_available(
    unit_id: uuid.UUID,
    nights: int = Query(..., ge=1),
    check_in: Optional[date] = Query(None, description="Preferred check-in, defaults to today"),
    db: Session = Depends(get_db)
):
    """First free window of the given length"""
    window = AvailabilityService.find_next_available_dates(db, unit_id, check_in or today_utc(), nights)
    return NextAvailableResponse(
        unit_id=unit_id,
        nights=nights,
        check_in=window.check_in if window else None,
        check_out=window.check_out if window else None,
        found=window is not None
    )

@router.post("/{unit_id}/blocked-dates", response_model=BlockDatesResponse)
async def block_dates(
    unit_id: uuid.UUID,
    request: BlockDatesRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Manually block dates (skips dates held by bookings or imported calendars)"""
    AvailabilityService.get_managed_unit(db, unit_id, current_user)
    affected = AvailabilityService.block_dates(
        db,
        unit_id=unit_id,
        dates=request.dates,
        reason=request.reason,
        user_id=current_user.id
    )
    return BlockDatesResponse(unit_id=unit_id, requested=len(request.dates), affected=affected)

@router.delete("/{unit_id}/blocked-dates", response_model=BlockDatesResponse)
async def unblock_dates(
    unit_id: uuid.UUID,
    request: BlockDatesRequest,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Remove manual blocks, imported blocks stay"""
    AvailabilityService.get_managed_unit(db, unit_id, current_user)
    affected = AvailabilityService.unblock_dates(
        db,
        unit_id=unit_id,
        dates=request.dates,
        user_id=current_user.id
    )
    return BlockDatesResponse(unit_id=unit_id, requested=len(request.dates), affected=affected)
