# ================================
# BOOKING API ROUTES (api/v1/bookings.py)
# ================================

from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
import uuid

from app.dependencies import get_db, get_current_user, get_owner_user
from app.core.security import CurrentUser
from app.models.enums import BookingStatus
from app.services.booking_service import BookingService
from app.schemas.booking import (
    BookingCreate,
    BookingStatusUpdate,
    BookingCancel,
    BookingResponse,
    BookingListResponse,
    BookingStatsResponse,
    BookingStatusHistoryResponse
)

router = APIRouter()

@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Create a pending booking, price is computed server-side"""
    booking = BookingService.create_booking(db, data=booking_data, guest_id=current_user.id)
    return BookingResponse.model_validate(booking)

@router.get("", response_model=BookingListResponse)
async def list_bookings(
    status: Optional[BookingStatus] = Query(None),
    unit_id: Optional[uuid.UUID] = Query(None),
    check_in_from: Optional[date] = Query(None),
    check_in_to: Optional[date] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """List bookings on the caller's units (all units for admins)"""
    bookings, total = BookingService.list_bookings(
        db,
        user=current_user,
        status=status,
        unit_id=unit_id,
        check_in_from=check_in_from,
        check_in_to=check_in_to,
        search=search,
        page=page,
        page_size=page_size
    )
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size
    )

@router.get("/mine", response_model=BookingListResponse)
async def list_my_bookings(
    status: Optional[BookingStatus] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Bookings made by the caller"""
    bookings, total = BookingService.list_user_bookings(
        db,
        user_id=current_user.id,
        status=status,
        page=page,
        page_size=page_size
    )
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size
    )

@router.get("/stats", response_model=BookingStatsResponse)
async def get_booking_stats(
    unit_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Booking counts per status"""
    stats = BookingService.get_booking_stats(
        db,
        unit_id=unit_id,
        owner_id=None if current_user.is_admin else current_user.id
    )
    return BookingStatsResponse(**stats)

@router.get("/by-number/{booking_number}", response_model=BookingResponse)
async def get_booking_by_number(
    booking_number: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Look up a booking by its human-readable number"""
    booking = BookingService.get_booking_by_number(db, booking_number, current_user)
    return BookingResponse.model_validate(booking)

@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Get booking details"""
    booking = BookingService.get_booking(db, booking_id, current_user)
    return BookingResponse.model_validate(booking)

@router.post("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: uuid.UUID,
    status_data: BookingStatusUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Move a booking along its lifecycle (owner of the unit or admin)"""
    BookingService.get_booking(db, booking_id, current_user)

    booking = BookingService.update_booking_status(
        db,
        booking_id=booking_id,
        status=status_data.status,
        user_id=current_user.id,
        comment=status_data.comment,
        cancel_reason=status_data.cancel_reason
    )
    return BookingResponse.model_validate(booking)

@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: uuid.UUID,
    cancel_data: BookingCancel,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Guest cancels their own booking, refund follows the cancellation tiers"""
    booking = BookingService.cancel_own_booking(db, booking_id, current_user, cancel_data.reason)
    return BookingResponse.model_validate(booking)

@router.get("/{booking_id}/history", response_model=List[BookingStatusHistoryResponse])
async def get_booking_history(
    booking_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Status change history of a booking"""
    history = BookingService.get_booking_history(db, booking_id, current_user)
    return [BookingStatusHistoryResponse.model_validate(h) for h in history]
