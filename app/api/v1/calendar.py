# ================================
# CALENDAR SYNC API ROUTES (api/v1/calendar.py)
# ================================

from typing import List, Optional
from datetime import date
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
import uuid

from app.config import settings
from app.dependencies import get_db, get_owner_user, get_admin_user
from app.core.security import CurrentUser
from app.models.calendar import CalendarSyncConfig
from app.services.calendar_sync_service import CalendarSyncService
from app.schemas.calendar import (
    CalendarSyncCreate,
    CalendarSyncUpdate,
    CalendarSyncResponse,
    ImportResultResponse,
    SyncRunResponse,
    CalendarEventResponse
)

router = APIRouter()

def _to_response(config: CalendarSyncConfig) -> CalendarSyncResponse:
    response = CalendarSyncResponse.model_validate(config)
    response.export_url = settings.ical_feed_url(config.export_token)
    return response

@router.get("/syncs", response_model=List[CalendarSyncResponse])
async def list_syncs(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """List export feeds and import sources of the caller"""
    return [_to_response(config) for config in CalendarSyncService.list_syncs(db, current_user)]

@router.post("/syncs", response_model=CalendarSyncResponse, status_code=status.HTTP_201_CREATED)
async def create_sync(
    sync_data: CalendarSyncCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Create an export feed or register an external iCal URL"""
    config = CalendarSyncService.create_sync(db, current_user, sync_data)
    return _to_response(config)

@router.get("/syncs/{sync_id}", response_model=CalendarSyncResponse)
async def get_sync(
    sync_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    return _to_response(CalendarSyncService.get_sync(db, sync_id, current_user))

@router.patch("/syncs/{sync_id}", response_model=CalendarSyncResponse)
async def update_sync(
    sync_id: uuid.UUID,
    sync_data: CalendarSyncUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Pause/resume or edit a sync config"""
    config = CalendarSyncService.update_sync(db, sync_id, current_user, sync_data)
    return _to_response(config)

@router.delete("/syncs/{sync_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sync(
    sync_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Delete a sync config and the dates it imported"""
    CalendarSyncService.delete_sync(db, sync_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@router.post("/syncs/run", response_model=SyncRunResponse)
async def run_all_imports(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_admin_user)
):
    """Run the periodic import job now"""
    result = await CalendarSyncService.sync_all_active_imports(db)
    return SyncRunResponse(**result)

@router.post("/syncs/{sync_id}/import", response_model=ImportResultResponse)
async def import_now(
    sync_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Fetch one external calendar right away"""
    CalendarSyncService.get_sync(db, sync_id, current_user)
    imported = await CalendarSyncService.import_from_external_calendar(db, sync_id)
    return ImportResultResponse(sync_id=sync_id, imported=imported)

@router.get("/events", response_model=List[CalendarEventResponse])
async def get_calendar_events(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    unit_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_owner_user)
):
    """Bookings and blocked periods for the owner calendar"""
    events = CalendarSyncService.get_calendar_events(db, current_user, start, end, unit_id)
    return [CalendarEventResponse.model_validate(event) for event in events]

@router.get("/ical/{export_token}", response_class=Response)
async def get_ical_feed(
    export_token: str,
    db: Session = Depends(get_db)
):
    """Public iCal feed for third-party listing sites"""
    document = CalendarSyncService.generate_ical_feed(db, export_token)
    return Response(
        content=document,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": 'inline; filename="calendar.ics"'}
    )
