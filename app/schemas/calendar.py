# ================================
# CALENDAR SYNC SCHEMAS (schemas/calendar.py)
# ================================

from typing import Optional, Literal
from datetime import date, datetime
from pydantic import Field, field_validator, model_validator
import uuid

from app.models.enums import CalendarSyncType, CalendarSyncStatus
from app.schemas.base import BaseSchema, BaseResponseSchema, TimestampMixin

def normalize_import_url(v: Optional[str]) -> Optional[str]:
    """Accept http(s) and webcal feed URLs, webcal is fetched over https"""
    if v is None:
        return v
    if v.startswith("webcal://"):
        v = "https://" + v[len("webcal://"):]
    if not v.startswith(("http://", "https://")):
        raise ValueError('Import URL must be an http(s) or webcal URL')
    return v

class CalendarSyncCreate(BaseSchema):
    """Schema for creating an export feed or an import source"""
    sync_type: CalendarSyncType
    unit_id: Optional[uuid.UUID] = None
    name: Optional[str] = Field(None, max_length=255)
    import_url: Optional[str] = Field(None, max_length=2000)
    source_name: Optional[str] = Field(None, max_length=100)
    sync_interval_minutes: Optional[int] = Field(None, ge=5, le=24 * 60)

    @field_validator('import_url')
    @classmethod
    def validate_import_url(cls, v: Optional[str]) -> Optional[str]:
        return normalize_import_url(v)

    @model_validator(mode='after')
    def require_import_url(self):
        if self.sync_type == CalendarSyncType.IMPORT and not self.import_url:
            raise ValueError('import_url is required for import calendars')
        return self

class CalendarSyncUpdate(BaseSchema):
    """Schema for pausing/resuming or editing a sync config"""
    status: Optional[CalendarSyncStatus] = None  # active or paused
    name: Optional[str] = Field(None, max_length=255)
    import_url: Optional[str] = Field(None, max_length=2000)
    source_name: Optional[str] = Field(None, max_length=100)
    sync_interval_minutes: Optional[int] = Field(None, ge=5, le=24 * 60)

    @field_validator('import_url')
    @classmethod
    def validate_import_url(cls, v: Optional[str]) -> Optional[str]:
        return normalize_import_url(v)

class CalendarSyncResponse(BaseResponseSchema, TimestampMixin):
    """Schema for sync config response"""
    owner_id: uuid.UUID
    unit_id: Optional[uuid.UUID] = None
    name: Optional[str] = None
    sync_type: CalendarSyncType
    status: CalendarSyncStatus
    export_token: Optional[str] = None
    export_url: Optional[str] = None
    import_url: Optional[str] = None
    source_name: Optional[str] = None
    sync_interval_minutes: int
    last_sync_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    events_imported: int
    events_exported: int

class ImportResultResponse(BaseSchema):
    sync_id: uuid.UUID
    imported: int

class SyncRunResponse(BaseSchema):
    synced: int
    errors: int
    skipped: int

class CalendarEventResponse(BaseSchema):
    """Booking or blocked period for calendar display, end is exclusive"""
    id: str
    unit_id: uuid.UUID
    unit_title: str
    start_date: date
    end_date: date
    type: Literal["booking", "blocked", "external"]
    status: Optional[str] = None
    source: Optional[str] = None
    title: Optional[str] = None
    color: str
