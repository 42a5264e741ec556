# ================================
# CALENDAR SYNC MODELS (models/calendar.py)
# ================================

from sqlalchemy import (
    Column, String, Text, Integer, Date, DateTime, ForeignKey, Index, UniqueConstraint, Uuid
)
from sqlalchemy.orm import relationship
from app.models.base import Base, OwnerMixin, enum_column
from app.models.enums import CalendarSyncType, CalendarSyncStatus

class CalendarSyncConfig(Base, OwnerMixin):
    """Export feed or import source for a unit (or all of an owner's units)"""
    __tablename__ = "calendar_syncs"

    unit_id = Column(Uuid, ForeignKey('units.id', ondelete='CASCADE'), nullable=True)
    name = Column(String(255), nullable=True)
    sync_type = enum_column(CalendarSyncType, nullable=False)
    status = enum_column(CalendarSyncStatus, nullable=False, default=CalendarSyncStatus.ACTIVE)

    # Export side
    export_token = Column(String(128), nullable=True, unique=True)

    # Import side
    import_url = Column(String(2000), nullable=True)
    source_name = Column(String(100), nullable=True)  # "Airbnb", "Booking.com", ...
    sync_interval_minutes = Column(Integer, nullable=False, default=30)

    # Sync Status
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_error = Column(Text, nullable=True)
    events_imported = Column(Integer, nullable=False, default=0)
    events_exported = Column(Integer, nullable=False, default=0)

    unit = relationship("Unit")
    external_events = relationship("ExternalCalendarEvent", back_populates="calendar_sync", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_calendar_syncs_type_status', 'sync_type', 'status'),
    )

    def __repr__(self):
        return f"<CalendarSyncConfig(type='{self.sync_type}', status='{self.status}', source='{self.source_name}')>"

class ExternalCalendarEvent(Base):
    """Cached copy of one imported VEVENT, end date exclusive"""
    __tablename__ = "external_calendar_events"

    calendar_sync_id = Column(Uuid, ForeignKey('calendar_syncs.id', ondelete='CASCADE'), nullable=False)
    unit_id = Column(Uuid, ForeignKey('units.id', ondelete='CASCADE'), nullable=False)
    external_uid = Column(String(500), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    summary = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    source_name = Column(String(100), nullable=False, default="External")
    source_url = Column(String(2000), nullable=True)

    calendar_sync = relationship("CalendarSyncConfig", back_populates="external_events")

    __table_args__ = (
        UniqueConstraint('calendar_sync_id', 'external_uid', name='uq_external_events_sync_uid'),
        Index('idx_external_events_unit_dates', 'unit_id', 'start_date', 'end_date'),
    )

    def __repr__(self):
        return f"<ExternalCalendarEvent(uid='{self.external_uid}', {self.start_date}..{self.end_date})>"
