"""
Calendar Sync Service

Exports a unit's bookings and blocked dates as an iCal feed for third-party
listing sites, and imports their feeds back as blocked dates. Imports replace
everything a sync config wrote before (full replace, no merge). A periodic job
re-imports due feeds with per-source error isolation.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Set
import logging
import secrets
import uuid

import httpx
from sqlalchemy import select, delete
from sqlalchemy.orm import Session

from app.config import settings
from app.models.business import Unit, Booking, BlockedDate
from app.models.calendar import CalendarSyncConfig, ExternalCalendarEvent
from app.models.enums import (
    BookingStatus, BlockedDateSource, CalendarSyncType, CalendarSyncStatus, EXPORTED_BOOKING_STATUSES
)
from app.schemas.calendar import CalendarSyncCreate, CalendarSyncUpdate
from app.core.exceptions import (
    AppException, NotFoundError, AuthorizationError, ValidationError, InactiveError,
    SyncFetchError, SyncInProgressError
)
from app.core.security import CurrentUser
from app.utils.audit import audit_logger
from app.utils.dates import ensure_aware, group_consecutive_dates, today_utc
from app.utils.ical import ICalEvent, format_calendar, parse_ical

logger = logging.getLogger(__name__)

BOOKING_COLORS = {
    BookingStatus.PENDING: "#FCD34D",
    BookingStatus.CONFIRMED: "#60A5FA",
    BookingStatus.PAID: "#34D399",
    BookingStatus.COMPLETED: "#9CA3AF",
    BookingStatus.CANCELED: "#EF4444",
    BookingStatus.REFUNDED: "#F472B6",
}

BLOCKED_COLORS = {
    BlockedDateSource.MANUAL: "#6B7280",
    BlockedDateSource.BOOKING: "#34D399",
    BlockedDateSource.AVITO: "#3B82F6",
    BlockedDateSource.BOOKING_COM: "#8B5CF6",
    BlockedDateSource.AIRBNB: "#EC4899",
    BlockedDateSource.OTHER: "#F59E0B",
}

DEFAULT_EVENT_WINDOW_DAYS = 90

@dataclass
class CalendarDisplayEvent:
    """Booking or grouped blocked period for the owner calendar, end exclusive"""
    id: str
    unit_id: uuid.UUID
    unit_title: str
    start_date: date
    end_date: date
    type: str
    color: str
    status: Optional[str] = None
    source: Optional[str] = None
    title: Optional[str] = None

class ICalFeedClient:
    """Downloads remote iCal feeds"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = settings.ICAL_FETCH_TIMEOUT
        self.transport = transport

    async def fetch(self, url: str) -> str:
        async with httpx.AsyncClient(transport=self.transport, follow_redirects=True) as client:
            try:
                response = await client.get(
                    url,
                    headers={"User-Agent": settings.ICAL_USER_AGENT, "Accept": "text/calendar, */*"},
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.text

            except httpx.HTTPStatusError as e:
                logger.error(f"iCal feed error: {e.response.status_code} for {url}")
                raise SyncFetchError(f"HTTP error: {e.response.status_code}")
            except httpx.RequestError as e:
                logger.error(f"Request error fetching iCal feed {url}: {str(e)}")
                raise SyncFetchError(f"Failed to fetch calendar: {e.__class__.__name__}")

class CalendarSyncService:
    """Service for iCal export/import and calendar display"""

    # Sync configs with an import running right now
    _in_flight: Set[uuid.UUID] = set()

    # ================================
    # SYNC CONFIG MANAGEMENT
    # ================================

    @staticmethod
    def list_syncs(db: Session, user: CurrentUser) -> List[CalendarSyncConfig]:
        query = select(CalendarSyncConfig).order_by(CalendarSyncConfig.created_at)
        if not user.is_admin:
            query = query.where(CalendarSyncConfig.owner_id == user.id)
        return list(db.execute(query).scalars().all())

    @staticmethod
    def get_sync(db: Session, sync_id: uuid.UUID, user: CurrentUser) -> CalendarSyncConfig:
        config = db.get(CalendarSyncConfig, sync_id)
        if not config or (not user.is_admin and config.owner_id != user.id):
            raise NotFoundError("Calendar sync not found", "SYNC_NOT_FOUND")
        return config

    @staticmethod
    def create_sync(db: Session, user: CurrentUser, data: CalendarSyncCreate) -> CalendarSyncConfig:
        """Create an export feed (with a fresh token) or an import source"""
        owner_id = user.id
        if data.unit_id:
            unit = db.get(Unit, data.unit_id)
            if not unit:
                raise NotFoundError("Unit not found", "UNIT_NOT_FOUND")
            if not user.is_admin and unit.owner_id != user.id:
                raise AuthorizationError("You can only sync your own units")
            owner_id = unit.owner_id

        config = CalendarSyncConfig(
            owner_id=owner_id,
            unit_id=data.unit_id,
            name=data.name,
            sync_type=data.sync_type,
            status=CalendarSyncStatus.ACTIVE,
            sync_interval_minutes=data.sync_interval_minutes or settings.DEFAULT_SYNC_INTERVAL_MINUTES
        )

        if data.sync_type == CalendarSyncType.EXPORT:
            config.export_token = secrets.token_hex(32)
        else:
            config.import_url = data.import_url
            config.source_name = data.source_name or "External"

        db.add(config)
        db.commit()
        db.refresh(config)

        audit_logger.log_business_event(
            action="CALENDAR_SYNC_CREATED",
            user_id=user.id,
            resource_type="calendar_sync",
            resource_id=config.id,
            new_values={"sync_type": config.sync_type, "unit_id": config.unit_id, "source_name": config.source_name}
        )

        return config

    @staticmethod
    def update_sync(db: Session, sync_id: uuid.UUID, user: CurrentUser, data: CalendarSyncUpdate) -> CalendarSyncConfig:
        config = CalendarSyncService.get_sync(db, sync_id, user)
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get("status") == CalendarSyncStatus.ERROR:
            raise ValidationError("Status can only be set to active or paused")

        if config.sync_type == CalendarSyncType.EXPORT:
            for field_name in ("import_url", "source_name", "sync_interval_minutes"):
                update_data.pop(field_name, None)

        old_values = {key: getattr(config, key) for key in update_data}
        for key, value in update_data.items():
            if value is not None:
                setattr(config, key, value)

        # Resuming clears the last failure so the next run starts clean
        if update_data.get("status") == CalendarSyncStatus.ACTIVE:
            config.last_sync_error = None

        db.commit()
        db.refresh(config)

        audit_logger.log_business_event(
            action="CALENDAR_SYNC_UPDATED",
            user_id=user.id,
            resource_type="calendar_sync",
            resource_id=config.id,
            old_values=old_values,
            new_values=update_data
        )

        return config

    @staticmethod
    def delete_sync(db: Session, sync_id: uuid.UUID, user: CurrentUser) -> None:
        """Delete a sync config together with the blocks it imported"""
        config = CalendarSyncService.get_sync(db, sync_id, user)

        CalendarSyncService._release_blocks(db, config)
        db.delete(config)
        db.commit()

        audit_logger.log_business_event(
            action="CALENDAR_SYNC_DELETED",
            user_id=user.id,
            resource_type="calendar_sync",
            resource_id=sync_id
        )

    @staticmethod
    def _release_blocks(db: Session, config: CalendarSyncConfig):
        """
        Drop the blocked dates this config imported.

        A day another import still reports as busy is handed over to that
        import instead of being freed.
        """
        rows = db.execute(
            select(BlockedDate).where(BlockedDate.calendar_sync_id == config.id)
        ).scalars().all()
        if not rows:
            return

        first_day = min(row.date for row in rows)
        last_day = max(row.date for row in rows)
        others = db.execute(
            select(ExternalCalendarEvent).where(
                ExternalCalendarEvent.unit_id.in_({row.unit_id for row in rows}),
                ExternalCalendarEvent.calendar_sync_id != config.id,
                ExternalCalendarEvent.start_date <= last_day,
                ExternalCalendarEvent.end_date > first_day
            ).order_by(ExternalCalendarEvent.created_at)
        ).scalars().all()

        for row in rows:
            holder = next(
                (event for event in others
                 if event.unit_id == row.unit_id and event.start_date <= row.date < event.end_date),
                None
            )
            if holder is None:
                db.delete(row)
                continue
            row.source = BlockedDateSource.from_source_name(holder.source_name)
            row.reason = holder.summary or f"Busy ({holder.source_name})"
            row.external_ref = holder.external_uid
            row.calendar_sync_id = holder.calendar_sync_id

        db.flush()

    @staticmethod
    def _units_for(db: Session, config: CalendarSyncConfig) -> List[Unit]:
        if config.unit_id:
            unit = db.get(Unit, config.unit_id)
            return [unit] if unit else []
        return list(db.execute(
            select(Unit).where(Unit.owner_id == config.owner_id).order_by(Unit.created_at, Unit.id)
        ).scalars().all())

    # ================================
    # EXPORT
    # ================================

    @staticmethod
    def build_export_events(
        db: Session,
        units: List[Unit],
        today: Optional[date] = None
    ) -> List[ICalEvent]:
        """VEVENTs for exported bookings and grouped future blocked dates"""
        today = today or today_utc()
        unit_ids = [unit.id for unit in units]
        titles = {unit.id: unit.title for unit in units}
        if not unit_ids:
            return []

        bookings = db.execute(
            select(Booking).where(
                Booking.unit_id.in_(unit_ids),
                Booking.status.in_(EXPORTED_BOOKING_STATUSES),
                Booking.check_in >= today - timedelta(days=settings.ICAL_EXPORT_LOOKBACK_DAYS)
            ).order_by(Booking.check_in)
        ).scalars().all()

        events = [
            ICalEvent(
                uid=f"booking-{booking.id}@{settings.ICAL_UID_DOMAIN}",
                start=booking.check_in,
                end=booking.check_out,
                summary=f"Booking: {titles[booking.unit_id]}",
                description=f"Booking {booking.booking_number}\nStatus: {booking.status.value}"
            )
            for booking in bookings
        ]

        blocked = db.execute(
            select(BlockedDate).where(
                BlockedDate.unit_id.in_(unit_ids),
                BlockedDate.date >= today
            )
        ).scalars().all()

        for group in group_consecutive_dates(blocked):
            events.append(ICalEvent(
                uid=f"blocked-{group.unit_id}-{group.start:%Y%m%d}-{group.source.value}@{settings.ICAL_UID_DOMAIN}",
                start=group.start,
                end=group.end_exclusive,
                summary=f"Closed: {titles[group.unit_id]}",
                description=group.reason or "Dates closed"
            ))

        return events

    @staticmethod
    def generate_ical_feed(db: Session, export_token: str, today: Optional[date] = None) -> str:
        """Render the iCal document behind an export token"""
        config = db.execute(
            select(CalendarSyncConfig).where(CalendarSyncConfig.export_token == export_token)
        ).scalar_one_or_none()
        if not config or config.sync_type != CalendarSyncType.EXPORT:
            raise NotFoundError("Calendar feed not found", "FEED_NOT_FOUND")
        if config.status == CalendarSyncStatus.PAUSED:
            raise InactiveError()

        units = CalendarSyncService._units_for(db, config)
        events = CalendarSyncService.build_export_events(db, units, today)

        calendar_name = config.name or (
            f"{settings.ICAL_CALENDAR_NAME} - {units[0].title}" if len(units) == 1 else settings.ICAL_CALENDAR_NAME
        )
        document = format_calendar(
            events,
            calendar_name=calendar_name,
            prodid=settings.ICAL_PRODID,
            timezone_name=settings.ICAL_TIMEZONE
        )

        config.last_sync_at = datetime.now(timezone.utc)
        config.events_exported = len(events)
        db.commit()

        logger.info(f"Exported {len(events)} events for calendar sync {config.id}")
        return document

    # ================================
    # IMPORT
    # ================================

    @staticmethod
    def _record_failure(db: Session, sync_id: uuid.UUID, message: str):
        """Persist the error on the sync config for operator visibility"""
        db.rollback()
        config = db.get(CalendarSyncConfig, sync_id)
        if config is None:
            return
        config.status = CalendarSyncStatus.ERROR
        config.last_sync_error = message[:2000]
        config.last_sync_at = datetime.now(timezone.utc)
        db.commit()

    @staticmethod
    async def import_from_external_calendar(
        db: Session,
        sync_id: uuid.UUID,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> int:
        """
        Fetch and apply one import feed, returns the number of imported events.

        Failures are stored on the config (status=error, last_sync_error) and
        then re-raised as SyncFetchError/SyncParseError.
        """
        config = db.get(CalendarSyncConfig, sync_id)
        if not config or config.sync_type != CalendarSyncType.IMPORT:
            raise NotFoundError("Calendar import not found", "SYNC_NOT_FOUND")
        if not config.import_url:
            raise ValidationError("Calendar import has no URL configured")

        if sync_id in CalendarSyncService._in_flight:
            raise SyncInProgressError()

        CalendarSyncService._in_flight.add(sync_id)
        try:
            text = await ICalFeedClient(transport).fetch(config.import_url)
            events = parse_ical(text)
            imported = CalendarSyncService._apply_import(db, config, events)

        except AppException as e:
            logger.warning(f"Calendar import {sync_id} failed: {e.detail}")
            CalendarSyncService._record_failure(db, sync_id, e.detail)
            raise
        except Exception as e:
            logger.error(f"Calendar import {sync_id} crashed: {e}")
            CalendarSyncService._record_failure(db, sync_id, f"Unexpected error: {e}")
            raise
        finally:
            CalendarSyncService._in_flight.discard(sync_id)

        audit_logger.log_business_event(
            action="CALENDAR_IMPORTED",
            user_id=None,
            resource_type="calendar_sync",
            resource_id=sync_id,
            new_values={"events_imported": imported}
        )
        return imported

    @staticmethod
    def _apply_import(db: Session, config: CalendarSyncConfig, events: List[ICalEvent]) -> int:
        """Replace this config's imported events and blocks in one transaction"""
        units = CalendarSyncService._units_for(db, config)
        if not units:
            raise ValidationError("Owner has no units to import the calendar into", "NO_UNITS")
        unit = units[0]

        source = BlockedDateSource.from_source_name(config.source_name)
        source_label = config.source_name or "External"

        # Duplicate UIDs keep the first occurrence
        unique_events: Dict[str, ICalEvent] = {}
        for event in events:
            unique_events.setdefault(event.uid, event)

        # Full replace of everything this config imported before
        db.execute(delete(ExternalCalendarEvent).where(ExternalCalendarEvent.calendar_sync_id == config.id))
        CalendarSyncService._release_blocks(db, config)

        existing: Dict[date, BlockedDate] = {}
        if unique_events:
            first_day = min(event.start for event in unique_events.values())
            last_day = max(event.end for event in unique_events.values())
            rows = db.execute(
                select(BlockedDate).where(
                    BlockedDate.unit_id == unit.id,
                    BlockedDate.date >= first_day,
                    BlockedDate.date < last_day
                )
            ).scalars().all()
            existing = {row.date: row for row in rows}

        for event in unique_events.values():
            db.add(ExternalCalendarEvent(
                calendar_sync_id=config.id,
                unit_id=unit.id,
                external_uid=event.uid[:500],
                start_date=event.start,
                end_date=event.end,
                summary=event.summary,
                description=event.description,
                source_name=source_label,
                source_url=config.import_url
            ))

            reason = event.summary or f"Busy ({source_label})"
            for day in event.dates():
                row = existing.get(day)
                if row is None:
                    row = BlockedDate(unit_id=unit.id, date=day)
                    db.add(row)
                    existing[day] = row
                elif row.source == BlockedDateSource.MANUAL:
                    # Owner's manual holds are never taken over by a sync
                    continue
                elif row.calendar_sync_id is not None and row.calendar_sync_id != config.id:
                    # Owned by another source until that source drops the day
                    continue
                row.source = source
                row.reason = reason
                row.external_ref = event.uid[:500]
                row.calendar_sync_id = config.id

        config.status = CalendarSyncStatus.ACTIVE
        config.last_sync_at = datetime.now(timezone.utc)
        config.last_sync_error = None
        config.events_imported = len(unique_events)
        if config.unit_id is None:
            logger.info(f"Calendar import {config.id} has no unit, using {unit.id}")

        db.commit()

        logger.info(f"Imported {len(unique_events)} events from {source_label} into unit {unit.id}")
        return len(unique_events)

    @staticmethod
    def is_due(config: CalendarSyncConfig, now: Optional[datetime] = None) -> bool:
        """Whether the config's interval has elapsed since its last sync"""
        if config.last_sync_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        interval = timedelta(minutes=config.sync_interval_minutes or settings.DEFAULT_SYNC_INTERVAL_MINUTES)
        return now - ensure_aware(config.last_sync_at) >= interval

    @staticmethod
    async def sync_all_active_imports(
        db: Session,
        now: Optional[datetime] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> Dict[str, int]:
        """Re-import every due active or failed import feed, one failure never stops the rest"""
        configs = db.execute(
            select(CalendarSyncConfig).where(
                CalendarSyncConfig.sync_type == CalendarSyncType.IMPORT,
                CalendarSyncConfig.status.in_([CalendarSyncStatus.ACTIVE, CalendarSyncStatus.ERROR])
            ).order_by(CalendarSyncConfig.created_at)
        ).scalars().all()

        # Plain ids, the session is rolled back between configs
        due = [
            config.id for config in configs
            if CalendarSyncService.is_due(config, now) and config.id not in CalendarSyncService._in_flight
        ]
        result = {"synced": 0, "errors": 0, "skipped": len(configs) - len(due)}

        for sync_id in due:
            try:
                await CalendarSyncService.import_from_external_calendar(db, sync_id, transport)
                result["synced"] += 1
            except Exception as e:
                result["errors"] += 1
                logger.error(f"Calendar sync {sync_id} failed: {e}")
                # Continue with next config

        return result

    # ================================
    # DISPLAY
    # ================================

    @staticmethod
    def get_calendar_events(
        db: Session,
        user: CurrentUser,
        start: Optional[date] = None,
        end: Optional[date] = None,
        unit_id: Optional[uuid.UUID] = None
    ) -> List[CalendarDisplayEvent]:
        """Bookings and grouped blocked periods on the caller's units in [start, end]"""
        start = start or today_utc()
        end = end or start + timedelta(days=DEFAULT_EVENT_WINDOW_DAYS)

        query = select(Unit)
        if unit_id:
            query = query.where(Unit.id == unit_id)
        if not user.is_admin:
            query = query.where(Unit.owner_id == user.id)
        units = db.execute(query).scalars().all()

        titles = {unit.id: unit.title for unit in units}
        if not titles:
            return []

        events: List[CalendarDisplayEvent] = []

        bookings = db.execute(
            select(Booking).where(
                Booking.unit_id.in_(list(titles)),
                Booking.check_in <= end,
                Booking.check_out >= start
            )
        ).scalars().all()

        for booking in bookings:
            events.append(CalendarDisplayEvent(
                id=f"booking-{booking.id}",
                unit_id=booking.unit_id,
                unit_title=titles[booking.unit_id],
                start_date=booking.check_in,
                end_date=booking.check_out,
                type="booking",
                status=booking.status.value,
                title=booking.contact_name or booking.booking_number,
                color=BOOKING_COLORS.get(booking.status, "#9CA3AF")
            ))

        blocked = db.execute(
            select(BlockedDate).where(
                BlockedDate.unit_id.in_(list(titles)),
                BlockedDate.date >= start,
                BlockedDate.date <= end
            )
        ).scalars().all()

        for group in group_consecutive_dates(blocked):
            internal = group.source in (BlockedDateSource.MANUAL, BlockedDateSource.BOOKING)
            events.append(CalendarDisplayEvent(
                id=f"blocked-{group.unit_id}-{group.start.isoformat()}",
                unit_id=group.unit_id,
                unit_title=titles[group.unit_id],
                start_date=group.start,
                end_date=group.end_exclusive,
                type="blocked" if internal else "external",
                source=group.source.value,
                title=group.reason,
                color=BLOCKED_COLORS.get(group.source, "#6B7280")
            ))

        events.sort(key=lambda event: (event.start_date, event.id))
        return events
