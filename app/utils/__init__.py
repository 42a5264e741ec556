# ================================
# UTILS PACKAGE INITIALIZATION (utils/__init__.py)
# ================================

"""
Utils Package

Helper modules of the booking engine:
- Audit facts published on the event bus
- Half-open date range math and blocked date grouping
- iCalendar parsing and generation
- Booking number generation
"""

from app.utils.audit import AuditLogger, audit_logger

__all__ = ["AuditLogger", "audit_logger"]
