import calendar
import logging
from datetime import date

from models import db, AuditLog, Notification
from flask_login import current_user

logger = logging.getLogger(__name__)


def add_months(start, months):
    """
    Shift a date by whole months, clamping the day to the target month length.
    e.g. 2024-01-31 + 1 month -> 2024-02-29
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_date(value):
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def notify(user_id, title, body, entity_id=None, type='SYSTEM_ANNOUNCEMENT'):
    """Queue a Notification on the current session. Caller commits."""
    if not user_id:
        return None
    notification = Notification(
        user_id=user_id,
        type=type,
        entity_id=entity_id,
        title=title,
        body=body
    )
    db.session.add(notification)
    return notification


def log_audit(action, target_type, target_id, details="", user_id=None, commit=True):
    """
    Creates an AuditLog entry.

    Inside a cascade pass commit=False so the entry lands (or rolls back)
    with the rest of the transaction.
    """
    if user_id is None and current_user and current_user.is_authenticated:
        user_id = current_user.id

    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details
    )
    db.session.add(log)
    if not commit:
        return log

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Error logging audit %s %s#%s", action, target_type, target_id)
    return log
