"""Shared parsing helpers used by services and blueprints.

parse_date:        returns None on bad input
parse_date_input:  raises ValidationError on bad input
normalize_email:   email-validator based shape check
"""
import logging
from datetime import date, datetime

from email_validator import EmailNotValidError, validate_email

from orchestrator.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_date_input(value, field="date"):
    """Parse a date string, raising ValidationError on bad input.

    Same as parse_date() but fails loudly; empty input still returns None.
    """
    if not value:
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid {field}: {value!r}", details={field: "expected YYYY-MM-DD"})
    return parsed


def parse_datetime(value):
    """Parse an ISO timestamp (or date) to a datetime; None on bad input."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None


def normalize_email(value, field="email"):
    """Validate email shape and return the normalised address.

    Deliverability is not checked (no DNS lookups from the core).
    """
    try:
        valid = validate_email(str(value or ""), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid {field}: {exc}", details={field: str(value)}) from exc
    return valid.normalized


def require_fields(data, *fields):
    """Raise ValidationError naming every missing/empty field."""
    missing = [f for f in fields if data.get(f) in (None, "", [])]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )


def require_choice(value, choices, field):
    if value not in choices:
        raise ValidationError(
            f"Invalid {field}. Must be one of: {', '.join(choices)}",
            details={field: value},
        )
    return value
