"""Expiry classification for ID-card dates."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from ..logging import get_logger
from .constants import EXPIRING_SOON_DAYS
from .models import UNKNOWN_EXPIRY, ExpiryStatus

LOG = get_logger("expiry")


def parse_date(text: Optional[str]) -> Optional[date]:
    """Parse `YYYY-MM-DD` (or a full ISO timestamp) into a calendar date."""
    if not isinstance(text, str):
        return None
    s = text.strip()
    if not s:
        return None
    try:
        return datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        return None


def classify(date_text: Optional[str], today: Optional[date] = None) -> ExpiryStatus:
    """Classify an expiry date relative to `today` (local calendar date).

    Unparseable input is "unknown" and treated as not expired. A date equal to
    today counts as expiring soon, not expired.
    """
    expiry = parse_date(date_text)
    if expiry is None:
        if date_text:
            LOG.debug(f"Unparseable expiry date {date_text!r}; treating as not expired")
        return UNKNOWN_EXPIRY

    today = today or date.today()
    days_diff = (expiry - today).days

    if days_diff < 0:
        return ExpiryStatus(is_expired=True, is_expiring_soon=False, days_after_expiry=abs(days_diff))
    if days_diff <= EXPIRING_SOON_DAYS:
        return ExpiryStatus(is_expired=False, is_expiring_soon=True, days_after_expiry=0)
    return ExpiryStatus(is_expired=False, is_expiring_soon=False, days_after_expiry=0)
