import re
from typing import Optional

from ..logging import get_logger

_LOG = get_logger("normalize")


def normalize_date_iso(value: Optional[str]) -> Optional[str]:
    """Normalize common card date strings to ISO YYYY-MM-DD.

    Supports:
    - YYYY-MM-DD passthrough, YYYY/MM/DD
    - DD/MM/YYYY, DD.MM.YYYY, DD-MM-YYYY (day first, as printed on cards)
    Returns None for anything else, including impossible month/day values.
    """
    if not value:
        return None
    v = str(value).strip()
    if not v:
        return None
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", v):
        return v
    m = re.fullmatch(r"(\d{4})[/.](\d{1,2})[/.](\d{1,2})", v)
    if m:
        y, mth, d = m.groups()
    else:
        m = re.fullmatch(r"(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{4})", v)
        if not m:
            return None
        d, mth, y = m.groups()
    if not (1 <= int(mth) <= 12 and 1 <= int(d) <= 31):
        _LOG.debug(f"Rejected out-of-range date {v!r}")
        return None
    return f"{int(y):04d}-{int(mth):02d}-{int(d):02d}"
