from __future__ import annotations

from typing import FrozenSet, Tuple

# Known ID-card fields; catalog order is the default selection order.
ID_CARD_FIELDS: Tuple[str, ...] = (
    "ID Number",
    "Name",
    "Expiry Date",
    "Sponsor Name",
    "Sponsor ID",
    "Country",
)

EXPIRY_FIELD = "Expiry Date"

# (value, label) pairs offered for each field.
LANGUAGES: Tuple[Tuple[str, str], ...] = (
    ("English", "English"),
    ("Arabic", "Arabic (عربي)"),
)
LANGUAGE_VALUES: Tuple[str, ...] = tuple(value for value, _ in LANGUAGES)
DEFAULT_LANGUAGE = "English"

MAX_FILES = 100

ALLOWED_MIME_TYPES: FrozenSet[str] = frozenset({"image/jpeg", "image/png", "image/webp"})

# Upper bound (inclusive, in days) of the "expiring soon" window.
EXPIRING_SOON_DAYS = 30

SERIAL_HEADER = "SL NO"
DAYS_AFTER_EXPIRY_HEADER = "Days After Expiry"
EXPORT_FILENAME = "id_card_data.xlsx"
EXPORT_SHEET_NAME = "Extracted Data"
