"""Application-wide constants for the GymApp platform."""

from __future__ import annotations

BRAND_NAME = "GymApp"

API_TITLE = f"{BRAND_NAME} Class Booking API"
API_VERSION = "1.0.0"
API_DESCRIPTION = (
    "Class catalog, scheduled class instances and capacity-safe bookings "
    f"for the {BRAND_NAME} platform."
)

# Class template constraints
MIN_CLASS_CAPACITY = 1
MAX_CLASS_CAPACITY = 100
MIN_CLASS_DURATION = 15  # minutes
MAX_CLASS_DURATION = 180  # minutes
MAX_CLASS_NAME_LENGTH = 100
MAX_CLASS_DESCRIPTION_LENGTH = 1000
MIN_DAY_OF_WEEK = 0  # Sunday
MAX_DAY_OF_WEEK = 6  # Saturday
MAX_CANCELLATION_HOURS = 8760  # one year

# HH:MM, zero-padded 24h clock so lexical comparison matches time order
HHMM_PATTERN = r"^([01][0-9]|2[0-3]):[0-5][0-9]$"

# Text constraints
MAX_NOTES_LENGTH = 500
MAX_REASON_LENGTH = 500
MAX_INSTANCE_NOTES_LENGTH = 1000

# Query limits
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# ULID path parameter pattern (Crockford base32, 26 chars)
ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"
