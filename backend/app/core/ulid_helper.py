"""ULID primary keys: sortable by creation time, safe to generate in-process."""

import ulid


def generate_ulid() -> str:
    """Generate a new ULID string (26 chars, Crockford base32)."""
    return str(ulid.ULID())
