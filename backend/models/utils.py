"""Shared utilities for ORM models and their JSON metadata."""

import time
import uuid
from datetime import datetime, timezone


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Current time as an ISO-8601 string, the format used in metadata columns."""
    return utc_now().isoformat()


def epoch_millis() -> int:
    """Milliseconds since the epoch, used to make synthesized ids unique."""
    return int(time.time() * 1000)


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 metadata timestamp.

    Naive values are assumed to be UTC. Returns None for missing or
    malformed input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
