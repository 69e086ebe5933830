"""Local identifiers for jobs and events."""

import uuid


def generate_id(prefix: str) -> str:
    """Return ``prefix`` followed by 16 random hex characters.

    The in-memory backend mints ``job_`` ids with it and the event bus stamps
    each ``JobEvent`` with an ``evt_`` id. Ids issued by the hosted backend are
    used as delivered and never pass through here.
    """
    return f"{prefix}{uuid.uuid4().hex[:16]}"
