"""
Deterministic instance identity.

Every write that touches a recurring instance uses this key, so writing the
same (template, occurrence date) twice overwrites one document instead of
inserting a duplicate. The key uses the calendar date, not a timestamp:
one instance per template per day.
"""

from datetime import date, datetime
from typing import Optional

INSTANCE_PREFIX = "rt"
_DATE_FORMAT = "%Y%m%d"


def instance_id(template_id: str, occurrence: date) -> str:
    return f"{INSTANCE_PREFIX}_{template_id}_{occurrence.strftime(_DATE_FORMAT)}"


def occurrence_date_from_id(entry_id: str) -> Optional[date]:
    """Occurrence date encoded in a recurring instance id, or None for other ids."""
    prefix, _, rest = entry_id.partition("_")
    if prefix != INSTANCE_PREFIX or not rest:
        return None
    _, _, stamp = rest.rpartition("_")
    try:
        return datetime.strptime(stamp, _DATE_FORMAT).date()
    except ValueError:
        return None
