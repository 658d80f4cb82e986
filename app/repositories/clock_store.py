"""
Clock Store - per-organization simulated time offsets.

Explicit records instead of process-global clock state: the time simulation
service reads the offset and builds an OffsetClock for each call.
"""

import threading
from datetime import timedelta
from typing import Optional


_lock = threading.Lock()
_offsets: dict[Optional[str], timedelta] = {}


def reset() -> None:
    with _lock:
        _offsets.clear()


def get_offset(organization_id: Optional[str]) -> timedelta:
    """Zero when the organization never simulated time."""
    return _offsets.get(organization_id, timedelta(0))


def advance(organization_id: Optional[str], days: float) -> timedelta:
    """Add days to the organization's offset and return the new offset."""
    with _lock:
        offset = _offsets.get(organization_id, timedelta(0)) + timedelta(days=days)
        _offsets[organization_id] = offset
        return offset


def clear(organization_id: Optional[str]) -> None:
    with _lock:
        _offsets.pop(organization_id, None)
