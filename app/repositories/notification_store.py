"""
Notification Store - In-memory outbox of notifications per organization.
"""

import threading
from typing import Optional

from app.notifications import Notification


_lock = threading.Lock()
_store: list[Notification] = []


def reset() -> None:
    with _lock:
        _store.clear()


def add(notification: Optional[Notification]) -> None:
    """None is accepted and ignored so callers can pass builder results straight through."""
    if notification is None:
        return
    with _lock:
        _store.append(notification)


def list_notifications(organization_id: Optional[str] = None) -> list[Notification]:
    """Newest first."""
    with _lock:
        items = [n for n in _store if organization_id is None or n.organization_id == organization_id]
    return list(reversed(items))
