"""Lightweight event system for follow-up work after a thread index commit."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable


class EventType(Enum):
    SNIPPET_ADDED = auto()
    RENAMED = auto()
    DELETED = auto()
    CLEARED = auto()


@dataclass
class ThreadEvent:
    event_type: EventType
    thread_id: str = ""
    old_thread_id: str | None = None  # set only for RENAMED events
    snippet_index: int | None = None  # set only for SNIPPET_ADDED events
    content: str = ""
    timestamp: str = ""


_listeners: list[Callable[[ThreadEvent], None]] = []
_listeners_lock = threading.Lock()


def on_thread_change(callback: Callable[[ThreadEvent], None]) -> None:
    """Register a callback for thread change events. Registering it again is a no-op."""
    with _listeners_lock:
        if callback not in _listeners:
            _listeners.append(callback)


def emit(event: ThreadEvent) -> None:
    """Fire all registered listeners with the given event.

    Takes a snapshot of the listener list under the lock so that concurrent
    registration cannot cause RuntimeError or silent skips during iteration.
    """
    with _listeners_lock:
        snapshot = list(_listeners)
    for listener in snapshot:
        listener(event)


def clear_listeners() -> None:
    """Remove all registered listeners. Intended for use in tests only."""
    with _listeners_lock:
        _listeners.clear()
