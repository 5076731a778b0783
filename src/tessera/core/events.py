"""Engine notices for the presentation layer.

The session publishes what happened (a group ran dry, the playlist became
dirty, a source failed) by name with a small payload dict. Subscribers may
listen to one name or to a whole family with a trailing ``*``:

    services.event_bus.subscribe(GROUP_EXHAUSTED, window.on_group_exhausted)
    services.event_bus.subscribe("playlist.*", window.on_playlist_event)
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional


EventCallback = Callable[[str, Dict[str, Any]], None]

logger = logging.getLogger(__name__)

GROUP_EXHAUSTED = "group.exhausted"
PLAYLIST_DIRTY_CHANGED = "playlist.dirty_changed"
PLAYLIST_LOADED = "playlist.loaded"
PLAYLIST_SAVED = "playlist.saved"
SOURCE_FAILED = "source.failed"
PLAYER_FAILED = "player.failed"

ENGINE_EVENTS = frozenset(
    {GROUP_EXHAUSTED, PLAYLIST_DIRTY_CHANGED, PLAYLIST_LOADED, PLAYLIST_SAVED, SOURCE_FAILED, PLAYER_FAILED}
)

WILDCARD = "*"


def _matches(pattern: str, event_name: str) -> bool:
    if pattern.endswith(WILDCARD):
        return event_name.startswith(pattern[:-1])
    return pattern == event_name


class EventBus:
    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventCallback]] = {}
        self._lock = threading.RLock()

    def subscribe(self, pattern: str, callback: EventCallback) -> None:
        """Listen to ``pattern``: an exact name, or a prefix ending in ``*``.

        The callback receives ``(event_name, data)``. Subscribing the same
        callback twice to the same pattern has no effect.
        """
        with self._lock:
            callbacks = self._subscribers.setdefault(pattern, [])
            if callback not in callbacks:
                callbacks.append(callback)

    def unsubscribe(self, pattern: str, callback: EventCallback) -> None:
        with self._lock:
            callbacks = self._subscribers.get(pattern)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)

    def unsubscribe_all(self, callback: EventCallback) -> None:
        with self._lock:
            for callbacks in self._subscribers.values():
                if callback in callbacks:
                    callbacks.remove(callback)

    def _callbacks_for(self, event_name: str) -> List[EventCallback]:
        with self._lock:
            found: List[EventCallback] = []
            for pattern, callbacks in self._subscribers.items():
                if _matches(pattern, event_name):
                    found.extend(c for c in callbacks if c not in found)
            return found

    def emit(self, event_name: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Deliver to every matching subscriber, outside the lock.

        A failing subscriber is logged and does not stop delivery to the rest.
        """
        payload = data if data is not None else {}
        if event_name not in ENGINE_EVENTS:
            logger.debug("Emitting unregistered event %s", event_name)
        for callback in self._callbacks_for(event_name):
            try:
                callback(event_name, payload)
            except Exception:
                logger.exception("Subscriber for %s failed", event_name)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def get_event_names(self) -> List[str]:
        """Patterns that currently have at least one subscriber."""
        with self._lock:
            return [pattern for pattern, callbacks in self._subscribers.items() if callbacks]

    def subscriber_count(self, event_name: str) -> int:
        return len(self._callbacks_for(event_name))
