"""Process-wide services shared by the session and the window."""
from __future__ import annotations

import logging
import os
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, List, Optional

from .config import PLAYBACK_SECTION, ConfigStore, PlaybackSettings, SectionConfig
from .events import EventBus


logger = logging.getLogger(__name__)

DATA_DIR_ENV = "TESSERA_DATA_DIR"
LEVELS = ("debug", "info", "warning", "error")

NotificationCallback = Callable[["Notification"], None]


@dataclass(frozen=True)
class Notification:
    message: str
    level: str = "info"
    source: Optional[str] = None
    created: float = field(default_factory=time.time, compare=False)


class NotificationCenter:
    """Fan-out of user-facing notices, with a short history for late subscribers."""

    def __init__(self, history: int = 50) -> None:
        self._subscribers: List[NotificationCallback] = []
        self._recent: Deque[Notification] = deque(maxlen=history)

    def subscribe(self, callback: NotificationCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: NotificationCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def recent(self) -> List[Notification]:
        return list(self._recent)

    def publish(self, notification: Notification) -> None:
        self._recent.append(notification)
        for subscriber in list(self._subscribers):
            try:
                subscriber(notification)
            except Exception:  # pragma: no cover - logged, remaining subscribers still run
                logger.exception("Notification subscriber %r failed", subscriber)


def default_data_dir(app_name: str = "Tessera") -> Path:
    """Per-user directory for config and logs; ``TESSERA_DATA_DIR`` wins."""
    override = os.getenv(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    if os.name == "nt":
        base = Path(os.getenv("APPDATA", Path.home() / "AppData" / "Roaming"))
    else:
        base = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
    return base / app_name.lower()


class AppServices:
    def __init__(self, app_name: str = "Tessera", data_dir: Optional[Path] = None) -> None:
        self.app_name = app_name
        self.data_dir = Path(data_dir) if data_dir is not None else default_data_dir(app_name)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_store = ConfigStore(self.data_dir / "config.json")
        self.notifications = NotificationCenter()
        self.event_bus = EventBus()

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    def send_notification(self, message: str, level: str = "info", *, source: Optional[str] = None) -> None:
        """Publish a notice and mirror it to the log at the same level."""
        if level not in LEVELS:
            level = "info"
        self.notifications.publish(Notification(message, level, source))
        getattr(logger, level)("%s%s", f"[{source}] " if source else "", message)

    def get_section(self, name: str) -> SectionConfig:
        return self.config_store.get_section(name)

    def load_playback_settings(self) -> PlaybackSettings:
        return PlaybackSettings.from_section(self.get_section(PLAYBACK_SECTION))

    def save_playback_settings(self, settings: PlaybackSettings) -> None:
        settings.save_to(self.get_section(PLAYBACK_SECTION))


__all__ = [
    "AppServices",
    "Notification",
    "NotificationCenter",
    "default_data_dir",
]
