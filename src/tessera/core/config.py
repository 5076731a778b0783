from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, MutableMapping, Optional


logger = logging.getLogger(__name__)

PLAYBACK_SECTION = "playback"
WINDOW_SECTION = "window"


class ConfigStore:
    """Thread-safe JSON-backed configuration store split into sections."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._data: Dict[str, Dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._data = {}
            return
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self._path, exc)
            self._data = {}
            return
        if isinstance(raw, dict):
            self._data = {key.lower(): value for key, value in raw.items() if isinstance(value, dict)}
        else:
            self._data = {}

    def save(self) -> None:
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8") as handle:
                json.dump(self._data, handle, indent=2, sort_keys=True)

    def get_section(self, name: str) -> "SectionConfig":
        name = name.lower()
        with self._lock:
            bucket = self._data.setdefault(name, {})
            snapshot = dict(bucket)
        return SectionConfig(self, name, snapshot)

    def update_section(self, name: str, values: Dict[str, Any]) -> None:
        name = name.lower()
        with self._lock:
            bucket = self._data.setdefault(name, {})
            bucket.update(values)
            self.save()

    def set_value(self, name: str, key: str, value: Any) -> None:
        self.update_section(name, {key: value})

    def remove_value(self, name: str, key: str) -> None:
        name = name.lower()
        with self._lock:
            bucket = self._data.get(name)
            if bucket is None or key not in bucket:
                return
            del bucket[key]
            self.save()


class SectionConfig(MutableMapping[str, Any]):
    """Mapping view over one configuration section; writes go through to disk."""

    def __init__(self, store: ConfigStore, name: str, cache: Optional[Dict[str, Any]] = None) -> None:
        self._store = store
        self._name = name
        self._cache = cache or {}

    def __getitem__(self, key: str) -> Any:
        return self._cache[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._cache[key] = value
        self._store.set_value(self._name, key, value)

    def __delitem__(self, key: str) -> None:
        if key not in self._cache:
            raise KeyError(key)
        del self._cache[key]
        self._store.remove_value(self._name, key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._cache)

    def __len__(self) -> int:
        return len(self._cache)

    def get(self, key: str, default: Any = None) -> Any:
        return self._cache.get(key, default)

    def update(self, other: Optional[Dict[str, Any]] = None, **kwargs: Any) -> None:  # type: ignore[override]
        payload: Dict[str, Any] = {}
        if other:
            payload.update(other)
        if kwargs:
            payload.update(kwargs)
        if not payload:
            return
        self._cache.update(payload)
        self._store.update_section(self._name, payload)


@dataclass
class PlaybackSettings:
    """Typed view of the ``playback`` section.

    ``paused`` is runtime-only and never written back.
    """

    muted: bool = False
    paused: bool = False
    synchronized: bool = False
    loop_pool: bool = True
    image_duration: float = 10.0
    watch_sources: bool = False
    pause_on_unfocus: bool = False
    extensions: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_section(cls, section: SectionConfig) -> "PlaybackSettings":
        defaults = cls()
        image_duration = section.get("image_duration", defaults.image_duration)
        try:
            image_duration = max(1.0, float(image_duration))
        except (TypeError, ValueError):
            image_duration = defaults.image_duration
        extensions = section.get("extensions", {})
        if not isinstance(extensions, dict):
            extensions = {}
        return cls(
            muted=bool(section.get("muted", defaults.muted)),
            synchronized=bool(section.get("synchronized", defaults.synchronized)),
            loop_pool=bool(section.get("loop_pool", defaults.loop_pool)),
            image_duration=image_duration,
            watch_sources=bool(section.get("watch_sources", defaults.watch_sources)),
            pause_on_unfocus=bool(section.get("pause_on_unfocus", defaults.pause_on_unfocus)),
            extensions={str(k).lower().lstrip("."): str(v).lower() for k, v in extensions.items()},
        )

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        values.pop("paused", None)
        return values

    def save_to(self, section: SectionConfig) -> None:
        section.update(self.to_dict())
