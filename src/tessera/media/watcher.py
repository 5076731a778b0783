"""Live monitoring of directory sources.

Files that appear in a watched directory after its initial scan are
reported so they can join the owning groups' pools. Events come from the
watchdog observer thread and are forwarded through a queued Qt signal, so
receivers always run on the GUI thread.
"""
import logging
from pathlib import Path
from typing import Dict, List, Optional, Set

from PySide6.QtCore import QObject, Signal  # type: ignore[import-not-found]

try:
    from watchdog.observers import Observer
    from watchdog.events import FileSystemEventHandler, FileSystemEvent
    WATCHDOG_AVAILABLE = True
except ImportError:
    WATCHDOG_AVAILABLE = False
    Observer = None  # type: ignore
    FileSystemEventHandler = object  # type: ignore
    FileSystemEvent = None  # type: ignore


logger = logging.getLogger(__name__)


class WatcherSignals(QObject):
    file_appeared = Signal(str)  # absolute path


class NewFileHandler(FileSystemEventHandler):
    """Reports files created in, or moved into, a watched directory."""

    def __init__(self, signals: WatcherSignals):
        super().__init__()
        self._signals = signals

    def on_created(self, event: "FileSystemEvent") -> None:
        if event.is_directory:
            return
        logger.debug("File created: %s", event.src_path)
        self._signals.file_appeared.emit(str(event.src_path))

    def on_moved(self, event: "FileSystemEvent") -> None:
        if event.is_directory:
            return
        logger.debug("File moved: %s -> %s", event.src_path, event.dest_path)
        self._signals.file_appeared.emit(str(event.dest_path))


class SourceWatcher:
    """Watches the directories behind path sources, one level deep."""

    def __init__(self):
        if not WATCHDOG_AVAILABLE:
            logger.warning("watchdog library not available, source watching disabled")

        self.signals = WatcherSignals()
        self._observer: Optional[Observer] = None
        self._handler: Optional[NewFileHandler] = None
        self._watches: Dict[str, object] = {}  # directory -> watch handle
        self._owners: Dict[str, Set[str]] = {}  # directory -> group ids

    @property
    def is_available(self) -> bool:
        return WATCHDOG_AVAILABLE

    @property
    def is_watching(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> bool:
        if not self.is_available:
            logger.error("Cannot start watcher: watchdog not available")
            return False

        if self.is_watching:
            return True

        try:
            self._handler = NewFileHandler(self.signals)
            self._observer = Observer()
            self._observer.start()
            logger.info("Source watcher started")
            return True
        except Exception as e:
            logger.error("Failed to start watcher: %s", e)
            self._observer = None
            return False

    def stop(self) -> None:
        if not self.is_watching:
            return

        try:
            self._observer.stop()
            self._observer.join(timeout=5.0)
        except Exception as e:
            logger.error("Error stopping watcher: %s", e)
        finally:
            self._watches.clear()
            self._owners.clear()
            self._observer = None
            self._handler = None
            logger.info("Source watcher stopped")

    def watch(self, directory: Path, group_id: str) -> bool:
        """Watch ``directory`` on behalf of ``group_id``."""
        if not self.is_watching:
            return False

        if not directory.is_dir():
            logger.debug("Not watching %s: not a directory", directory)
            return False

        key = str(directory)
        self._owners.setdefault(key, set()).add(group_id)
        if key in self._watches:
            return True

        try:
            self._watches[key] = self._observer.schedule(self._handler, key, recursive=False)
            logger.info("Now watching: %s", directory)
            return True
        except Exception as e:
            logger.error("Failed to add watch for %s: %s", directory, e)
            self._owners[key].discard(group_id)
            return False

    def release_group(self, group_id: str) -> None:
        """Drop ``group_id`` from every directory; unwatch ones nobody owns."""
        for key in [k for k, owners in self._owners.items() if group_id in owners]:
            owners = self._owners[key]
            owners.discard(group_id)
            if owners:
                continue
            del self._owners[key]
            watch = self._watches.pop(key, None)
            if watch is not None and self.is_watching:
                try:
                    self._observer.unschedule(watch)
                    logger.info("Stopped watching: %s", key)
                except Exception as e:
                    logger.error("Failed to remove watch for %s: %s", key, e)

    def owners_of(self, path: Path) -> Set[str]:
        """Group ids whose watched directory directly contains ``path``."""
        return set(self._owners.get(str(path.parent), set()))

    def get_watched_paths(self) -> List[Path]:
        return [Path(p) for p in self._watches.keys()]
