"""The running grid: one playlist document, a scheduler per group.

``Session`` owns all mutable engine state and lives on the GUI thread.
Scanning runs in ``ScanWorker``s whose results arrive as queued signals;
messages for a group that was removed or restarted since the worker was
started are dropped by comparing the worker's generation.
"""
from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

from PySide6.QtCore import QObject, QThreadPool, QTimer, Signal, Slot  # type: ignore[import-not-found]

from ..core.config import PlaybackSettings
from ..core.errors import TesseraError
from ..core.events import (
    GROUP_EXHAUSTED,
    PLAYER_FAILED,
    PLAYLIST_DIRTY_CHANGED,
    PLAYLIST_LOADED,
    PLAYLIST_SAVED,
    SOURCE_FAILED,
    EventBus,
)
from ..core.services import AppServices
from ..layout.model import ChildPosition, Group, Split, SplitAxis
from ..layout.playlist import PlaylistDocument
from ..layout.tree import LayoutChange
from ..media.backend import MediaBackend
from ..media.classify import TypeClassifier
from ..media.pool import Candidate, CandidatePool
from ..media.scanner import ClassifyWorker, ScanWorker
from ..media.source import PathSource, Source, expand_path
from ..media.watcher import SourceWatcher
from .player import Player
from .scheduler import GroupScheduler
from .sync import SyncCoordinator


logger = logging.getLogger(__name__)


class Session(QObject):
    slot_changed = Signal(str, int)  # group_id, slot index
    group_exhausted = Signal(str)  # group_id
    dirty_changed = Signal(bool)
    layout_changed = Signal()

    TICK_MS = 500

    def __init__(
        self,
        backend: MediaBackend,
        services: Optional[AppServices] = None,
        settings: Optional[PlaybackSettings] = None,
        classifier: Optional[TypeClassifier] = None,
        rng: Optional[random.Random] = None,
        thread_pool: Any = None,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.backend = backend
        self.services = services
        self.event_bus = services.event_bus if services is not None else EventBus()
        if settings is None:
            settings = services.load_playback_settings() if services is not None else PlaybackSettings()
        self.settings = settings
        self.classifier = classifier or TypeClassifier(settings.extensions)
        self.coordinator = SyncCoordinator(backend, enabled=settings.synchronized)
        self._rng = rng or random.Random()
        self._thread_pool = thread_pool if thread_pool is not None else QThreadPool.globalInstance()

        self._schedulers: Dict[str, GroupScheduler] = {}
        self._group_sources: Dict[str, List[Source]] = {}
        self._workers: Dict[str, List[ScanWorker]] = {}
        self._generations: Dict[str, int] = {}
        self._classify_workers: Set[ClassifyWorker] = set()
        self._focus_paused = False

        self._watcher: Optional[SourceWatcher] = None
        if settings.watch_sources:
            self._watcher = SourceWatcher()
            if self._watcher.start():
                self._watcher.signals.file_appeared.connect(self._on_file_appeared)
            else:
                self._watcher = None

        backend.set_end_callback(self.handle_media_end)
        backend.set_error_callback(self.handle_media_error)

        self._tick_timer = QTimer(self)
        self._tick_timer.setInterval(self.TICK_MS)
        self._tick_timer.timeout.connect(self.tick)

        self.document = PlaylistDocument()
        self.document.subscribe_dirty(self._on_dirty_changed)

    # Document lifecycle

    def open_document(self, document: PlaylistDocument) -> None:
        """Replace the open document and start scheduling all of its groups."""
        for group_id in list(self._schedulers):
            self._stop_group(group_id)
        self.document.unsubscribe_dirty(self._on_dirty_changed)
        self.document = document
        document.subscribe_dirty(self._on_dirty_changed)
        for group in document.tree.enumerate_groups():
            self._start_group(group)
        if not self._tick_timer.isActive():
            self._tick_timer.start()
        self.layout_changed.emit()
        self._on_dirty_changed(document.dirty)

    def new_playlist(self) -> None:
        self.open_document(PlaylistDocument())

    def load_playlist(self, path: Path) -> PlaylistDocument:
        """Open a playlist file.

        Raises:
            InvalidDocument: the current document stays open and unchanged.
        """
        document = PlaylistDocument.load(Path(path))
        self.open_document(document)
        self.event_bus.emit(PLAYLIST_LOADED, {"path": str(document.source_file)})
        return document

    def save_playlist(self, path: Optional[Path] = None) -> bool:
        """Save the open document.

        Raises:
            UnableToSavePlaylist: the dirty flag stays set.
        """
        written = self.document.save(path)
        self.event_bus.emit(PLAYLIST_SAVED, {"path": str(self.document.source_file), "written": written})
        return written

    @property
    def basis(self) -> Optional[Path]:
        source_file = self.document.source_file
        return source_file.parent if source_file is not None else None

    # Layout edits

    def split_group(self, group_id: str, axis: SplitAxis = SplitAxis.HORIZONTAL, ratio: float = 0.5) -> Split:
        split, change = self.document.split_leaf(group_id, axis, ratio)
        self._apply_change(change)
        return split

    def remove_split(self, split_id: str, survivor: ChildPosition) -> None:
        self._apply_change(self.document.remove_split(split_id, survivor))

    def close_group(self, group_id: str) -> None:
        self._apply_change(self.document.remove_group(group_id))

    def set_group_sources(self, group_id: str, sources: Iterable[Source]) -> None:
        self._apply_change(self.document.update_group(group_id, sources=list(sources)))

    def update_group(self, group_id: str, **settings: Any) -> None:
        self._apply_change(self.document.update_group(group_id, **settings))

    def set_split_ratio(self, split_id: str, ratio: float) -> None:
        if self.document.set_ratio(split_id, ratio):
            self.layout_changed.emit()

    def _apply_change(self, change: LayoutChange) -> None:
        for group_id in change.removed:
            self._stop_group(group_id)
        for group_id in change.reconfigured:
            group = self.document.tree.find_group(group_id)
            scheduler = self._schedulers.get(group_id)
            if scheduler is None or self._group_sources.get(group_id) != list(group.sources):
                self._stop_group(group_id)
                self._start_group(group)
            else:
                scheduler.resize(group.max_media)
        for group_id in change.added:
            self._start_group(self.document.tree.find_group(group_id))
        if change:
            self.layout_changed.emit()

    # Group scheduling

    def scheduler(self, group_id: str) -> GroupScheduler:
        return self._schedulers[group_id]

    def schedulers(self) -> List[GroupScheduler]:
        return list(self._schedulers.values())

    def generation(self, group_id: str) -> int:
        return self._generations.get(group_id, 0)

    def _start_group(self, group: Group) -> None:
        generation = self._generations.get(group.id, 0) + 1
        self._generations[group.id] = generation
        pool = CandidatePool(len(group.sources))
        scheduler = GroupScheduler(
            group.id,
            self.backend,
            self.coordinator,
            pool,
            slot_count=group.max_media,
            rng=self._rng,
            loop_pool=self.settings.loop_pool,
            muted=self.settings.muted,
            paused=self.settings.paused,
            on_exhausted=self._on_exhausted,
            on_slot_changed=self._on_slot_changed,
        )
        self._schedulers[group.id] = scheduler
        self._group_sources[group.id] = list(group.sources)
        logger.debug("Starting group %s (generation %d, %d sources)", group.id, generation, len(group.sources))

        basis = self.basis
        workers: List[ScanWorker] = []
        for index, source in enumerate(group.sources):
            worker = ScanWorker(group.id, generation, index, source, self.classifier, basis)
            worker.signals.batch_found.connect(self._on_batch_found)
            worker.signals.source_finished.connect(self._on_source_finished)
            workers.append(worker)
            if self._watcher is not None and isinstance(source, PathSource):
                self._watcher.watch(Path(expand_path(source.path, basis)), group.id)
        self._workers[group.id] = workers
        scheduler.start()
        for worker in workers:
            self._thread_pool.start(worker)

    def _stop_group(self, group_id: str) -> None:
        for worker in self._workers.pop(group_id, []):
            worker.cancel()
        self._generations[group_id] = self._generations.get(group_id, 0) + 1
        scheduler = self._schedulers.pop(group_id, None)
        self._group_sources.pop(group_id, None)
        if scheduler is not None:
            scheduler.teardown()
            scheduler.pool.clear()
        if self._watcher is not None:
            self._watcher.release_group(group_id)
        logger.debug("Stopped group %s", group_id)

    def _is_current(self, group_id: str, generation: int) -> bool:
        if group_id not in self._schedulers or self._generations.get(group_id) != generation:
            logger.debug("Dropping stale scan message for group %s (generation %d)", group_id, generation)
            return False
        return True

    @Slot(str, int, int, object)
    def _on_batch_found(self, group_id: str, generation: int, source_index: int, candidates: List[Candidate]) -> None:
        if not self._is_current(group_id, generation):
            return
        self._schedulers[group_id].pool.add_batch(source_index, candidates)

    @Slot(str, int, int, str)
    def _on_source_finished(self, group_id: str, generation: int, source_index: int, error: str) -> None:
        if not self._is_current(group_id, generation):
            return
        workers = self._workers.get(group_id, [])
        self._workers[group_id] = [w for w in workers if w.source_index != source_index]
        if error:
            source = self._group_sources[group_id][source_index]
            self.event_bus.emit(
                SOURCE_FAILED, {"group_id": group_id, "source": source.describe(), "error": error}
            )
        self._schedulers[group_id].pool.mark_complete(source_index, error or None)

    @Slot(str)
    def _on_file_appeared(self, path: str) -> None:
        if self._watcher is None:
            return
        candidate_path = Path(path)
        targets = [
            (group_id, self._generations[group_id])
            for group_id in self._watcher.owners_of(candidate_path)
            if group_id in self._schedulers
        ]
        if not targets:
            return
        worker = ClassifyWorker(candidate_path, targets, self.classifier)
        worker.signals.classified.connect(self._on_file_classified)
        self._classify_workers.add(worker)
        self._thread_pool.start(worker)

    @Slot(object, object)
    def _on_file_classified(self, worker: ClassifyWorker, candidate: Optional[Candidate]) -> None:
        self._classify_workers.discard(worker)
        if candidate is None:
            return
        for group_id, generation in worker.targets:
            if self._is_current(group_id, generation) and self._schedulers[group_id].pool.add(candidate):
                logger.info("New media in group %s: %s", group_id, candidate.path)

    def _on_exhausted(self, group_id: str) -> None:
        self.group_exhausted.emit(group_id)
        self.event_bus.emit(GROUP_EXHAUSTED, {"group_id": group_id})
        if self.services is not None and self._group_sources.get(group_id):
            self.services.send_notification("No media found in sources", "warning", source=group_id)

    def _on_slot_changed(self, group_id: str, index: int) -> None:
        self.slot_changed.emit(group_id, index)

    def _on_dirty_changed(self, dirty: bool) -> None:
        self.dirty_changed.emit(dirty)
        self.event_bus.emit(PLAYLIST_DIRTY_CHANGED, {"dirty": dirty})

    # Players

    def players(self) -> List[Player]:
        players: List[Player] = []
        for scheduler in self._schedulers.values():
            players.extend(scheduler.players())
        return players

    def pending_count(self, group_id: str) -> int:
        return self._schedulers[group_id].pending_count()

    def items_per_line(self, group_id: str) -> int:
        group = self.document.tree.find_group(group_id)
        return group.orientation_limit.resolve(self.pending_count(group_id))

    def _scheduler_for(self, player: Player) -> Optional[GroupScheduler]:
        return self._schedulers.get(player.group_id)

    def refresh_group(self, group_id: str) -> None:
        self._schedulers[group_id].refresh()

    def refresh_all(self) -> None:
        for scheduler in list(self._schedulers.values()):
            scheduler.refresh()

    def add_player(self, group_id: str) -> Optional[Player]:
        """Add a slot to a group and fill it.

        Returns the new player, or ``None`` while scanning is still running.

        Raises:
            NoMediaAvailable: nothing can be assigned to the new slot.
        """
        scheduler = self._schedulers[group_id]
        slot = scheduler.add_slot()
        self._apply_change(self.document.update_group(group_id, max_media=len(scheduler.slots)))
        return slot.player

    def close_player(self, group_id: str, slot_index: int) -> None:
        scheduler = self._schedulers[group_id]
        scheduler.close_slot(slot_index)
        self._apply_change(self.document.update_group(group_id, max_media=len(scheduler.slots)))

    def set_paused_all(self, paused: bool) -> None:
        self.settings.paused = paused
        for scheduler in self._schedulers.values():
            scheduler.paused = paused
        for player in self.players():
            if paused:
                self.backend.pause(player.handle)
            else:
                self.backend.play(player.handle)
            player.paused = paused

    def set_muted_all(self, muted: bool) -> None:
        self.settings.muted = muted
        for scheduler in self._schedulers.values():
            scheduler.muted = muted
            for player in scheduler.players():
                scheduler.set_muted(player, muted)

    def all_paused(self) -> bool:
        players = self.players()
        return bool(players) and all(player.paused for player in players)

    def all_muted(self) -> bool:
        players = self.players()
        return bool(players) and all(player.muted for player in players)

    def set_synchronized(self, enabled: bool) -> None:
        self.settings.synchronized = enabled
        self.coordinator.enabled = enabled

    def set_player_muted(self, player: Player, muted: bool) -> None:
        scheduler = self._scheduler_for(player)
        if scheduler is not None:
            scheduler.set_muted(player, muted)

    def set_player_looping(self, player: Player, looping: bool) -> None:
        scheduler = self._scheduler_for(player)
        if scheduler is not None:
            scheduler.set_looping(player, looping)

    def play(self, player: Player) -> None:
        self.coordinator.play(player)

    def pause(self, player: Player) -> None:
        self.coordinator.pause(player)

    def seek(self, player: Player, position: float) -> None:
        self.coordinator.seek(player, position)

    def seek_random(self, player: Player) -> bool:
        """Jump to a random position; False when the duration is not known yet."""
        scheduler = self._scheduler_for(player)
        if scheduler is None:
            return False
        position = scheduler.random_position(player)
        if position is None:
            return False
        self.coordinator.seek(player, position)
        return True

    def _find_player(self, handle: Any) -> Optional[Player]:
        for scheduler in self._schedulers.values():
            player = scheduler.find_player(handle)
            if player is not None:
                return player
        return None

    def handle_media_end(self, handle: Any) -> None:
        player = self._find_player(handle)
        if player is None:
            logger.debug("End of media for an unknown handle")
            return
        self._schedulers[player.group_id].handle_end(player)

    def handle_media_error(self, handle: Any, error: TesseraError) -> None:
        player = self._find_player(handle)
        if player is None:
            return
        self.event_bus.emit(PLAYER_FAILED, {"group_id": player.group_id, "path": str(player.path), "error": str(error)})
        self._schedulers[player.group_id].handle_failure(player, error)

    def window_focus_changed(self, focused: bool) -> None:
        if not self.settings.pause_on_unfocus:
            return
        if not focused:
            if self.players() and not self.all_paused():
                self._focus_paused = True
                self.set_paused_all(True)
        elif self._focus_paused:
            self._focus_paused = False
            self.set_paused_all(False)

    @Slot()
    def tick(self) -> None:
        for scheduler in self._schedulers.values():
            scheduler.tick()

    def shutdown(self) -> None:
        self._tick_timer.stop()
        for group_id in list(self._schedulers):
            self._stop_group(group_id)
        if self._watcher is not None:
            self._watcher.stop()
        self._thread_pool.waitForDone(2000)
        self._classify_workers.clear()
        self.backend.set_end_callback(None)
        self.backend.set_error_callback(None)
        logger.info("Session shut down")


__all__ = ["Session"]
