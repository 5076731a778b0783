"""Shared fixtures: a scripted media backend and a synchronous thread pool."""
from __future__ import annotations

import os
import random
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtWidgets import QApplication

from tessera.core.errors import MediaIoError, UnsupportedFormat
from tessera.media.backend import MediaBackend
from tessera.media.classify import MediaCategory
from tessera.media.pool import Candidate, CandidatePool
from tessera.playback.scheduler import GroupScheduler
from tessera.playback.sync import SyncCoordinator


class FakeHandle:
    def __init__(self, path: Path, category: MediaCategory, duration: Optional[float]) -> None:
        self.path = path
        self.category = category
        self.duration = duration
        self.position = 0.0
        self.playing = False
        self.muted = False
        self.closed = False


class FakeBackend(MediaBackend):
    """Records every call; paths in ``unsupported``/``unreadable`` fail to open."""

    def __init__(self) -> None:
        super().__init__()
        self.durations: Dict[str, Optional[float]] = {}
        self.default_duration: Optional[float] = 30.0
        self.unsupported: Set[str] = set()
        self.unreadable: Set[str] = set()
        self.opened: List[FakeHandle] = []

    def open(self, path: Path, category: MediaCategory) -> FakeHandle:
        key = str(path)
        if key in self.unsupported:
            raise UnsupportedFormat(key, "fake")
        if key in self.unreadable:
            raise MediaIoError(key, "fake")
        handle = FakeHandle(path, category, self.durations.get(key, self.default_duration))
        self.opened.append(handle)
        return handle

    def play(self, handle: FakeHandle) -> None:
        handle.playing = True

    def pause(self, handle: FakeHandle) -> None:
        handle.playing = False

    def seek(self, handle: FakeHandle, position: float) -> None:
        handle.position = position

    def duration(self, handle: FakeHandle) -> Optional[float]:
        return handle.duration

    def position(self, handle: FakeHandle) -> float:
        return handle.position

    def set_muted(self, handle: FakeHandle, muted: bool) -> None:
        handle.muted = muted

    def close(self, handle: FakeHandle) -> None:
        handle.closed = True

    def live(self) -> List[FakeHandle]:
        return [handle for handle in self.opened if not handle.closed]

    def finish(self, handle: FakeHandle) -> None:
        self._notify_end(handle)

    def fail(self, handle: FakeHandle) -> None:
        self._notify_error(handle, UnsupportedFormat(str(handle.path), "decoder gave up"))


class ImmediateThreadPool:
    """Runs workers inline so scan signals are delivered synchronously."""

    def __init__(self) -> None:
        self.started = []

    def start(self, runnable) -> None:
        self.started.append(runnable)
        runnable.run()

    def waitForDone(self, msecs: int = -1) -> bool:  # noqa: N802 - Qt naming
        return True


class DeferredThreadPool(ImmediateThreadPool):
    """Holds workers until ``run_all`` so tests can interleave edits."""

    def start(self, runnable) -> None:
        self.started.append(runnable)

    def run_all(self) -> None:
        pending, self.started = self.started, []
        for runnable in pending:
            runnable.run()


def make_candidates(count: int, category: MediaCategory = MediaCategory.VIDEO, prefix: str = "/media/clip") -> List[Candidate]:
    return [Candidate(Path(f"{prefix}{index}.mp4"), category) for index in range(count)]


@pytest.fixture(scope="session")
def qapp():
    """Create a QApplication instance for the tests."""
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def coordinator(backend: FakeBackend) -> SyncCoordinator:
    return SyncCoordinator(backend)


@pytest.fixture
def make_scheduler(backend: FakeBackend, coordinator: SyncCoordinator):
    """Build a scheduler over a fresh pool; returns (scheduler, pool, exhausted_ids)."""

    def factory(slot_count: int = 1, source_count: int = 1, seed: int = 7, **kwargs):
        pool = CandidatePool(source_count)
        exhausted: List[str] = []
        scheduler = GroupScheduler(
            "group-1",
            backend,
            coordinator,
            pool,
            slot_count=slot_count,
            rng=random.Random(seed),
            on_exhausted=exhausted.append,
            **kwargs,
        )
        return scheduler, pool, exhausted

    return factory
