"""Background resolution of sources into classified candidates.

Each (group, source) pair is scanned by its own ``ScanWorker`` on a
``QThreadPool``. Workers never touch engine state: they emit batches through
``ScanSignals`` and the session applies them on the GUI thread. Every
message carries the group id and the generation it was started for, so a
message from a cancelled or superseded scan can be recognized and dropped.
"""
from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from PySide6.QtCore import QObject, QRunnable, Signal, Slot  # type: ignore[import-not-found]

from ..core.errors import TesseraError
from .classify import MediaCategory, TypeClassifier
from .pool import Candidate
from .source import Source, resolve


logger = logging.getLogger(__name__)

BATCH_SIZE = 16
BATCH_INTERVAL = 0.25  # seconds


class ScanSignals(QObject):
    batch_found = Signal(str, int, int, object)  # group_id, generation, source_index, candidates
    source_finished = Signal(str, int, int, str)  # group_id, generation, source_index, error


class ScanWorker(QRunnable):
    """Scans one source of one group in a pool thread."""

    def __init__(
        self,
        group_id: str,
        generation: int,
        source_index: int,
        source: Source,
        classifier: TypeClassifier,
        basis: Optional[Path] = None,
    ) -> None:
        super().__init__()
        self.group_id = group_id
        self.generation = generation
        self.source_index = source_index
        self.source = source
        self.basis = basis
        self._classifier = classifier
        self._stop = threading.Event()
        self.signals = ScanSignals()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def cancel(self) -> None:
        self._stop.set()

    def _flush(self, batch: List[Candidate]) -> None:
        if batch and not self.cancelled:
            self.signals.batch_found.emit(self.group_id, self.generation, self.source_index, list(batch))
        batch.clear()

    @Slot()
    def run(self) -> None:
        error = ""
        batch: List[Candidate] = []
        emitted = False
        last_flush = time.monotonic()
        try:
            for path in resolve(self.source, self.basis):
                if self.cancelled:
                    break
                category = self._classifier.classify(path)
                if category.is_media:
                    batch.append(Candidate(path, category))
                now = time.monotonic()
                if batch and (not emitted or len(batch) >= BATCH_SIZE or now - last_flush >= BATCH_INTERVAL):
                    self._flush(batch)
                    emitted = True
                    last_flush = now
            self._flush(batch)
        except TesseraError as exc:
            logger.warning("Source %s failed: %s", self.source.describe(), exc)
            error = str(exc)
        except Exception as exc:
            logger.exception("Unexpected error scanning %s", self.source.describe())
            error = str(exc) or type(exc).__name__
        if self.cancelled:
            logger.debug("Scan of %s cancelled", self.source.describe())
            return
        self.signals.source_finished.emit(self.group_id, self.generation, self.source_index, error)


Target = Tuple[str, int]  # group_id, generation


class ClassifySignals(QObject):
    classified = Signal(object, object)  # worker, Optional[Candidate]


class ClassifyWorker(QRunnable):
    """Classifies a single appeared file off the GUI thread.

    ``targets`` lists the (group_id, generation) pairs watching the file when
    it appeared; the receiver drops targets that are no longer current.
    The signal always fires once, with ``None`` for files that are not media.
    """

    def __init__(self, path: Path, targets: List[Target], classifier: TypeClassifier) -> None:
        super().__init__()
        self.path = path
        self.targets = list(targets)
        self._classifier = classifier
        self.signals = ClassifySignals()

    @Slot()
    def run(self) -> None:
        candidate: Optional[Candidate] = None
        try:
            category: MediaCategory = self._classifier.classify(self.path)
            if category.is_media:
                candidate = Candidate(self.path, category)
        except Exception:
            logger.exception("Unexpected error classifying %s", self.path)
        self.signals.classified.emit(self, candidate)


__all__ = ["ClassifySignals", "ClassifyWorker", "ScanSignals", "ScanWorker", "BATCH_SIZE"]
