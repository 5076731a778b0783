"""Per-group candidate pool.

The pool is an append-only log of classified paths with a version counter.
Entries are only ever added (deduplicated across all of the group's
sources) until the whole pool is torn down with its group.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from .classify import MediaCategory


logger = logging.getLogger(__name__)

PoolListener = Callable[["CandidatePool"], None]


@dataclass(frozen=True)
class Candidate:
    path: Path
    category: MediaCategory

    @property
    def key(self) -> str:
        return str(self.path)


class CandidatePool:
    def __init__(self, source_count: int) -> None:
        self._entries: List[Candidate] = []
        self._index: Dict[str, int] = {}
        self._complete: List[bool] = [False] * source_count
        self._errors: Dict[int, str] = {}
        self._listeners: List[PoolListener] = []
        self.version = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Candidate]:
        return iter(list(self._entries))

    def __contains__(self, path: object) -> bool:
        return str(path) in self._index

    @property
    def source_count(self) -> int:
        return len(self._complete)

    @property
    def scan_complete(self) -> bool:
        return all(self._complete)

    def is_source_complete(self, source_index: int) -> bool:
        return self._complete[source_index]

    def source_error(self, source_index: int) -> Optional[str]:
        return self._errors.get(source_index)

    def entries(self) -> List[Candidate]:
        return list(self._entries)

    def get(self, key: str) -> Optional[Candidate]:
        position = self._index.get(key)
        return None if position is None else self._entries[position]

    def subscribe(self, listener: PoolListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: PoolListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_batch(self, source_index: int, candidates: Iterable[Candidate]) -> List[Candidate]:
        """Append unseen, classifiable candidates; returns the ones actually added."""
        if self._complete[source_index]:
            logger.debug("Ignoring batch for completed source %s", source_index)
            return []
        added: List[Candidate] = []
        for candidate in candidates:
            if not candidate.category.is_media or candidate.key in self._index:
                continue
            self._index[candidate.key] = len(self._entries)
            self._entries.append(candidate)
            added.append(candidate)
        if added:
            self._bump()
        return added

    def add(self, candidate: Candidate) -> bool:
        """Add a candidate outside of a scan (e.g. a watched new file)."""
        if not candidate.category.is_media or candidate.key in self._index:
            return False
        self._index[candidate.key] = len(self._entries)
        self._entries.append(candidate)
        self._bump()
        return True

    def mark_complete(self, source_index: int, error: Optional[str] = None) -> None:
        if self._complete[source_index]:
            return
        self._complete[source_index] = True
        if error:
            self._errors[source_index] = error
        self._bump()

    def clear(self) -> None:
        self._listeners.clear()
        self._entries.clear()
        self._index.clear()

    def _bump(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            listener(self)


__all__ = ["Candidate", "CandidatePool"]
