"""Media sources and their lazy resolution into candidate paths.

A source is either a literal path (a file, or a directory whose direct
children are candidates) or a glob pattern. Resolution is a generator so
that callers can start using results while a slow directory is still being
listed.
"""
from __future__ import annotations

import glob
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from ..core.errors import MalformedGlob, SourceUnreadable


logger = logging.getLogger(__name__)

GLOB_METACHARACTERS = "*?["


@dataclass(frozen=True)
class PathSource:
    """A single file, or a directory scanned one level deep."""

    path: str

    def to_dict(self) -> Dict[str, Any]:
        return {"path": {"path": self.path}}

    def describe(self) -> str:
        return self.path


@dataclass(frozen=True)
class GlobSource:
    """A glob pattern; ``[*]``-style brackets match metacharacters literally."""

    pattern: str

    def to_dict(self) -> Dict[str, Any]:
        return {"glob": {"pattern": self.pattern}}

    def describe(self) -> str:
        return self.pattern


Source = Union[PathSource, GlobSource]


def source_from_dict(data: Any) -> Source:
    """Parse the persisted form of a source.

    Raises:
        ValueError: if the mapping is not one of the two known shapes.
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f"source must be a mapping with one key, got {data!r}")
    kind, body = next(iter(data.items()))
    if kind == "path":
        if not isinstance(body, dict) or not isinstance(body.get("path"), str):
            raise ValueError("path source requires a string 'path'")
        return PathSource(body["path"])
    if kind == "glob":
        if not isinstance(body, dict) or not isinstance(body.get("pattern"), str):
            raise ValueError("glob source requires a string 'pattern'")
        return GlobSource(body["pattern"])
    raise ValueError(f"unknown source kind: {kind!r}")


def escape_glob(text: str) -> str:
    """Escape glob metacharacters so ``text`` matches itself literally."""
    return glob.escape(text)


def validate_glob(pattern: str) -> None:
    """Reject patterns that cannot be interpreted.

    Raises:
        MalformedGlob: for empty patterns and unterminated ``[`` classes.
    """
    if not pattern.strip():
        raise MalformedGlob(pattern, "pattern is empty")
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "[":
            # A ']' directly after '[' or '[!' is part of the class.
            end = index + 1
            if end < length and pattern[end] == "!":
                end += 1
            if end < length and pattern[end] == "]":
                end += 1
            close = pattern.find("]", end)
            if close == -1:
                raise MalformedGlob(pattern, f"unterminated character class at offset {index}")
            index = close + 1
            continue
        index += 1


def expand_path(raw: str, basis: Optional[Path] = None) -> str:
    """Expand ``~`` and anchor relative paths at ``basis`` (or the cwd)."""
    expanded = os.path.expanduser(raw)
    if not os.path.isabs(expanded) and basis is not None:
        expanded = os.path.join(str(basis), expanded)
    return os.path.abspath(expanded)


def _iter_directory(directory: str) -> Iterator[Path]:
    try:
        iterator = os.scandir(directory)
    except OSError as exc:
        raise SourceUnreadable(directory, exc.strerror or str(exc)) from exc
    with iterator:
        while True:
            try:
                entry = next(iterator)
            except StopIteration:
                return
            except OSError as exc:
                raise SourceUnreadable(directory, exc.strerror or str(exc)) from exc
            try:
                if entry.is_file():
                    yield Path(entry.path)
            except OSError as exc:
                logger.debug("Skipping %s: %s", entry.path, exc)


def resolve(source: Source, basis: Optional[Path] = None) -> Iterator[Path]:
    """Lazily yield the files a source refers to.

    Nothing is read until the first ``next()``. A missing path yields
    nothing; an unreadable directory raises ``SourceUnreadable`` and a bad
    pattern raises ``MalformedGlob`` from the iterator.
    """
    if isinstance(source, PathSource):
        target = expand_path(source.path, basis)
        if os.path.isfile(target):
            yield Path(target)
        elif os.path.isdir(target):
            yield from _iter_directory(target)
        else:
            logger.info("Source does not exist: %s", target)
        return

    if isinstance(source, GlobSource):
        validate_glob(source.pattern)
        pattern = os.path.expanduser(source.pattern)
        if not os.path.isabs(pattern) and basis is not None:
            pattern = os.path.join(escape_glob(str(basis)), pattern)
        for match in glob.iglob(pattern, recursive=True):
            if os.path.isfile(match):
                yield Path(os.path.abspath(match))
        return

    raise TypeError(f"Unsupported source: {source!r}")


__all__ = [
    "PathSource",
    "GlobSource",
    "Source",
    "source_from_dict",
    "escape_glob",
    "validate_glob",
    "expand_path",
    "resolve",
]
