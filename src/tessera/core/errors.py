"""Error taxonomy shared by the layout/scheduling engine.

Per-source and per-candidate errors are absorbed where they occur and only
logged; ``InvalidDocument`` and ``UnableToSavePlaylist`` are the ones the
interface shows to the user.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class TesseraError(Exception):
    """Base class for all engine errors."""


class SourceUnreadable(TesseraError):
    """A path or directory behind a source could not be read."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        message = f"Unable to read source: {path}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class MalformedGlob(TesseraError):
    """A glob pattern could not be parsed."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid glob pattern {pattern!r}: {reason}")


class UnsupportedFormat(TesseraError):
    """The media backend cannot decode a candidate."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        super().__init__(f"Unsupported media: {path}" + (f" ({reason})" if reason else ""))


class MediaIoError(TesseraError):
    """The media backend failed to read a candidate."""

    def __init__(self, path: str, reason: str = "") -> None:
        self.path = path
        super().__init__(f"Unable to open media: {path}" + (f" ({reason})" if reason else ""))


class InvalidDocument(TesseraError):
    """A playlist file failed to parse or validate."""

    def __init__(self, why: str, path: Optional[Path] = None) -> None:
        self.why = why
        self.path = path
        prefix = f"Invalid playlist {path}" if path else "Invalid playlist"
        super().__init__(f"{prefix}: {why}")


class UnableToSavePlaylist(TesseraError):
    """Writing a playlist file failed."""

    def __init__(self, path: Path, why: str) -> None:
        self.path = path
        self.why = why
        super().__init__(f"Unable to save playlist {path}: {why}")


class NoMediaAvailable(TesseraError):
    """No candidate could be assigned to a newly requested player."""


__all__ = [
    "TesseraError",
    "SourceUnreadable",
    "MalformedGlob",
    "UnsupportedFormat",
    "MediaIoError",
    "InvalidDocument",
    "UnableToSavePlaylist",
    "NoMediaAvailable",
]
