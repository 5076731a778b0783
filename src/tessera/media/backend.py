"""Media backend contract and the Qt Multimedia implementation.

The scheduler only talks to :class:`MediaBackend`; decoding and rendering
live behind it. Handles are opaque to the engine.
"""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QTimer, QUrl  # type: ignore[import-not-found]
from PySide6.QtGui import QImageReader  # type: ignore[import-not-found]

from ..core.errors import MediaIoError, TesseraError, UnsupportedFormat
from .classify import MediaCategory


logger = logging.getLogger(__name__)

EndCallback = Callable[[Any], None]
ErrorCallback = Callable[[Any, TesseraError], None]


class MediaBackend(ABC):
    """Capability the scheduler needs from a decoder/renderer."""

    def __init__(self) -> None:
        self._on_end: Optional[EndCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    def set_end_callback(self, callback: Optional[EndCallback]) -> None:
        self._on_end = callback

    def set_error_callback(self, callback: Optional[ErrorCallback]) -> None:
        self._on_error = callback

    def _notify_end(self, handle: Any) -> None:
        if self._on_end is not None:
            self._on_end(handle)

    def _notify_error(self, handle: Any, error: TesseraError) -> None:
        if self._on_error is not None:
            self._on_error(handle, error)

    @abstractmethod
    def open(self, path: Path, category: MediaCategory) -> Any:
        """Prepare ``path`` for playback.

        Raises:
            UnsupportedFormat: the media cannot be decoded.
            MediaIoError: the file cannot be read.
        """

    @abstractmethod
    def play(self, handle: Any) -> None:
        ...

    @abstractmethod
    def pause(self, handle: Any) -> None:
        ...

    @abstractmethod
    def seek(self, handle: Any, position: float) -> None:
        ...

    @abstractmethod
    def duration(self, handle: Any) -> Optional[float]:
        """Seconds, or ``None`` while still unknown (e.g. partially downloaded)."""

    @abstractmethod
    def position(self, handle: Any) -> float:
        ...

    @abstractmethod
    def set_muted(self, handle: Any, muted: bool) -> None:
        ...

    @abstractmethod
    def close(self, handle: Any) -> None:
        ...


class ImageHandle(QObject):
    """A still image shown for a fixed time, driven by a timer."""

    TICK_MS = 100

    def __init__(self, path: Path, duration: float, on_end: Callable[["ImageHandle"], None]) -> None:
        super().__init__()
        self.path = path
        self.category = MediaCategory.IMAGE
        self.image_duration = duration
        self.elapsed = 0.0
        self._on_end = on_end
        self._timer = QTimer(self)
        self._timer.setInterval(self.TICK_MS)
        self._timer.timeout.connect(self._tick)

    def _tick(self) -> None:
        self.elapsed += self.TICK_MS / 1000.0
        if self.elapsed >= self.image_duration:
            self._timer.stop()
            self._on_end(self)

    def play(self) -> None:
        self._timer.start()

    def pause(self) -> None:
        self._timer.stop()

    def stop(self) -> None:
        self._timer.stop()


class AvHandle:
    """Audio or video playback through QMediaPlayer."""

    def __init__(self, path: Path, category: MediaCategory, player: Any, audio_output: Any) -> None:
        self.path = path
        self.category = category
        self.player = player
        self.audio_output = audio_output


class QtMediaBackend(MediaBackend):
    """Backend built on QtMultimedia, with timer-driven still images."""

    def __init__(self, image_duration: float = 10.0) -> None:
        super().__init__()
        self.image_duration = image_duration

    def open(self, path: Path, category: MediaCategory) -> Any:
        if not os.access(path, os.R_OK):
            raise MediaIoError(str(path), "not readable")
        if category is MediaCategory.IMAGE:
            reader = QImageReader(str(path))
            if not reader.canRead():
                raise UnsupportedFormat(str(path), reader.errorString())
            return ImageHandle(path, self.image_duration, self._notify_end)
        if category in (MediaCategory.AUDIO, MediaCategory.VIDEO):
            return self._open_av(path, category)
        raise UnsupportedFormat(str(path), f"category {category.value}")

    def _open_av(self, path: Path, category: MediaCategory) -> AvHandle:
        from PySide6.QtMultimedia import QAudioOutput, QMediaPlayer  # type: ignore[import-not-found]

        player = QMediaPlayer()
        audio_output = QAudioOutput()
        player.setAudioOutput(audio_output)
        handle = AvHandle(path, category, player, audio_output)

        def on_status(status: Any) -> None:
            if status == QMediaPlayer.MediaStatus.EndOfMedia:
                self._notify_end(handle)
            elif status == QMediaPlayer.MediaStatus.InvalidMedia:
                self._notify_error(handle, UnsupportedFormat(str(path), player.errorString()))

        def on_error(error: Any, message: str = "") -> None:
            if error == QMediaPlayer.Error.ResourceError:
                self._notify_error(handle, MediaIoError(str(path), message))
            elif error != QMediaPlayer.Error.NoError:
                self._notify_error(handle, UnsupportedFormat(str(path), message))

        player.mediaStatusChanged.connect(on_status)
        player.errorOccurred.connect(on_error)
        player.setSource(QUrl.fromLocalFile(str(path)))
        return handle

    def attach_video_output(self, handle: Any, output: Any) -> None:
        if isinstance(handle, AvHandle):
            handle.player.setVideoOutput(output)

    def play(self, handle: Any) -> None:
        if isinstance(handle, ImageHandle):
            handle.play()
        else:
            handle.player.play()

    def pause(self, handle: Any) -> None:
        if isinstance(handle, ImageHandle):
            handle.pause()
        else:
            handle.player.pause()

    def seek(self, handle: Any, position: float) -> None:
        if isinstance(handle, ImageHandle):
            handle.elapsed = max(0.0, min(position, handle.image_duration))
        else:
            handle.player.setPosition(int(position * 1000))

    def duration(self, handle: Any) -> Optional[float]:
        if isinstance(handle, ImageHandle):
            return handle.image_duration
        millis = handle.player.duration()
        return millis / 1000.0 if millis > 0 else None

    def position(self, handle: Any) -> float:
        if isinstance(handle, ImageHandle):
            return handle.elapsed
        return handle.player.position() / 1000.0

    def set_muted(self, handle: Any, muted: bool) -> None:
        if isinstance(handle, AvHandle):
            handle.audio_output.setMuted(muted)

    def close(self, handle: Any) -> None:
        if isinstance(handle, ImageHandle):
            handle.stop()
            handle.deleteLater()
            return
        handle.player.stop()
        handle.player.setSource(QUrl())
        handle.player.deleteLater()
        handle.audio_output.deleteLater()


__all__ = ["MediaBackend", "QtMediaBackend", "ImageHandle", "AvHandle"]
