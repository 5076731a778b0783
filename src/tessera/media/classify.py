"""Media type classification.

Stages, each tried only when the previous one is inconclusive:

1. the registered extension table,
2. the system's shared MIME database (through Qt),
3. sniffing the file header,
4. a best guess from the extension via :mod:`mimetypes`.
"""
from __future__ import annotations

import enum
import logging
import mimetypes
import threading
from pathlib import Path
from typing import Dict, Mapping, Optional

try:
    from PySide6.QtCore import QMimeDatabase  # type: ignore[import-not-found]
except ImportError:  # pragma: no cover - headless tooling without Qt
    QMimeDatabase = None  # type: ignore[assignment,misc]

try:
    import mutagen  # type: ignore[import-untyped]
except ImportError:  # pragma: no cover
    mutagen = None  # type: ignore[assignment]


logger = logging.getLogger(__name__)

SNIFF_SIZE = 262


class MediaCategory(enum.Enum):
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    UNKNOWN = "unknown"

    @property
    def is_media(self) -> bool:
        return self is not MediaCategory.UNKNOWN

    @property
    def has_timeline(self) -> bool:
        """Audio and video positions are meaningful across players."""
        return self in (MediaCategory.AUDIO, MediaCategory.VIDEO)


DEFAULT_EXTENSIONS: Dict[str, MediaCategory] = {
    # Audio
    "mp3": MediaCategory.AUDIO, "flac": MediaCategory.AUDIO, "m4a": MediaCategory.AUDIO,
    "wav": MediaCategory.AUDIO, "ogg": MediaCategory.AUDIO, "oga": MediaCategory.AUDIO,
    "opus": MediaCategory.AUDIO, "aac": MediaCategory.AUDIO, "aiff": MediaCategory.AUDIO,
    # Video
    "mp4": MediaCategory.VIDEO, "m4v": MediaCategory.VIDEO, "mkv": MediaCategory.VIDEO,
    "webm": MediaCategory.VIDEO, "avi": MediaCategory.VIDEO, "mov": MediaCategory.VIDEO,
    "wmv": MediaCategory.VIDEO, "flv": MediaCategory.VIDEO, "mpeg": MediaCategory.VIDEO,
    "mpg": MediaCategory.VIDEO,
    # Images
    "jpg": MediaCategory.IMAGE, "jpeg": MediaCategory.IMAGE, "png": MediaCategory.IMAGE,
    "gif": MediaCategory.IMAGE, "bmp": MediaCategory.IMAGE, "webp": MediaCategory.IMAGE,
    "tif": MediaCategory.IMAGE, "tiff": MediaCategory.IMAGE, "ico": MediaCategory.IMAGE,
    "svg": MediaCategory.IMAGE,
}

# MIME types outside the image/audio/video trees that still name media.
EXTRA_MIME_CATEGORIES: Dict[str, MediaCategory] = {
    "application/ogg": MediaCategory.AUDIO,
    "application/x-matroska": MediaCategory.VIDEO,
    "application/vnd.rn-realmedia": MediaCategory.VIDEO,
    "application/mxf": MediaCategory.VIDEO,
}

# ftyp brands that mean audio-only MP4 containers.
AUDIO_MP4_BRANDS = {b"M4A ", b"M4B ", b"M4P ", b"F4A ", b"F4B "}


def category_for_mime(mime_type: Optional[str]) -> MediaCategory:
    if not mime_type:
        return MediaCategory.UNKNOWN
    mime_type = mime_type.lower()
    if mime_type in EXTRA_MIME_CATEGORIES:
        return EXTRA_MIME_CATEGORIES[mime_type]
    top = mime_type.split("/", 1)[0]
    try:
        category = MediaCategory(top)
    except ValueError:
        return MediaCategory.UNKNOWN
    return category


def sniff_header(header: bytes) -> MediaCategory:
    """Identify a media container from the first bytes of a file."""
    if header.startswith(b"\x89PNG\r\n\x1a\n"):
        return MediaCategory.IMAGE
    if header.startswith(b"\xff\xd8\xff"):
        return MediaCategory.IMAGE
    if header[:6] in (b"GIF87a", b"GIF89a"):
        return MediaCategory.IMAGE
    if header.startswith((b"II*\x00", b"MM\x00*")):
        return MediaCategory.IMAGE
    if header.startswith(b"\x00\x00\x01\x00"):
        return MediaCategory.IMAGE
    if header.startswith(b"RIFF") and len(header) >= 12:
        form = header[8:12]
        if form == b"WEBP":
            return MediaCategory.IMAGE
        if form == b"AVI ":
            return MediaCategory.VIDEO
        if form == b"WAVE":
            return MediaCategory.AUDIO
    if len(header) >= 12 and header[4:8] == b"ftyp":
        brand = header[8:12]
        return MediaCategory.AUDIO if brand in AUDIO_MP4_BRANDS else MediaCategory.VIDEO
    if header.startswith(b"\x1a\x45\xdf\xa3"):
        return MediaCategory.VIDEO
    if header.startswith(b"FLV"):
        return MediaCategory.VIDEO
    if header.startswith((b"\x00\x00\x01\xba", b"\x00\x00\x01\xb3")):
        return MediaCategory.VIDEO
    if header.startswith(b"\x30\x26\xb2\x75\x8e\x66\xcf\x11"):
        return MediaCategory.VIDEO
    if header.startswith((b"ID3", b"fLaC", b"OggS", b"MThd")):
        return MediaCategory.AUDIO
    if header.startswith(b"FORM") and header[8:12] in (b"AIFF", b"AIFC"):
        return MediaCategory.AUDIO
    if len(header) >= 2 and header[0] == 0xFF and header[1] in (0xFB, 0xF3, 0xF2, 0xF1, 0xF9):
        return MediaCategory.AUDIO
    if header.lstrip().startswith(b"<svg"):
        return MediaCategory.IMAGE
    return MediaCategory.UNKNOWN


class TypeClassifier:
    """Deterministic path -> category lookup with a per-path memo."""

    def __init__(
        self,
        extensions: Optional[Mapping[str, str]] = None,
        use_defaults: bool = True,
        use_system_database: bool = True,
    ) -> None:
        self._table: Dict[str, MediaCategory] = dict(DEFAULT_EXTENSIONS) if use_defaults else {}
        self._use_system_database = use_system_database and QMimeDatabase is not None
        self._cache: Dict[str, MediaCategory] = {}
        self._lock = threading.Lock()
        for extension, category in (extensions or {}).items():
            self.register(extension, category)

    def register(self, extension: str, category: "MediaCategory | str") -> None:
        """Map an extension to a category; clears memoized results."""
        if not isinstance(category, MediaCategory):
            category = MediaCategory(str(category).lower())
        with self._lock:
            self._table[extension.lower().lstrip(".")] = category
            self._cache.clear()

    def classify(self, path: Path) -> MediaCategory:
        key = str(path)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        category = self._classify_uncached(Path(path))
        with self._lock:
            # First answer wins so repeated calls never disagree.
            category = self._cache.setdefault(key, category)
        return category

    def _classify_uncached(self, path: Path) -> MediaCategory:
        category = self.from_table(path)
        if category.is_media:
            return category
        category = self.from_system_database(path)
        if category.is_media:
            logger.debug("System MIME database matched %s as %s", path, category.value)
            return category
        category = self.from_content(path)
        if category.is_media:
            logger.debug("Header sniffing matched %s as %s", path, category.value)
            return category
        category = self.from_extension_guess(path)
        if not category.is_media:
            logger.info("Did not infer any media type: %s", path)
        return category

    def from_table(self, path: Path) -> MediaCategory:
        return self._table.get(path.suffix.lower().lstrip("."), MediaCategory.UNKNOWN)

    def from_system_database(self, path: Path) -> MediaCategory:
        if not self._use_system_database:
            return MediaCategory.UNKNOWN
        mime = QMimeDatabase().mimeTypeForFile(str(path))
        if not mime.isValid() or mime.isDefault():
            return MediaCategory.UNKNOWN
        return category_for_mime(mime.name())

    def from_content(self, path: Path) -> MediaCategory:
        try:
            with open(path, "rb") as handle:
                header = handle.read(SNIFF_SIZE)
        except OSError as exc:
            logger.debug("Unable to sniff %s: %s", path, exc)
            return MediaCategory.UNKNOWN
        category = sniff_header(header)
        if category.is_media or mutagen is None:
            return category
        try:
            audio = mutagen.File(str(path))
        except Exception as exc:  # mutagen raises many format-specific errors
            logger.debug("mutagen could not read %s: %s", path, exc)
            return MediaCategory.UNKNOWN
        return MediaCategory.AUDIO if audio is not None else MediaCategory.UNKNOWN

    def from_extension_guess(self, path: Path) -> MediaCategory:
        mime_type, _ = mimetypes.guess_type(str(path))
        return category_for_mime(mime_type)


__all__ = [
    "MediaCategory",
    "TypeClassifier",
    "DEFAULT_EXTENSIONS",
    "category_for_mime",
    "sniff_header",
]
