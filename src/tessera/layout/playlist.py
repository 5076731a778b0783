"""Playlist documents: a layout tree plus where it lives and whether it changed.

Playlists are YAML files. The line after the document marker identifies the
format, so files can be recognized without relying on their extension::

    ---
    # tessera-playlist
    layout:
      group:
        sources:
          - path:
              path: /media
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, Union

import yaml

from ..core.errors import InvalidDocument, UnableToSavePlaylist
from .model import ChildPosition, Group, Layout, Split, SplitAxis, layout_from_dict
from .tree import LayoutChange, LayoutTree


logger = logging.getLogger(__name__)

HINT = "# tessera-playlist"
EXTENSION = "tessera"

DirtyCallback = Callable[[bool], None]


def serialize(root: Layout) -> str:
    content = yaml.safe_dump({"layout": root.to_dict()}, explicit_start=True, sort_keys=False)
    return content.replace("---", f"---\n{HINT}", 1)


def parse(content: str, path: Optional[Path] = None) -> Layout:
    """Parse playlist text into a layout.

    An empty document is the default single group.

    Raises:
        InvalidDocument: on YAML errors or schema violations.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise InvalidDocument(str(exc), path) from exc
    if data is None:
        return Group()
    if not isinstance(data, dict):
        raise InvalidDocument("top level must be a mapping", path)
    if "layout" not in data or data["layout"] is None:
        return Group()
    try:
        return layout_from_dict(data["layout"])
    except (ValueError, TypeError, KeyError) as exc:
        raise InvalidDocument(str(exc), path) from exc


class PlaylistDocument:
    """The open playlist. Every mutation of ``root`` goes through here."""

    def __init__(self, root: Optional[Layout] = None, source_file: Optional[Path] = None) -> None:
        self.tree = LayoutTree(root)
        self.source_file = source_file
        self._dirty = False
        self._listeners: List[DirtyCallback] = []

    @property
    def root(self) -> Layout:
        return self.tree.root

    @property
    def dirty(self) -> bool:
        return self._dirty

    def subscribe_dirty(self, callback: DirtyCallback) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def unsubscribe_dirty(self, callback: DirtyCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _set_dirty(self, dirty: bool) -> None:
        if self._dirty == dirty:
            return
        self._dirty = dirty
        for callback in list(self._listeners):
            callback(dirty)

    def mark_dirty(self) -> None:
        self._set_dirty(True)

    # Mutations

    def split_leaf(
        self, target: Union[str, Group], axis: SplitAxis = SplitAxis.HORIZONTAL, ratio: float = 0.5
    ) -> Tuple[Split, LayoutChange]:
        split, change = self.tree.split_leaf(target, axis, ratio)
        self.mark_dirty()
        return split, change

    def replace_leaf(self, target: Union[str, Group], new_layout: Layout) -> LayoutChange:
        change = self.tree.replace_leaf(target, new_layout)
        self.mark_dirty()
        return change

    def remove_split(self, target: Union[str, Split], survivor: ChildPosition) -> LayoutChange:
        change = self.tree.remove_split(target, survivor)
        self.mark_dirty()
        return change

    def remove_group(self, target: Union[str, Group]) -> LayoutChange:
        change = self.tree.remove_group(target)
        self.mark_dirty()
        return change

    def update_group(self, target: Union[str, Group], **settings: Any) -> LayoutChange:
        change = self.tree.update_group(target, **settings)
        if change:
            self.mark_dirty()
        return change

    def set_ratio(self, target: Union[str, Split], ratio: float) -> bool:
        changed = self.tree.set_ratio(target, ratio)
        if changed:
            self.mark_dirty()
        return changed

    # Persistence

    def serialize(self) -> str:
        return serialize(self.root)

    @classmethod
    def load(cls, path: Path) -> "PlaylistDocument":
        """Read a playlist file into a new, clean document.

        Raises:
            InvalidDocument: the file is unreadable or does not validate.
        """
        path = Path(path)
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise InvalidDocument(str(exc), path) from exc
        root = parse(content, path)
        logger.info("Loaded playlist %s", path)
        return cls(root, source_file=path)

    def save(self, path: Optional[Path] = None) -> bool:
        """Write the document; returns False when the file already matched.

        Raises:
            UnableToSavePlaylist: on write failure, or when no path is known.
        """
        target = Path(path) if path is not None else self.source_file
        if target is None:
            raise UnableToSavePlaylist(Path(""), "no file selected")
        content = self.serialize()
        written = False
        try:
            if not (target.exists() and target.read_text(encoding="utf-8") == content):
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
                written = True
        except (OSError, UnicodeDecodeError) as exc:
            raise UnableToSavePlaylist(target, str(exc)) from exc
        if written:
            logger.info("Saved playlist %s", target)
        else:
            logger.debug("Playlist %s unchanged, not writing", target)
        self.source_file = target
        self._set_dirty(False)
        return written


__all__ = ["PlaylistDocument", "serialize", "parse", "HINT", "EXTENSION"]
