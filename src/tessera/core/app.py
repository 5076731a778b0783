from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from PySide6.QtCore import QByteArray, QEvent, Qt  # type: ignore[import-not-found]
from PySide6.QtGui import QAction, QPixmap  # type: ignore[import-not-found]
from PySide6.QtWidgets import (  # type: ignore[import-not-found]
    QApplication,
    QFileDialog,
    QGridLayout,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from ..layout.model import ContentFit, Group, Layout, Orientation, Split, SplitAxis
from ..layout.playlist import EXTENSION, PlaylistDocument
from ..media.backend import AvHandle, QtMediaBackend
from ..media.classify import MediaCategory
from ..media.source import GlobSource, PathSource, Source
from ..playback.player import Player, SlotState
from ..playback.session import Session
from .config import WINDOW_SECTION
from .errors import InvalidDocument, NoMediaAvailable, UnableToSavePlaylist
from .logging_setup import setup_logging
from .services import AppServices, Notification


logger = logging.getLogger(__name__)

PLAYLIST_FILTER = f"Tessera playlist (*.{EXTENSION});;All files (*)"

ASPECT_MODES = {
    ContentFit.SCALE: Qt.AspectRatioMode.KeepAspectRatio,
    ContentFit.SCALE_DOWN: Qt.AspectRatioMode.KeepAspectRatio,
    ContentFit.CROP: Qt.AspectRatioMode.KeepAspectRatioByExpanding,
    ContentFit.STRETCH: Qt.AspectRatioMode.IgnoreAspectRatio,
}


class PlayerCell(QWidget):
    """One slot of a group: the media plus a small control row."""

    def __init__(self, session: Session, backend: QtMediaBackend, player: Player, fit: ContentFit) -> None:
        super().__init__()
        self._session = session
        self._player = player
        layout = QVBoxLayout(self)
        layout.setContentsMargins(1, 1, 1, 1)

        if player.category is MediaCategory.VIDEO and isinstance(player.handle, AvHandle):
            from PySide6.QtMultimediaWidgets import QVideoWidget  # type: ignore[import-not-found]

            video = QVideoWidget(self)
            video.setAspectRatioMode(ASPECT_MODES[fit])
            backend.attach_video_output(player.handle, video)
            layout.addWidget(video, 1)
        elif player.category is MediaCategory.IMAGE:
            label = QLabel(self)
            label.setAlignment(Qt.AlignmentFlag.AlignCenter)
            pixmap = QPixmap(str(player.path))
            if fit is not ContentFit.SCALE_DOWN or pixmap.width() > 480 or pixmap.height() > 360:
                pixmap = pixmap.scaled(480, 360, ASPECT_MODES[fit], Qt.TransformationMode.SmoothTransformation)
            label.setPixmap(pixmap)
            layout.addWidget(label, 1)
        else:
            label = QLabel(player.path.name, self)
            label.setAlignment(Qt.AlignmentFlag.AlignCenter)
            layout.addWidget(label, 1)

        controls = QHBoxLayout()
        for text, handler in (
            ("⏯", self._toggle_pause),
            ("🔀", self._seek_random),
            ("🔁", self._toggle_loop),
            ("🔇", self._toggle_mute),
            ("✕", self._close),
        ):
            button = QPushButton(text, self)
            button.setFlat(True)
            button.clicked.connect(handler)
            controls.addWidget(button)
        controls.addStretch(1)
        layout.addLayout(controls)
        self.setToolTip(str(player.path))

    def _toggle_pause(self) -> None:
        if self._player.paused:
            self._session.play(self._player)
        else:
            self._session.pause(self._player)

    def _seek_random(self) -> None:
        self._session.seek_random(self._player)

    def _toggle_loop(self) -> None:
        self._session.set_player_looping(self._player, not self._player.looping)

    def _toggle_mute(self) -> None:
        self._session.set_player_muted(self._player, not self._player.muted)

    def _close(self) -> None:
        self._session.close_player(self._player.group_id, self._player.slot_index)


class GroupView(QWidget):
    def __init__(self, window: "TesseraWindow", group: Group) -> None:
        super().__init__()
        self._window = window
        self.group = group
        outer = QVBoxLayout(self)
        outer.setContentsMargins(2, 2, 2, 2)

        toolbar = QHBoxLayout()
        for text, handler in (
            ("Sources…", self._choose_sources),
            ("Add player", self._add_player),
            ("Refresh", self._refresh),
            ("Split ↔", lambda: self._split(SplitAxis.VERTICAL)),
            ("Split ↕", lambda: self._split(SplitAxis.HORIZONTAL)),
            ("Close", self._close),
        ):
            button = QPushButton(text, self)
            button.clicked.connect(handler)
            toolbar.addWidget(button)
        toolbar.addStretch(1)
        outer.addLayout(toolbar)

        self._grid_host = QWidget(self)
        self._grid = QGridLayout(self._grid_host)
        self._grid.setContentsMargins(0, 0, 0, 0)
        outer.addWidget(self._grid_host, 1)
        self.rebuild()

    @property
    def session(self) -> Session:
        return self._window.session

    def rebuild(self) -> None:
        while self._grid.count():
            item = self._grid.takeAt(0)
            widget = item.widget()
            if widget is not None:
                widget.deleteLater()
        scheduler = self.session.scheduler(self.group.id)
        per_line = self.session.items_per_line(self.group.id)
        position = 0
        for slot in scheduler.slots:
            if slot.state is SlotState.EXHAUSTED:
                continue
            if slot.player is not None:
                cell: QWidget = PlayerCell(self.session, self._window.backend, slot.player, self.group.content_fit)
            else:
                cell = QLabel("Scanning…", self._grid_host)
                cell.setAlignment(Qt.AlignmentFlag.AlignCenter)  # type: ignore[attr-defined]
            line, offset = divmod(position, per_line)
            if self.group.orientation is Orientation.HORIZONTAL:
                self._grid.addWidget(cell, line, offset)
            else:
                self._grid.addWidget(cell, offset, line)
            position += 1
        if position == 0:
            text = "No media found in sources" if self.group.sources else "Choose sources to start"
            empty = QLabel(text, self._grid_host)
            empty.setAlignment(Qt.AlignmentFlag.AlignCenter)
            self._grid.addWidget(empty, 0, 0)

    def _choose_sources(self) -> None:
        directory = QFileDialog.getExistingDirectory(self, "Choose media folder")
        if directory:
            self.session.set_group_sources(self.group.id, [PathSource(directory)])

    def _add_player(self) -> None:
        try:
            self.session.add_player(self.group.id)
        except NoMediaAvailable:
            self._window.statusBar().showMessage("No media found in sources", 5000)

    def _refresh(self) -> None:
        self.session.refresh_group(self.group.id)

    def _split(self, axis: SplitAxis) -> None:
        self.session.split_group(self.group.id, axis)

    def _close(self) -> None:
        try:
            self.session.close_group(self.group.id)
        except ValueError:
            self.session.update_group(self.group.id, sources=[])


class TesseraWindow(QMainWindow):
    def __init__(self, services: AppServices, session: Session, backend: QtMediaBackend) -> None:
        super().__init__()
        self._services = services
        self.session = session
        self.backend = backend
        self._group_views: Dict[str, GroupView] = {}

        self.setWindowTitle("Tessera")
        self.resize(1280, 800)
        self._restore_geometry()
        self._build_toolbar()

        session.layout_changed.connect(self._rebuild_layout)
        session.slot_changed.connect(self._on_slot_changed)
        session.dirty_changed.connect(self._update_title)
        services.notifications.subscribe(self._show_notification)
        self._rebuild_layout()

    def _restore_geometry(self) -> None:
        section = self._services.get_section(WINDOW_SECTION)
        encoded = section.get("geometry")
        if encoded is None:
            return
        data = QByteArray.fromBase64(encoded.encode("ascii", "ignore")) if isinstance(encoded, str) else None
        if data is None or not self.restoreGeometry(data):
            logger.info("Discarding unusable saved window geometry")
            del section["geometry"]

    def _save_geometry(self) -> None:
        encoded = bytes(self.saveGeometry().toBase64()).decode("ascii")
        self._services.get_section(WINDOW_SECTION)["geometry"] = encoded

    def _build_toolbar(self) -> None:
        toolbar = self.addToolBar("Playlist")
        actions = (
            ("New", self._new_playlist),
            ("Open…", self._open_playlist),
            ("Save", self._save_playlist),
            ("Save as…", self._save_playlist_as),
            ("Refresh all", self.session.refresh_all),
            ("Pause all", self._toggle_pause_all),
            ("Mute all", self._toggle_mute_all),
        )
        for text, handler in actions:
            action = QAction(text, self)
            action.triggered.connect(handler)
            toolbar.addAction(action)
        sync_action = QAction("Synchronize", self)
        sync_action.setCheckable(True)
        sync_action.setChecked(self.session.settings.synchronized)
        sync_action.toggled.connect(self.session.set_synchronized)
        toolbar.addAction(sync_action)

    def _build_node(self, node: Layout) -> QWidget:
        if isinstance(node, Group):
            view = GroupView(self, node)
            self._group_views[node.id] = view
            return view
        assert isinstance(node, Split)
        # A horizontal axis is a horizontal divider, so the children stack.
        orientation = Qt.Orientation.Vertical if node.axis is SplitAxis.HORIZONTAL else Qt.Orientation.Horizontal
        splitter = QSplitter(orientation)
        splitter.addWidget(self._build_node(node.first))
        splitter.addWidget(self._build_node(node.second))
        splitter.setSizes([int(node.ratio * 1000), int((1 - node.ratio) * 1000)])
        split_id = node.id

        def on_moved(_pos: int, _index: int) -> None:
            sizes = splitter.sizes()
            total = sum(sizes)
            if total:
                self.session.set_split_ratio(split_id, round(sizes[0] / total, 3))

        splitter.splitterMoved.connect(on_moved)
        return splitter

    def _rebuild_layout(self) -> None:
        self._group_views.clear()
        old = self.centralWidget()
        self.setCentralWidget(self._build_node(self.session.document.root))
        if old is not None:
            old.deleteLater()
        self._update_title(self.session.document.dirty)

    def _on_slot_changed(self, group_id: str, _index: int) -> None:
        view = self._group_views.get(group_id)
        if view is not None:
            view.rebuild()

    def _update_title(self, dirty: bool) -> None:
        source = self.session.document.source_file
        name = source.name if source is not None else "Untitled"
        self.setWindowTitle(f"{'*' if dirty else ''}{name} - Tessera")

    def _show_notification(self, notification: Notification) -> None:
        self.statusBar().showMessage(notification.message, 5000)

    def _confirm_discard(self) -> bool:
        if not self.session.document.dirty:
            return True
        answer = QMessageBox.question(
            self, "Unsaved changes", "Discard unsaved changes to the current playlist?"
        )
        return answer == QMessageBox.StandardButton.Yes

    def _new_playlist(self) -> None:
        if self._confirm_discard():
            self.session.new_playlist()

    def _open_playlist(self) -> None:
        if not self._confirm_discard():
            return
        path, _ = QFileDialog.getOpenFileName(self, "Open playlist", "", PLAYLIST_FILTER)
        if path:
            self.load_playlist(Path(path))

    def load_playlist(self, path: Path) -> None:
        try:
            self.session.load_playlist(path)
        except InvalidDocument as exc:
            QMessageBox.warning(self, "Unable to open playlist", str(exc))

    def _save_playlist(self) -> None:
        if self.session.document.source_file is None:
            self._save_playlist_as()
            return
        self._save_to(None)

    def _save_playlist_as(self) -> None:
        path, _ = QFileDialog.getSaveFileName(self, "Save playlist", f"playlist.{EXTENSION}", PLAYLIST_FILTER)
        if path:
            self._save_to(Path(path))

    def _save_to(self, path: Optional[Path]) -> None:
        try:
            self.session.save_playlist(path)
        except UnableToSavePlaylist as exc:
            QMessageBox.warning(self, "Unable to save playlist", str(exc))

    def _toggle_pause_all(self) -> None:
        self.session.set_paused_all(not self.session.all_paused())

    def _toggle_mute_all(self) -> None:
        self.session.set_muted_all(not self.session.all_muted())

    def changeEvent(self, event: QEvent) -> None:  # noqa: N802 - Qt override
        if event.type() == QEvent.Type.ActivationChange:
            self.session.window_focus_changed(self.isActiveWindow())
        super().changeEvent(event)

    def closeEvent(self, event) -> None:  # noqa: N802 - Qt override
        if not self._confirm_discard():
            event.ignore()
            return
        self._save_geometry()
        self._services.notifications.unsubscribe(self._show_notification)
        self.session.shutdown()
        super().closeEvent(event)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tessera", description="Play media in a grid of players.")
    parser.add_argument("sources", nargs="*", help="Files, folders or glob patterns to play")
    parser.add_argument("--glob", action="store_true", help="Treat sources as glob patterns")
    parser.add_argument("--playlist", type=Path, help=f"Open a .{EXTENSION} playlist")
    parser.add_argument("--max-media", type=int, default=1, help="Players for the initial group")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    return parser


def initial_document(args: argparse.Namespace) -> PlaylistDocument:
    """Playlist from ``--playlist``, or a single group over the given sources.

    Raises:
        InvalidDocument: the playlist cannot be loaded.
    """
    if args.playlist is not None:
        return PlaylistDocument.load(args.playlist)
    sources: List[Source] = [GlobSource(s) if args.glob else PathSource(s) for s in args.sources]
    return PlaylistDocument(Group(sources=sources, max_media=max(1, args.max_media)))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    services = AppServices()
    setup_logging(services.log_dir, args.log_level)
    app = QApplication(sys.argv[:1])
    settings = services.load_playback_settings()
    backend = QtMediaBackend(image_duration=settings.image_duration)
    session = Session(backend, services=services, settings=settings)
    try:
        document = initial_document(args)
    except InvalidDocument as exc:
        logger.error("%s", exc)
        document = PlaylistDocument()
    session.open_document(document)
    window = TesseraWindow(services, session, backend)
    window.show()
    exit_code = app.exec()
    services.save_playback_settings(session.settings)
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
