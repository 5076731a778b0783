"""Tests for the session tying documents, scanning and scheduling together."""
from __future__ import annotations

import random
from pathlib import Path

import pytest

from conftest import DeferredThreadPool, ImmediateThreadPool
from tessera.core.config import PlaybackSettings
from tessera.core.errors import InvalidDocument, NoMediaAvailable
from tessera.core.events import GROUP_EXHAUSTED, PLAYLIST_DIRTY_CHANGED, SOURCE_FAILED
from tessera.core.services import AppServices
from tessera.layout.model import ChildPosition, Group, OrientationLimit, Split, SplitAxis
from tessera.layout.playlist import PlaylistDocument
from tessera.media.classify import MediaCategory, TypeClassifier
from tessera.media.pool import Candidate
from tessera.media.source import GlobSource, PathSource
from tessera.playback.player import SlotState
from tessera.playback.session import Session


def media_dir(root: Path, name: str, count: int, suffix: str = "mp4") -> Path:
    directory = root / name
    directory.mkdir()
    for index in range(count):
        (directory / f"{name}{index}.{suffix}").write_bytes(b"x")
    return directory


@pytest.fixture
def services(tmp_path: Path) -> AppServices:
    return AppServices(data_dir=tmp_path / "data")


@pytest.fixture
def make_session(qapp, backend, services):
    sessions = []

    def factory(thread_pool=None, **settings):
        session = Session(
            backend,
            services=services,
            settings=PlaybackSettings(**settings),
            classifier=TypeClassifier(use_system_database=False),
            rng=random.Random(3),
            thread_pool=thread_pool or ImmediateThreadPool(),
        )
        sessions.append(session)
        return session

    yield factory
    for session in sessions:
        session.shutdown()


def open_group(session: Session, group: Group) -> Group:
    session.open_document(PlaylistDocument(group))
    return group


class TestScheduling:
    def test_five_files_three_slots(self, make_session, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "m", 5)))], max_media=3))

        paths = [str(p.path) for p in session.players()]
        assert len(paths) == 3
        assert len(set(paths)) == 3
        assert len(session.scheduler(group.id).available()) == 2

    def test_empty_sources_report_exhaustion(self, make_session, services, tmp_path):
        session = make_session()
        exhausted, events, notices = [], [], []
        session.group_exhausted.connect(exhausted.append)
        services.event_bus.subscribe(GROUP_EXHAUSTED, lambda name, data: events.append(data))
        services.notifications.subscribe(notices.append)
        empty = media_dir(tmp_path, "empty", 0)

        group = open_group(session, Group(sources=[PathSource(str(empty))], max_media=2))

        slots = session.scheduler(group.id).slots
        assert [slot.state for slot in slots] == [SlotState.EXHAUSTED, SlotState.EXHAUSTED]
        assert exhausted == [group.id]
        assert events == [{"group_id": group.id}]
        assert notices[0].message == "No media found in sources"

    def test_malformed_glob_is_isolated(self, make_session, services, tmp_path):
        session = make_session()
        failures = []
        services.event_bus.subscribe(SOURCE_FAILED, lambda name, data: failures.append(data))
        good = media_dir(tmp_path, "good", 2)

        group = open_group(
            session,
            Group(sources=[GlobSource("/media/[broken"), PathSource(str(good))], max_media=1),
        )

        assert len(session.scheduler(group.id).players()) == 1
        assert failures[0]["source"] == "/media/[broken"

    def test_relative_sources_resolve_against_playlist(self, make_session, tmp_path):
        session = make_session()
        media_dir(tmp_path, "rel", 1)
        playlist = tmp_path / "grid.tessera"
        PlaylistDocument(Group(sources=[PathSource("rel")])).save(playlist)

        session.load_playlist(playlist)

        assert [p.path.name for p in session.players()] == ["rel0.mp4"]

    def test_items_per_line(self, make_session, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "m", 5)))], max_media=5))
        assert session.items_per_line(group.id) == 3
        session.update_group(group.id, orientation_limit=OrientationLimit(2))
        assert session.items_per_line(group.id) == 2


class TestLayoutEdits:
    def test_split_keeps_existing_group_running(self, make_session, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "m", 4)))]))
        scheduler = session.scheduler(group.id)
        player = scheduler.players()[0]

        split = session.split_group(group.id, SplitAxis.VERTICAL)

        assert session.scheduler(group.id) is scheduler
        assert scheduler.players()[0] is player
        assert len(session.scheduler(split.second.id).players()) == 1
        assert session.document.dirty

    def test_remove_split_stops_dropped_groups(self, make_session, backend, tmp_path):
        session = make_session()
        left = Group(sources=[PathSource(str(media_dir(tmp_path, "l", 2)))])
        right = Group(sources=[PathSource(str(media_dir(tmp_path, "r", 2)))])
        session.open_document(PlaylistDocument(Split(first=left, second=right)))
        dropped = session.scheduler(right.id).players()[0]

        session.remove_split(session.document.root.id, ChildPosition.FIRST)

        assert dropped.handle.closed
        with pytest.raises(KeyError):
            session.scheduler(right.id)
        assert not session.coordinator.is_registered(dropped)
        assert len(session.players()) == 1

    def test_changing_sources_restarts_the_group(self, make_session, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 2)))]))
        before = session.generation(group.id)
        old_player = session.players()[0]

        session.set_group_sources(group.id, [PathSource(str(media_dir(tmp_path, "b", 2)))])

        assert session.generation(group.id) > before
        assert old_player.handle.closed
        assert session.players()[0].path.parent.name == "b"

    def test_changing_max_media_resizes_in_place(self, make_session, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 4)))]))
        scheduler = session.scheduler(group.id)

        session.update_group(group.id, max_media=3)

        assert session.scheduler(group.id) is scheduler
        assert len(session.players()) == 3

    def test_stale_scan_results_are_dropped(self, make_session, tmp_path):
        pool = DeferredThreadPool()
        session = make_session(thread_pool=pool)
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 2)))]))
        old_worker = pool.started[0]

        session.set_group_sources(group.id, [PathSource(str(media_dir(tmp_path, "b", 2)))])
        pool.run_all()
        stale = Candidate(tmp_path / "a" / "a0.mp4", MediaCategory.VIDEO)
        old_worker.signals.batch_found.emit(group.id, old_worker.generation, 0, [stale])

        assert old_worker.cancelled
        assert stale.key not in session.scheduler(group.id).pool
        assert all(c.path.parent.name == "b" for c in session.scheduler(group.id).pool)

    def test_appeared_file_joins_pool_only_after_classification(self, make_session, tmp_path):
        pytest.importorskip("watchdog")
        pool = DeferredThreadPool()
        session = make_session(thread_pool=pool, watch_sources=True)
        directory = media_dir(tmp_path, "a", 1)
        group = open_group(session, Group(sources=[PathSource(str(directory))], max_media=2))
        pool.run_all()
        scheduler = session.scheduler(group.id)
        assert scheduler.slot(1).state is SlotState.EXHAUSTED
        late = directory / "late.mp4"
        late.write_bytes(b"x")

        session._on_file_appeared(str(late))

        assert str(late) not in scheduler.pool
        assert scheduler.slot(1).state is SlotState.EXHAUSTED
        pool.run_all()
        assert str(late) in scheduler.pool
        assert scheduler.slot(1).state is SlotState.FILLED

    def test_classification_for_a_restarted_group_is_dropped(self, make_session, tmp_path):
        pytest.importorskip("watchdog")
        pool = DeferredThreadPool()
        session = make_session(thread_pool=pool, watch_sources=True)
        directory = media_dir(tmp_path, "a", 1)
        group = open_group(session, Group(sources=[PathSource(str(directory))]))
        pool.run_all()
        late = directory / "late.mp4"
        late.write_bytes(b"x")
        session._on_file_appeared(str(late))

        session.set_group_sources(group.id, [PathSource(str(media_dir(tmp_path, "b", 1)))])
        pool.run_all()

        assert str(late) not in session.scheduler(group.id).pool

    def test_dirty_changes_are_signalled(self, make_session, services):
        session = make_session()
        seen, events = [], []
        session.dirty_changed.connect(seen.append)
        services.event_bus.subscribe(PLAYLIST_DIRTY_CHANGED, lambda name, data: events.append(data))
        group = open_group(session, Group())

        session.split_group(group.id)

        assert seen[-1] is True
        assert events[-1] == {"dirty": True}


class TestPlaylists:
    def test_save_and_reload(self, make_session, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 1)))]))
        session.split_group(group.id)
        target = tmp_path / "saved.tessera"

        assert session.save_playlist(target)
        assert not session.document.dirty

        saved_root = session.document.root
        session.load_playlist(target)
        assert session.document.root == saved_root
        assert len(session.players()) == 2

    def test_invalid_playlist_leaves_document_alone(self, make_session, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 1)))]))
        session.split_group(group.id)
        document = session.document
        players = session.players()
        broken = tmp_path / "broken.tessera"
        broken.write_text("layout: {group: {max_media: -4}}\n", encoding="utf-8")

        with pytest.raises(InvalidDocument):
            session.load_playlist(broken)

        assert session.document is document
        assert document.dirty
        assert session.players() == players


class TestPlayerControls:
    def test_add_and_close_player(self, make_session, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 2)))]))

        player = session.add_player(group.id)
        assert player is not None
        assert group.max_media == 2

        with pytest.raises(NoMediaAvailable):
            session.add_player(group.id)
        assert group.max_media == 2

        session.close_player(group.id, 0)
        assert group.max_media == 1
        assert session.players() == [player]

    def test_global_pause_and_mute(self, make_session, tmp_path):
        session = make_session()
        assert not session.all_paused()
        assert not session.all_muted()
        open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 3)))], max_media=2))

        session.set_paused_all(True)
        session.set_muted_all(True)

        assert session.all_paused()
        assert session.all_muted()
        assert not any(p.handle.playing for p in session.players())

        session.set_paused_all(False)
        assert all(p.handle.playing for p in session.players())

    def test_end_of_media_replaces_player(self, make_session, backend, tmp_path):
        session = make_session()
        open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 3)))]))
        first = session.players()[0]

        backend.finish(first.handle)

        assert first.handle.closed
        assert session.players()[0].path != first.path

    def test_backend_error_marks_candidate_dead(self, make_session, backend, tmp_path):
        session = make_session()
        group = open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 3)))]))
        first = session.players()[0]

        backend.fail(first.handle)

        assert str(first.path) in session.scheduler(group.id).dead()
        assert session.players()[0] is not first

    def test_synchronized_seek_across_groups(self, make_session, backend, tmp_path):
        long_dir = media_dir(tmp_path, "long", 1)
        short_dir = media_dir(tmp_path, "short", 1)
        backend.durations[str(long_dir / "long0.mp4")] = 60.0
        backend.durations[str(short_dir / "short0.mp4")] = 10.0
        session = make_session(synchronized=True)
        left = Group(sources=[PathSource(str(long_dir))])
        right = Group(sources=[PathSource(str(short_dir))])
        session.open_document(PlaylistDocument(Split(first=left, second=right)))
        p1 = session.scheduler(left.id).players()[0]
        p2 = session.scheduler(right.id).players()[0]

        session.pause(p1)
        assert p2.paused and not p2.handle.playing

        session.seek(p1, 45.0)
        assert p1.handle.position == 45.0
        assert p2.handle.position == 10.0

    def test_seek_random(self, make_session, backend, tmp_path):
        session = make_session()
        open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 1)))]))
        player = session.players()[0]

        assert session.seek_random(player)
        assert 0.0 <= player.handle.position <= 30.0

        backend.default_duration = None
        player.handle.duration = None
        assert not session.seek_random(player)

    def test_pause_on_unfocus(self, make_session, tmp_path):
        session = make_session(pause_on_unfocus=True)
        open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 1)))]))

        session.window_focus_changed(False)
        assert session.all_paused()
        session.window_focus_changed(True)
        assert not session.all_paused()

    def test_unfocus_keeps_manual_pause(self, make_session, tmp_path):
        session = make_session(pause_on_unfocus=True)
        open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 1)))]))
        session.set_paused_all(True)

        session.window_focus_changed(False)
        session.window_focus_changed(True)

        assert session.all_paused()

    def test_shutdown_closes_all_players(self, make_session, backend, tmp_path):
        session = make_session()
        open_group(session, Group(sources=[PathSource(str(media_dir(tmp_path, "a", 3)))], max_media=2))

        session.shutdown()

        assert backend.live() == []
        assert session.players() == []
