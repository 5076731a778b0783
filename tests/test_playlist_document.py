"""Tests for playlist persistence and the unsaved-changes flag."""
from __future__ import annotations

from pathlib import Path

import pytest

from tessera.core.errors import InvalidDocument, UnableToSavePlaylist
from tessera.layout.model import (
    ChildPosition,
    ContentFit,
    Group,
    Orientation,
    OrientationLimit,
    Split,
    SplitAxis,
)
from tessera.layout.playlist import HINT, PlaylistDocument, parse, serialize
from tessera.media.source import GlobSource, PathSource


def sample_layout() -> Split:
    return Split(
        SplitAxis.VERTICAL,
        0.25,
        Group(
            sources=[PathSource("/media/videos"), GlobSource("/media/[*]/*.mp4")],
            max_media=3,
            content_fit=ContentFit.CROP,
            orientation=Orientation.VERTICAL,
            orientation_limit=OrientationLimit(2),
        ),
        Split(SplitAxis.HORIZONTAL, 0.5, Group(), Group(sources=[PathSource("~/clips")])),
    )


class TestPersistence:
    def test_round_trip(self, tmp_path: Path) -> None:
        document = PlaylistDocument(sample_layout())
        target = tmp_path / "grid.tessera"

        document.save(target)
        loaded = PlaylistDocument.load(target)

        assert loaded.root == document.root
        assert loaded.source_file == target
        assert not loaded.dirty

    def test_hint_follows_document_marker(self) -> None:
        text = serialize(Group())
        assert text.splitlines()[:2] == ["---", HINT]

    def test_serialized_shape(self) -> None:
        text = serialize(Group(sources=[PathSource("/media")], orientation_limit=OrientationLimit(4)))
        assert "path:\n" in text
        assert "fixed: 4" in text
        assert "content_fit: scale" in text

    def test_empty_document_is_default_group(self) -> None:
        assert parse("---\n# tessera-playlist\n") == Group()

    def test_missing_values_use_defaults(self) -> None:
        layout = parse("layout:\n  split:\n    first:\n      group:\n        max_media: 2\n")
        assert isinstance(layout, Split)
        assert layout.ratio == 0.5
        assert layout.first.max_media == 2
        assert layout.second == Group()

    @pytest.mark.parametrize(
        "content",
        [
            "layout: [unclosed",
            "- just\n- a list\n",
            "layout:\n  group:\n    max_media: many\n",
            "layout:\n  group:\n    orientation_limit: {fixed: 0}\n",
        ],
    )
    def test_invalid_content_raises(self, content: str) -> None:
        with pytest.raises(InvalidDocument):
            parse(content)

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidDocument) as info:
            PlaylistDocument.load(tmp_path / "missing.tessera")
        assert info.value.path == tmp_path / "missing.tessera"

    def test_save_skips_unchanged_content(self, tmp_path: Path) -> None:
        target = tmp_path / "grid.tessera"
        document = PlaylistDocument(sample_layout())

        assert document.save(target)
        stamp = target.stat().st_mtime_ns
        assert not document.save()
        assert target.stat().st_mtime_ns == stamp

    def test_save_without_path_fails(self) -> None:
        with pytest.raises(UnableToSavePlaylist):
            PlaylistDocument().save()

    def test_save_to_directory_fails_and_stays_dirty(self, tmp_path: Path) -> None:
        document = PlaylistDocument()
        document.mark_dirty()
        with pytest.raises(UnableToSavePlaylist):
            document.save(tmp_path)
        assert document.dirty


class TestDirtyFlag:
    def test_mutations_set_dirty(self) -> None:
        document = PlaylistDocument(sample_layout())
        first = document.tree.enumerate_groups()[0]

        document.split_leaf(first.id)
        assert document.dirty

    def test_each_mutation_sets_dirty(self) -> None:
        document = PlaylistDocument(sample_layout())
        group = document.tree.enumerate_groups()[1]

        operations = [
            lambda: document.set_ratio(document.root.id, 0.9),
            lambda: document.update_group(group.id, sources=[PathSource("/else")]),
            lambda: document.replace_leaf(document.tree.enumerate_groups()[0].id, Group()),
            lambda: document.remove_split(document.root.id, ChildPosition.FIRST),
        ]
        for operation in operations:
            document._set_dirty(False)
            operation()
            assert document.dirty

    def test_no_op_update_keeps_clean(self) -> None:
        document = PlaylistDocument(Group(max_media=2))
        document.update_group(document.root.id, max_media=2)
        assert not document.dirty

    def test_save_clears_dirty(self, tmp_path: Path) -> None:
        document = PlaylistDocument()
        document.mark_dirty()
        document.save(tmp_path / "a.tessera")
        assert not document.dirty

    def test_transitions_are_reported_once(self) -> None:
        document = PlaylistDocument(sample_layout())
        seen = []
        document.subscribe_dirty(seen.append)

        document.mark_dirty()
        document.mark_dirty()

        assert seen == [True]

    def test_failed_load_leaves_open_document_untouched(self, tmp_path: Path) -> None:
        broken = tmp_path / "broken.tessera"
        broken.write_text("layout:\n  grid: {}\n", encoding="utf-8")
        document = PlaylistDocument(sample_layout())
        document.mark_dirty()
        before = serialize(document.root)

        with pytest.raises(InvalidDocument):
            PlaylistDocument.load(broken)

        assert document.dirty
        assert serialize(document.root) == before
