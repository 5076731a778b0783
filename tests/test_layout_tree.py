from __future__ import annotations

import pytest

from tessera.layout.model import (
    ChildPosition,
    ContentFit,
    Group,
    Orientation,
    OrientationLimit,
    Split,
    SplitAxis,
    items_per_line,
    layout_from_dict,
)
from tessera.layout.tree import LayoutTree
from tessera.media.source import GlobSource, PathSource


def two_pane_tree():
    left = Group(sources=[PathSource("/a")], max_media=3)
    right = Group(sources=[GlobSource("/b/*.mp4")])
    return LayoutTree(Split(SplitAxis.VERTICAL, 0.3, left, right)), left, right


class TestLayoutTree:
    def test_enumerate_is_depth_first(self):
        tree, left, right = two_pane_tree()
        inner = Group()
        tree.replace_leaf(right, Split(first=inner, second=Group()))

        groups = tree.enumerate_groups()

        assert groups[0] is left
        assert groups[1] is inner
        assert len(groups) == 3

    def test_split_leaf_keeps_original_and_adds_copy(self):
        tree, left, _ = two_pane_tree()

        split, change = tree.split_leaf(left.id, SplitAxis.HORIZONTAL, 0.25)

        assert split.first is left
        assert left.max_media == 1
        assert split.second == left
        assert split.second.id != left.id
        assert change.added == [split.second.id]
        assert change.reconfigured == [left.id]
        assert change.removed == []
        assert tree.parent_of(split) is not None

    def test_split_root_group(self):
        group = Group()
        tree = LayoutTree(group)

        split, change = tree.split_leaf(group)

        assert tree.root is split
        assert change.reconfigured == []

    def test_remove_split_keeps_survivor(self):
        tree, left, right = two_pane_tree()
        root = tree.root

        change = tree.remove_split(root.id, ChildPosition.SECOND)

        assert tree.root is right
        assert change.removed == [left.id]
        assert change.added == []

    def test_remove_nested_split_reports_all_removed_groups(self):
        tree, left, right = two_pane_tree()
        split, _ = tree.split_leaf(right)
        third = split.second

        change = tree.remove_split(tree.root.id, ChildPosition.FIRST)

        assert tree.root is left
        assert sorted(change.removed) == sorted([right.id, third.id])

    def test_remove_group_collapses_parent(self):
        tree, left, right = two_pane_tree()
        change = tree.remove_group(right.id)
        assert tree.root is left
        assert change.removed == [right.id]

    def test_cannot_remove_last_group(self):
        tree = LayoutTree()
        with pytest.raises(ValueError):
            tree.remove_group(tree.root.id)

    def test_untouched_groups_are_not_reported(self):
        tree, left, right = two_pane_tree()
        _, change = tree.split_leaf(right)
        assert left.id not in change.added + change.removed + change.reconfigured

    def test_update_group_reports_only_real_changes(self):
        tree, left, _ = two_pane_tree()

        assert not tree.update_group(left.id, max_media=3)
        change = tree.update_group(left.id, content_fit=ContentFit.CROP)

        assert change.reconfigured == [left.id]
        assert left.content_fit is ContentFit.CROP

    def test_update_group_rejects_unknown_settings(self):
        tree, left, _ = two_pane_tree()
        with pytest.raises(TypeError):
            tree.update_group(left.id, colour="red")
        with pytest.raises(ValueError):
            tree.update_group(left.id, max_media=-1)

    @pytest.mark.parametrize("value", [2.5, "3", True, None])
    def test_update_group_rejects_non_integer_max_media(self, value):
        tree, left, _ = two_pane_tree()
        with pytest.raises(ValueError):
            tree.update_group(left.id, max_media=value)
        assert left.max_media == 3

    def test_find_removed_group_fails(self):
        tree, left, right = two_pane_tree()
        tree.remove_group(right)
        with pytest.raises(KeyError):
            tree.find(right.id)
        assert not tree.contains(right.id)

    def test_replace_leaf_rejects_self_reference(self):
        tree, left, _ = two_pane_tree()
        with pytest.raises(ValueError):
            tree.replace_leaf(left, Split(first=left, second=Group()))

    def test_split_ratio_must_be_in_range(self):
        tree, left, _ = two_pane_tree()
        with pytest.raises(ValueError):
            tree.split_leaf(left, ratio=1.5)
        assert tree.set_ratio(tree.root.id, 0.6)
        assert not tree.set_ratio(tree.root.id, 0.6)


class TestModel:
    @pytest.mark.parametrize("count, expected", [(0, 1), (1, 1), (2, 2), (4, 2), (5, 3), (9, 3), (10, 4)])
    def test_items_per_line(self, count, expected):
        assert items_per_line(count) == expected

    def test_orientation_limit_values(self):
        assert OrientationLimit.from_value("automatic") == OrientationLimit.automatic()
        assert OrientationLimit.from_value({"fixed": 2}).resolve(100) == 2
        assert OrientationLimit.automatic().resolve(5) == 3
        with pytest.raises(ValueError):
            OrientationLimit.from_value({"fixed": 0})
        with pytest.raises(ValueError):
            OrientationLimit.from_value("sometimes")

    def test_missing_fields_take_defaults(self):
        layout = layout_from_dict({"split": {"first": {"group": {}}}})

        assert isinstance(layout, Split)
        assert layout.axis is SplitAxis.HORIZONTAL
        assert layout.ratio == 0.5
        group = layout.first
        assert group.max_media == 1
        assert group.content_fit is ContentFit.SCALE
        assert group.orientation is Orientation.HORIZONTAL
        assert not group.orientation_limit.is_fixed

    @pytest.mark.parametrize(
        "data",
        [
            {"group": {"max_media": -1}},
            {"group": {"content_fit": "zoom"}},
            {"group": {"sources": [{"url": "x"}]}},
            {"split": {"ratio": 2}},
            {"group": {}, "split": {}},
            {"grid": {}},
            ["group"],
        ],
    )
    def test_invalid_layouts_raise(self, data):
        with pytest.raises(ValueError):
            layout_from_dict(data)

    def test_group_equality_ignores_id(self):
        assert Group(max_media=2) == Group(max_media=2)
        assert Group(max_media=2).id != Group(max_media=2).id
