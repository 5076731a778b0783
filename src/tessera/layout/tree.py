"""Structural operations on the layout tree.

Every mutation reports which group ids were added, removed or
reconfigured, so the session restarts scheduling only for those and
leaves untouched subtrees running.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Tuple, Union

from .model import ChildPosition, Group, Layout, Split, SplitAxis, check_max_media, validate_ratio


GROUP_SETTINGS = {"sources", "max_media", "content_fit", "orientation", "orientation_limit"}


@dataclass
class LayoutChange:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    reconfigured: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.reconfigured)


def iter_groups(node: Layout) -> Iterator[Group]:
    """Depth-first, first child before second."""
    if isinstance(node, Group):
        yield node
        return
    yield from iter_groups(node.first)
    yield from iter_groups(node.second)


def iter_nodes(node: Layout) -> Iterator[Layout]:
    yield node
    if isinstance(node, Split):
        yield from iter_nodes(node.first)
        yield from iter_nodes(node.second)


class LayoutTree:
    def __init__(self, root: Optional[Layout] = None) -> None:
        self._root: Layout = root if root is not None else Group()

    @property
    def root(self) -> Layout:
        return self._root

    def enumerate_groups(self) -> List[Group]:
        return list(iter_groups(self._root))

    def group_ids(self) -> List[str]:
        return [group.id for group in iter_groups(self._root)]

    def find(self, node_id: str) -> Layout:
        """Look up a group or split by id.

        Raises:
            KeyError: if no node has that id (e.g. it was removed).
        """
        for node in iter_nodes(self._root):
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    def find_group(self, group_id: str) -> Group:
        node = self.find(group_id)
        if not isinstance(node, Group):
            raise KeyError(group_id)
        return node

    def contains(self, node_id: str) -> bool:
        try:
            self.find(node_id)
        except KeyError:
            return False
        return True

    def parent_of(self, node: Layout) -> Optional[Tuple[Split, ChildPosition]]:
        for candidate in iter_nodes(self._root):
            if isinstance(candidate, Split):
                if candidate.first is node:
                    return candidate, ChildPosition.FIRST
                if candidate.second is node:
                    return candidate, ChildPosition.SECOND
        return None

    def _resolve(self, target: Union[str, Layout]) -> Layout:
        node = self.find(target) if isinstance(target, str) else target
        if not any(candidate is node for candidate in iter_nodes(self._root)):
            raise KeyError(getattr(node, "id", node))
        return node

    def _swap(self, old: Layout, new: Layout) -> None:
        parent = self.parent_of(old)
        if parent is None:
            self._root = new
        else:
            split, position = parent
            split.set_child(position, new)

    def replace_leaf(self, target: Union[str, Group], new_layout: Layout) -> LayoutChange:
        group = self._resolve(target)
        if not isinstance(group, Group):
            raise ValueError("replace_leaf targets a group")
        if any(node is group for node in iter_nodes(new_layout)):
            raise ValueError("replacement must not contain the replaced group")
        if any(node is new_layout for node in iter_nodes(self._root)):
            raise ValueError("replacement is already part of the tree")
        self._swap(group, new_layout)
        return LayoutChange(
            added=[g.id for g in iter_groups(new_layout)],
            removed=[group.id],
        )

    def split_leaf(
        self,
        target: Union[str, Group],
        axis: SplitAxis = SplitAxis.HORIZONTAL,
        ratio: float = 0.5,
    ) -> Tuple[Split, LayoutChange]:
        """Replace a group with a split of two single-slot groups.

        The first child is the original group (same id, so its scanning
        survives); the second is a fresh copy of its settings.
        """
        group = self._resolve(target)
        if not isinstance(group, Group):
            raise ValueError("split_leaf targets a group")
        validate_ratio(ratio)
        sibling = group.copy(max_media=1)
        split = Split(axis=axis, ratio=ratio, first=group, second=sibling)
        self._swap(group, split)
        change = LayoutChange(added=[sibling.id])
        if group.max_media != 1:
            group.max_media = 1
            change.reconfigured.append(group.id)
        return split, change

    def remove_split(self, target: Union[str, Split], survivor: ChildPosition) -> LayoutChange:
        split = self._resolve(target)
        if not isinstance(split, Split):
            raise ValueError("remove_split targets a split")
        kept = split.child(survivor)
        dropped = split.child(survivor.other)
        self._swap(split, kept)
        return LayoutChange(removed=[g.id for g in iter_groups(dropped)])

    def remove_group(self, target: Union[str, Group]) -> LayoutChange:
        """Close a pane: its parent split collapses into the sibling."""
        group = self._resolve(target)
        parent = self.parent_of(group)
        if parent is None:
            raise ValueError("cannot remove the only group")
        split, position = parent
        return self.remove_split(split, position.other)

    def update_group(self, target: Union[str, Group], **settings: Any) -> LayoutChange:
        group = self._resolve(target)
        if not isinstance(group, Group):
            raise ValueError("update_group targets a group")
        unknown = set(settings) - GROUP_SETTINGS
        if unknown:
            raise TypeError(f"unknown group settings: {', '.join(sorted(unknown))}")
        if "max_media" in settings:
            check_max_media(settings["max_media"])
        changed = False
        for name, value in settings.items():
            if name == "sources":
                value = list(value)
            if getattr(group, name) != value:
                setattr(group, name, value)
                changed = True
        return LayoutChange(reconfigured=[group.id] if changed else [])

    def set_ratio(self, target: Union[str, Split], ratio: float) -> bool:
        split = self._resolve(target)
        if not isinstance(split, Split):
            raise ValueError("set_ratio targets a split")
        validate_ratio(ratio)
        if split.ratio == ratio:
            return False
        split.ratio = ratio
        return True


__all__ = ["LayoutTree", "LayoutChange", "iter_groups", "iter_nodes"]
