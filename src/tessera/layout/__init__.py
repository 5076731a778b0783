"""Layout tree: recursive splits with media groups at the leaves."""

from .model import (
    ChildPosition,
    ContentFit,
    Group,
    Layout,
    Orientation,
    OrientationLimit,
    Split,
    SplitAxis,
    items_per_line,
    layout_from_dict,
)
from .playlist import PlaylistDocument
from .tree import LayoutChange, LayoutTree

__all__ = [
    "ChildPosition",
    "ContentFit",
    "Group",
    "Layout",
    "LayoutChange",
    "LayoutTree",
    "Orientation",
    "OrientationLimit",
    "PlaylistDocument",
    "Split",
    "SplitAxis",
    "items_per_line",
    "layout_from_dict",
]
