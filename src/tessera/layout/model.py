"""Layout data model: splits, groups and their enum settings."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from ..media.source import Source, source_from_dict


def new_id() -> str:
    return uuid4().hex


class SplitAxis(enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class Orientation(enum.Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


class ContentFit(enum.Enum):
    """How media is fitted into its cell."""

    SCALE = "scale"
    SCALE_DOWN = "scale_down"
    CROP = "crop"
    STRETCH = "stretch"


class ChildPosition(enum.Enum):
    FIRST = "first"
    SECOND = "second"

    @property
    def other(self) -> "ChildPosition":
        return ChildPosition.SECOND if self is ChildPosition.FIRST else ChildPosition.FIRST


@dataclass(frozen=True)
class OrientationLimit:
    """``fixed`` items per line, or automatic when ``None``."""

    fixed: Optional[int] = None
    DEFAULT_FIXED = 4

    def __post_init__(self) -> None:
        if self.fixed is not None and self.fixed < 1:
            raise ValueError("fixed orientation limit must be at least 1")

    @classmethod
    def automatic(cls) -> "OrientationLimit":
        return cls(None)

    @property
    def is_fixed(self) -> bool:
        return self.fixed is not None

    def resolve(self, count: int) -> int:
        return self.fixed if self.fixed is not None else items_per_line(count)

    def to_value(self) -> Any:
        return "automatic" if self.fixed is None else {"fixed": self.fixed}

    @classmethod
    def from_value(cls, value: Any) -> "OrientationLimit":
        if value == "automatic":
            return cls(None)
        if isinstance(value, dict) and set(value) == {"fixed"}:
            fixed = value["fixed"]
            if isinstance(fixed, bool) or not isinstance(fixed, int):
                raise ValueError(f"fixed orientation limit must be an integer, got {fixed!r}")
            return cls(fixed)
        raise ValueError(f"invalid orientation_limit: {value!r}")


def items_per_line(count: int) -> int:
    """Smallest n with n * n >= count, so cells stay roughly square."""
    limit = 1
    while count > limit * limit:
        limit += 1
    return limit


@dataclass
class Group:
    sources: List[Source] = field(default_factory=list)
    max_media: int = 1
    content_fit: ContentFit = ContentFit.SCALE
    orientation: Orientation = Orientation.HORIZONTAL
    orientation_limit: OrientationLimit = field(default_factory=OrientationLimit.automatic)
    id: str = field(default_factory=new_id, compare=False, repr=False)

    def copy(self, **changes: Any) -> "Group":
        """Equivalent group with a fresh id."""
        values: Dict[str, Any] = {
            "sources": list(self.sources),
            "max_media": self.max_media,
            "content_fit": self.content_fit,
            "orientation": self.orientation,
            "orientation_limit": self.orientation_limit,
        }
        values.update(changes)
        return Group(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group": {
                "sources": [source.to_dict() for source in self.sources],
                "max_media": self.max_media,
                "content_fit": self.content_fit.value,
                "orientation": self.orientation.value,
                "orientation_limit": self.orientation_limit.to_value(),
            }
        }


@dataclass
class Split:
    axis: SplitAxis = SplitAxis.HORIZONTAL
    ratio: float = 0.5
    first: "Layout" = field(default_factory=Group)
    second: "Layout" = field(default_factory=Group)
    id: str = field(default_factory=new_id, compare=False, repr=False)

    def __post_init__(self) -> None:
        validate_ratio(self.ratio)

    def child(self, position: ChildPosition) -> "Layout":
        return self.first if position is ChildPosition.FIRST else self.second

    def set_child(self, position: ChildPosition, node: "Layout") -> None:
        if position is ChildPosition.FIRST:
            self.first = node
        else:
            self.second = node

    def to_dict(self) -> Dict[str, Any]:
        return {
            "split": {
                "axis": self.axis.value,
                "ratio": self.ratio,
                "first": self.first.to_dict(),
                "second": self.second.to_dict(),
            }
        }


Layout = Union[Split, Group]


def validate_ratio(ratio: float) -> float:
    if isinstance(ratio, bool) or not isinstance(ratio, (int, float)):
        raise ValueError(f"ratio must be a number, got {ratio!r}")
    if not 0.0 <= float(ratio) <= 1.0:
        raise ValueError(f"ratio must be within [0, 1], got {ratio}")
    return float(ratio)


def _enum(enum_cls: Any, value: Any, name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ValueError(f"{name} must be one of {choices}, got {value!r}") from None


def check_max_media(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"max_media must be a non-negative integer, got {value!r}")
    return value


def group_from_dict(data: Any) -> Group:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"group must be a mapping, got {data!r}")
    defaults = Group()
    sources_raw = data.get("sources", [])
    if not isinstance(sources_raw, list):
        raise ValueError("sources must be a list")
    max_media = check_max_media(data.get("max_media", defaults.max_media))
    limit_raw = data.get("orientation_limit")
    return Group(
        sources=[source_from_dict(item) for item in sources_raw],
        max_media=max_media,
        content_fit=_enum(ContentFit, data.get("content_fit", defaults.content_fit.value), "content_fit"),
        orientation=_enum(Orientation, data.get("orientation", defaults.orientation.value), "orientation"),
        orientation_limit=(
            defaults.orientation_limit if limit_raw is None else OrientationLimit.from_value(limit_raw)
        ),
    )


def split_from_dict(data: Any) -> Split:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"split must be a mapping, got {data!r}")
    return Split(
        axis=_enum(SplitAxis, data.get("axis", SplitAxis.HORIZONTAL.value), "axis"),
        ratio=validate_ratio(data.get("ratio", 0.5)),
        first=layout_from_dict(data["first"]) if "first" in data else Group(),
        second=layout_from_dict(data["second"]) if "second" in data else Group(),
    )


def layout_from_dict(data: Any) -> Layout:
    """Parse ``{"group": {...}}`` or ``{"split": {...}}``.

    Raises:
        ValueError: describing the first problem found.
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f"layout must have exactly one of 'group' or 'split', got {data!r}")
    kind, body = next(iter(data.items()))
    if kind == "group":
        return group_from_dict(body)
    if kind == "split":
        return split_from_dict(body)
    raise ValueError(f"unknown layout kind: {kind!r}")


__all__ = [
    "SplitAxis",
    "Orientation",
    "ContentFit",
    "ChildPosition",
    "OrientationLimit",
    "Group",
    "Split",
    "Layout",
    "items_per_line",
    "layout_from_dict",
    "validate_ratio",
    "check_max_media",
]
