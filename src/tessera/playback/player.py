"""Slots and the players bound to them."""
from __future__ import annotations

import enum
import itertools
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..media.classify import MediaCategory
from ..media.pool import Candidate


_player_ids = itertools.count(1)


class SlotState(enum.Enum):
    EMPTY = "empty"
    FILLED = "filled"
    EXHAUSTED = "exhausted"


@dataclass(eq=False)
class Player:
    """A candidate being played in a slot, with its backend handle."""

    group_id: str
    slot_index: int
    candidate: Candidate
    handle: Any
    muted: bool = False
    paused: bool = False
    looping: bool = False
    position: float = 0.0
    duration: Optional[float] = None
    player_id: int = field(default_factory=lambda: next(_player_ids))

    @property
    def category(self) -> MediaCategory:
        return self.candidate.category

    @property
    def path(self) -> Path:
        return self.candidate.path

    def clamp(self, position: float) -> float:
        """Limit ``position`` to this player's timeline."""
        position = max(0.0, position)
        if self.duration is not None:
            position = min(position, self.duration)
        return position


@dataclass(eq=False)
class Slot:
    index: int
    state: SlotState = SlotState.EMPTY
    player: Optional[Player] = None

    @property
    def is_filled(self) -> bool:
        return self.state is SlotState.FILLED

    @property
    def is_exhausted(self) -> bool:
        return self.state is SlotState.EXHAUSTED


__all__ = ["SlotState", "Player", "Slot"]
