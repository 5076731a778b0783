"""Slot scheduling, cross-player sync and the running session."""

from .player import Player, Slot, SlotState
from .scheduler import GroupScheduler
from .sync import SyncCoordinator

__all__ = ["GroupScheduler", "Player", "Slot", "SlotState", "SyncCoordinator"]
