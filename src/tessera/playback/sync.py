"""Relays play/pause/seek between players of the same media category."""
from __future__ import annotations

import logging
from typing import Dict, List

from ..media.backend import MediaBackend
from ..media.classify import MediaCategory
from .player import Player


logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Applies playback actions, broadcasting them per category when enabled.

    Holds references to live players only; a player must be unregistered
    before its backend handle is closed.
    """

    def __init__(self, backend: MediaBackend, enabled: bool = False) -> None:
        self._backend = backend
        self.enabled = enabled
        self._partitions: Dict[MediaCategory, List[Player]] = {
            MediaCategory.IMAGE: [],
            MediaCategory.AUDIO: [],
            MediaCategory.VIDEO: [],
        }

    def register(self, player: Player) -> None:
        members = self._partitions[player.category]
        if player not in members:
            members.append(player)

    def unregister(self, player: Player) -> None:
        members = self._partitions.get(player.category, [])
        if player in members:
            members.remove(player)

    def members(self, category: MediaCategory) -> List[Player]:
        return list(self._partitions.get(category, []))

    def is_registered(self, player: Player) -> bool:
        return player in self._partitions.get(player.category, [])

    def all_players(self) -> List[Player]:
        players: List[Player] = []
        for members in self._partitions.values():
            players.extend(members)
        return players

    def _targets(self, player: Player) -> List[Player]:
        if not self.enabled:
            return [player]
        peers = [p for p in self._partitions.get(player.category, []) if p is not player]
        return [player] + peers

    def play(self, player: Player) -> None:
        for target in self._targets(player):
            self._backend.play(target.handle)
            target.paused = False

    def pause(self, player: Player) -> None:
        for target in self._targets(player):
            self._backend.pause(target.handle)
            target.paused = True

    def seek(self, player: Player, position: float) -> None:
        """Seek ``player``; audio/video peers follow to the same absolute time."""
        self._seek_one(player, position)
        if not self.enabled or not player.category.has_timeline:
            return
        for peer in self._targets(player)[1:]:
            self._seek_one(peer, position)

    def _seek_one(self, player: Player, position: float) -> None:
        duration = self._backend.duration(player.handle)
        if duration is not None:
            player.duration = duration
        target = player.clamp(position)
        if target != position:
            logger.debug("Clamped seek for %s from %.2f to %.2f", player.path, position, target)
        self._backend.seek(player.handle, target)
        player.position = target


__all__ = ["SyncCoordinator"]
