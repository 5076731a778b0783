"""No-repeat random scheduling of one group's slots.

A scheduler draws candidates from its group's pool without replacement:
within a cycle nothing is shown twice, and once every candidate has been
used (and scanning is done) a new cycle starts if looping is enabled.
Fills never wait for a scan; a slot with nothing to play stays empty until
the pool grows, and only becomes exhausted once every source is complete.
"""
from __future__ import annotations

import logging
import random
from typing import Callable, Collection, Dict, List, Optional, Set

from ..core.errors import MediaIoError, NoMediaAvailable, UnsupportedFormat
from ..media.backend import MediaBackend
from ..media.pool import Candidate, CandidatePool
from .player import Player, Slot, SlotState
from .sync import SyncCoordinator


logger = logging.getLogger(__name__)

ExhaustedCallback = Callable[[str], None]
SlotChangedCallback = Callable[[str, int], None]


class GroupScheduler:
    def __init__(
        self,
        group_id: str,
        backend: MediaBackend,
        coordinator: SyncCoordinator,
        pool: CandidatePool,
        slot_count: int = 1,
        rng: Optional[random.Random] = None,
        loop_pool: bool = True,
        muted: bool = False,
        paused: bool = False,
        on_exhausted: Optional[ExhaustedCallback] = None,
        on_slot_changed: Optional[SlotChangedCallback] = None,
    ) -> None:
        self.group_id = group_id
        self.loop_pool = loop_pool
        self.muted = muted
        self.paused = paused
        self._backend = backend
        self._coordinator = coordinator
        self._rng = rng or random.Random()
        self._on_exhausted = on_exhausted
        self._on_slot_changed = on_slot_changed
        self._slots: List[Slot] = [Slot(index) for index in range(slot_count)]
        self._in_use: Dict[str, Slot] = {}
        self._consumed: Set[str] = set()
        self._dead: Set[str] = set()
        self._filling = False
        self._pool = pool
        pool.subscribe(self._on_pool_changed)

    # Queries

    @property
    def pool(self) -> CandidatePool:
        return self._pool

    @property
    def slots(self) -> List[Slot]:
        return list(self._slots)

    def slot(self, index: int) -> Slot:
        return self._slots[index]

    def players(self) -> List[Player]:
        return [slot.player for slot in self._slots if slot.player is not None]

    def find_player(self, handle: object) -> Optional[Player]:
        for player in self.players():
            if player.handle is handle:
                return player
        return None

    def in_use(self) -> Set[str]:
        return set(self._in_use)

    def consumed(self) -> Set[str]:
        return set(self._consumed)

    def dead(self) -> Set[str]:
        return set(self._dead)

    def available(self) -> List[Candidate]:
        """Entries that may be drawn right now, in pool order."""
        return [
            candidate
            for candidate in self._pool.entries()
            if candidate.key not in self._consumed and candidate.key not in self._dead
        ]

    def pending_count(self) -> int:
        """Filled plus empty slots; exhausted ones take no space."""
        return sum(1 for slot in self._slots if slot.state is not SlotState.EXHAUSTED)

    @property
    def exhausted(self) -> bool:
        return bool(self._slots) and all(slot.is_exhausted for slot in self._slots)

    # Filling

    def _reset_cycle(self) -> bool:
        """Start a new cycle if the previous one is finished; True if anything opened up."""
        if not self.loop_pool or not self._pool.scan_complete:
            return False
        live = {c.key for c in self._pool.entries() if c.key not in self._dead}
        if not live or not live <= self._consumed:
            return False
        logger.debug("Group %s finished a cycle of %d candidates", self.group_id, len(live))
        self._consumed = set(self._in_use)
        return bool(live - self._consumed)

    def _pick(self, avoid: Collection[str]) -> Optional[Candidate]:
        choices = self.available()
        if not choices and self._reset_cycle():
            choices = self.available()
        if not choices:
            return None
        preferred = [candidate for candidate in choices if candidate.key not in avoid]
        return self._rng.choice(preferred or choices)

    def fill_slot(
        self,
        index: int,
        muted: Optional[bool] = None,
        avoid: Collection[str] = (),
        notify: bool = True,
    ) -> SlotState:
        """Bind a random available candidate to an empty or exhausted slot.

        Returns the slot's resulting state. Candidates the backend refuses
        are marked dead and skipped within the same fill.

        Raises:
            ValueError: if the slot is already filled.
        """
        slot = self._slots[index]
        if slot.is_filled:
            raise ValueError(f"slot {index} of group {self.group_id} is already filled")
        previous = slot.state
        muted = self.muted if muted is None else muted

        while True:
            candidate = self._pick(avoid)
            if candidate is None:
                break
            try:
                handle = self._backend.open(candidate.path, candidate.category)
            except (UnsupportedFormat, MediaIoError) as exc:
                logger.warning("Skipping %s: %s", candidate.path, exc)
                self._dead.add(candidate.key)
                continue
            self._bind(slot, candidate, handle, muted)
            return slot.state

        if self._pool.scan_complete:
            slot.state = SlotState.EXHAUSTED
            if previous is not SlotState.EXHAUSTED:
                logger.info("Group %s slot %d exhausted", self.group_id, index)
                if notify:
                    self._emit_exhausted()
        else:
            slot.state = SlotState.EMPTY
        if slot.state is not previous:
            self._slot_changed(index)
        return slot.state

    def _bind(self, slot: Slot, candidate: Candidate, handle: object, muted: bool) -> None:
        player = Player(self.group_id, slot.index, candidate, handle, muted=muted, paused=self.paused)
        self._in_use[candidate.key] = slot
        self._consumed.add(candidate.key)
        slot.player = player
        slot.state = SlotState.FILLED
        self._backend.set_muted(handle, muted)
        self._coordinator.register(player)
        if not self.paused:
            self._backend.play(handle)
        logger.debug("Group %s slot %d playing %s", self.group_id, slot.index, candidate.path)
        self._slot_changed(slot.index)

    def fill_empty_slots(self) -> int:
        """Try every empty or exhausted slot; returns how many were filled."""
        if self._filling:
            return 0
        self._filling = True
        filled = 0
        newly_exhausted = False
        try:
            for slot in list(self._slots):
                if slot.is_filled:
                    continue
                before = slot.state
                after = self.fill_slot(slot.index, notify=False)
                if after is SlotState.FILLED:
                    filled += 1
                elif after is SlotState.EXHAUSTED and before is not SlotState.EXHAUSTED:
                    newly_exhausted = True
        finally:
            self._filling = False
        if newly_exhausted:
            self._emit_exhausted()
        return filled

    def _on_pool_changed(self, pool: CandidatePool) -> None:
        self.fill_empty_slots()

    # Releasing

    def release_slot(self, index: int) -> Optional[Player]:
        """Unbind a slot's player and leave the slot empty."""
        slot = self._slots[index]
        player = slot.player
        if player is None:
            slot.state = SlotState.EMPTY
            return None
        self._coordinator.unregister(player)
        self._backend.close(player.handle)
        self._in_use.pop(player.candidate.key, None)
        slot.player = None
        slot.state = SlotState.EMPTY
        self._slot_changed(index)
        return player

    def handle_end(self, player: Player) -> None:
        """End of media: loop the player, or replace it with a new candidate."""
        slot = self._slots[player.slot_index] if player.slot_index < len(self._slots) else None
        if slot is None or slot.player is not player:
            return
        if player.looping:
            self._backend.seek(player.handle, 0.0)
            player.position = 0.0
            if not player.paused:
                self._backend.play(player.handle)
            return
        self.release_slot(slot.index)
        self.fill_slot(slot.index, muted=player.muted, avoid={player.candidate.key})

    def handle_failure(self, player: Player, error: Exception) -> None:
        """The backend gave up on a player after it was opened."""
        slot = self._slots[player.slot_index] if player.slot_index < len(self._slots) else None
        if slot is None or slot.player is not player:
            return
        logger.warning("Player for %s failed: %s", player.path, error)
        self._dead.add(player.candidate.key)
        self.release_slot(slot.index)
        self.fill_slot(slot.index, muted=player.muted)

    def refresh(self) -> None:
        """Replace every player, preferring media that was not just shown."""
        shown = set(self._in_use)
        muted = {slot.index: slot.player.muted for slot in self._slots if slot.player is not None}
        for slot in self._slots:
            self.release_slot(slot.index)
        newly_exhausted = False
        for slot in self._slots:
            state = self.fill_slot(slot.index, muted=muted.get(slot.index), avoid=shown, notify=False)
            newly_exhausted = newly_exhausted or state is SlotState.EXHAUSTED
        if newly_exhausted:
            self._emit_exhausted()

    # Slot set changes

    def add_slot(self) -> Slot:
        """Append a slot and fill it.

        Raises:
            NoMediaAvailable: when scanning is complete and nothing is free.
        """
        slot = Slot(len(self._slots))
        self._slots.append(slot)
        state = self.fill_slot(slot.index, notify=False)
        if state is SlotState.EXHAUSTED:
            self._slots.pop()
            raise NoMediaAvailable(f"No media available for group {self.group_id}")
        return slot

    def close_slot(self, index: int) -> None:
        self.release_slot(index)
        del self._slots[index]
        for position, slot in enumerate(self._slots):
            slot.index = position
            if slot.player is not None:
                slot.player.slot_index = position

    def resize(self, count: int) -> None:
        """Change the number of slots, keeping existing players where possible."""
        if count < 0:
            raise ValueError("slot count must be non-negative")
        while len(self._slots) > count:
            self.close_slot(len(self._slots) - 1)
        if len(self._slots) < count:
            self._slots.extend(Slot(index) for index in range(len(self._slots), count))
            self.fill_empty_slots()

    def set_looping(self, player: Player, looping: bool) -> None:
        player.looping = looping

    def set_muted(self, player: Player, muted: bool) -> None:
        self._backend.set_muted(player.handle, muted)
        player.muted = muted

    def random_position(self, player: Player) -> Optional[float]:
        duration = self._backend.duration(player.handle)
        if duration is None or duration <= 0:
            return None
        player.duration = duration
        return self._rng.uniform(0.0, duration)

    def tick(self) -> None:
        for player in self.players():
            player.position = self._backend.position(player.handle)
            duration = self._backend.duration(player.handle)
            if duration is not None:
                player.duration = duration

    def start(self) -> None:
        self.fill_empty_slots()

    def teardown(self) -> None:
        """Release every slot and detach from the pool."""
        self._pool.unsubscribe(self._on_pool_changed)
        for slot in self._slots:
            if slot.player is not None:
                self.release_slot(slot.index)
        self._in_use.clear()
        self._consumed.clear()
        self._dead.clear()

    def _emit_exhausted(self) -> None:
        if self._on_exhausted is not None:
            self._on_exhausted(self.group_id)

    def _slot_changed(self, index: int) -> None:
        if self._on_slot_changed is not None:
            self._on_slot_changed(self.group_id, index)


__all__ = ["GroupScheduler"]
