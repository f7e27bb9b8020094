"""
Displacement search ("slot stealing").

When an entrant's preferred slot is taken, try to relocate the occupant to
another acceptable slot, cascading through at most MAX_CHAIN_DEPTH moves.

Rules:
  - locked or frozen slots are never displaced
  - an occupant is bumped only by a strictly stronger claim on the slot:
    claim = (position of the slot in the player's list, priority rank),
    lower is stronger; players without a list have the weakest claim
  - so an occupant holding the slot as an earlier choice, or as the same
    choice with a better rank, is never displaced
  - a displaced player tries their own list in order, or every slot in
    ascending index when no list is known
  - each slot is visited at most once per search (breadth-first, so the
    shortest chain is found first)

find_move_chain() never mutates the schedule. apply_move_chain() commits a
chain found against the same schedule state.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import AbstractSet, Deque, Dict, List, Mapping, Optional, Tuple

from prep_appointments.services.day_schedule import DaySchedule, Move, PreferenceEntry, ScheduleError

logger = logging.getLogger(__name__)

MAX_CHAIN_DEPTH = 5

Claim = Tuple[float, float]
WEAKEST_CLAIM: Claim = (math.inf, math.inf)


def claim_strength(entry: Optional[PreferenceEntry], slot: int) -> Claim:
    """Strength of *entry*'s claim on *slot* (lower is stronger)."""
    if entry is None or not entry.preferred_slots:
        return WEAKEST_CLAIM
    try:
        position = entry.preferred_slots.index(slot)
    except ValueError:
        position = len(entry.preferred_slots)
    return (position, entry.priority_rank)


def relocation_candidates(schedule: DaySchedule, entry: Optional[PreferenceEntry]) -> List[int]:
    """Slots a displaced player may move to, best first."""
    if entry is not None and entry.preferred_slots:
        return [s for s in entry.preferred_slots if 1 <= s <= schedule.size]
    return list(range(1, schedule.size + 1))


def _can_displace(
    schedule: DaySchedule,
    slot: int,
    claim: Claim,
    entries_by_player: Mapping[str, PreferenceEntry],
    frozen_slots: AbstractSet[int],
) -> bool:
    if slot in frozen_slots or schedule.is_locked(slot):
        return False
    occupant = schedule.occupant_of(slot)
    if occupant is None:
        return False
    return claim < claim_strength(entries_by_player.get(occupant), slot)


def find_move_chain(
    schedule: DaySchedule,
    slot: int,
    claimant: PreferenceEntry,
    entries_by_player: Mapping[str, PreferenceEntry],
    frozen_slots: AbstractSet[int] = frozenset(),
    max_depth: int = MAX_CHAIN_DEPTH,
) -> Optional[List[Move]]:
    """
    Find the moves that free *slot* for *claimant*.

    Returns:
        [] if the slot is already free and usable,
        the ordered chain (first move vacates *slot*) on success,
        None if no chain of at most max_depth moves exists.
    """
    if slot in frozen_slots:
        return None
    if schedule.is_empty(slot):
        return []
    if not _can_displace(schedule, slot, claim_strength(claimant, slot), entries_by_player, frozen_slots):
        return None

    parent: Dict[int, Optional[int]] = {slot: None}
    queue: Deque[Tuple[int, int]] = deque([(slot, 1)])

    while queue:
        current, depth = queue.popleft()
        mover = entries_by_player.get(schedule.occupant_of(current))
        candidates = [
            c for c in relocation_candidates(schedule, mover)
            if c not in parent and c not in frozen_slots
        ]

        for candidate in candidates:
            if schedule.is_empty(candidate):
                return _build_chain(schedule, parent, current, candidate)

        if depth >= max_depth:
            continue

        for candidate in candidates:
            if _can_displace(schedule, candidate, claim_strength(mover, candidate), entries_by_player, frozen_slots):
                parent[candidate] = current
                queue.append((candidate, depth + 1))

    return None


def _build_chain(
    schedule: DaySchedule,
    parent: Dict[int, Optional[int]],
    last: int,
    destination: int,
) -> List[Move]:
    path = [last]
    while parent[path[-1]] is not None:
        path.append(parent[path[-1]])
    path.reverse()
    targets = path[1:] + [destination]
    return [
        Move(from_slot=source, player_id=schedule.occupant_of(source), to_slot=target)
        for source, target in zip(path, targets)
    ]


def apply_move_chain(schedule: DaySchedule, moves: List[Move]) -> None:
    """Commit a chain. Moves are applied last to first so each lands on an empty slot."""
    for move in moves:
        if schedule.occupant_of(move.from_slot) != move.player_id:
            raise ScheduleError(
                f"Stale move chain: slot {move.from_slot} no longer holds {move.player_id}"
            )
    if moves and not schedule.is_empty(moves[-1].to_slot):
        raise ScheduleError(f"Stale move chain: slot {moves[-1].to_slot} is no longer empty")

    for move in reversed(moves):
        schedule.move(move.from_slot, move.to_slot)

    if moves:
        logger.debug(
            "MOVE_CHAIN: day=%s moves=%s",
            schedule.day.value,
            " ".join(f"{m.player_id}:{m.from_slot}->{m.to_slot}" for m in moves),
        )
