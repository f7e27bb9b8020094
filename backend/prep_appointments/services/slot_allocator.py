"""
Generic slot allocator shared by all three day types.

Entries are processed by priority rank (stable, so ties keep submission
order). For each entry the preferred slots are walked in order:
  - empty slot          -> place
  - occupied slot       -> displacement search; place on success
  - frozen/locked slot  -> skip
An entry whose whole list fails is reported as unplaced (NO_CAPACITY).
Nothing here raises for allocation outcomes; only bad input raises.

Same inputs -> same schedule (no randomness, no clock).
"""

import logging
from typing import AbstractSet, Any, Dict, Iterable, List, Optional, Sequence

from prep_appointments.services.day_schedule import (
    DayType,
    DaySchedule,
    PreferenceEntry,
    ScheduledAppointment,
    SlotOccupied,
    SlotOutOfRange,
)
from prep_appointments.services.move_chain import MAX_CHAIN_DEPTH, apply_move_chain, find_move_chain

logger = logging.getLogger(__name__)

# Conflict reason codes
CONFLICT_DISPLACEMENT_EXHAUSTED = "DISPLACEMENT_EXHAUSTED"
CONFLICT_SLOT_LOCKED = "SLOT_LOCKED"
CONFLICT_SLOT_OUT_OF_RANGE = "SLOT_OUT_OF_RANGE"
UNPLACED_NO_CAPACITY = "NO_CAPACITY"


class AllocationResult:
    """Outcome of one allocate() call"""

    def __init__(self, schedule: DaySchedule):
        self.schedule = schedule
        self.placed: List[PreferenceEntry] = []
        self.unplaced: List[PreferenceEntry] = []
        self.skipped: List[PreferenceEntry] = []
        self.chains_committed = 0
        self.moves_committed = 0
        self.conflicts: List[Dict[str, Any]] = []

    @property
    def day(self) -> DayType:
        return self.schedule.day

    def add_conflict(self, entry: PreferenceEntry, slot: int, reason: str) -> None:
        self.conflicts.append({"player_id": entry.player_id, "slot": slot, "reason": reason})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day.value,
            "placed_count": len(self.placed),
            "unplaced_count": len(self.unplaced),
            "skipped_count": len(self.skipped),
            "chains_committed": self.chains_committed,
            "moves_committed": self.moves_committed,
            "unplaced": [
                {"player_id": e.player_id, "alliance": e.alliance, "name": e.name, "reason": UNPLACED_NO_CAPACITY}
                for e in self.unplaced
            ],
            "conflicts": self.conflicts,
        }


def sort_entries(entries: Iterable[PreferenceEntry]) -> List[PreferenceEntry]:
    """Ascending priority rank; sorted() is stable so submission order breaks ties."""
    return sorted(entries, key=lambda e: e.priority_rank)


def seed_predetermined(schedule: DaySchedule, entries: Iterable[PreferenceEntry]) -> List[PreferenceEntry]:
    """
    Place and lock every entry that carries a predetermined slot.

    An entry already sitting on its predetermined slot is left alone.

    Raises:
        SlotOccupied if another player holds the slot
        DuplicatePlayer if the player already holds a different slot
    """
    seeded: List[PreferenceEntry] = []
    for entry in sort_entries(entries):
        if entry.predetermined_slot is None:
            continue
        slot = entry.predetermined_slot
        occupant = schedule.occupant_of(slot)
        if occupant == entry.player_id:
            continue
        if occupant is not None:
            raise SlotOccupied(slot, occupant)
        schedule.place(slot, ScheduledAppointment.from_entry(entry, locked=True))
        seeded.append(entry)
        logger.debug("ALLOCATOR: day=%s predetermined player=%s slot=%d", schedule.day.value, entry.player_id, slot)
    return seeded


def _try_place(
    schedule: DaySchedule,
    entry: PreferenceEntry,
    entries_by_player: Dict[str, PreferenceEntry],
    frozen: AbstractSet[int],
    max_depth: int,
    result: AllocationResult,
) -> Optional[int]:
    for slot in entry.preferred_slots:
        if slot < 1 or slot > schedule.size:
            result.add_conflict(entry, slot, CONFLICT_SLOT_OUT_OF_RANGE)
            continue
        if slot in frozen:
            continue
        if schedule.is_empty(slot):
            schedule.place(slot, ScheduledAppointment.from_entry(entry))
            return slot
        if schedule.is_locked(slot):
            result.add_conflict(entry, slot, CONFLICT_SLOT_LOCKED)
            continue

        chain = find_move_chain(schedule, slot, entry, entries_by_player, frozen, max_depth)
        if chain is None:
            result.add_conflict(entry, slot, CONFLICT_DISPLACEMENT_EXHAUSTED)
            continue
        apply_move_chain(schedule, chain)
        schedule.place(slot, ScheduledAppointment.from_entry(entry))
        result.chains_committed += 1
        result.moves_committed += len(chain)
        return slot
    return None


def allocate(
    day: DayType,
    entries: Sequence[PreferenceEntry],
    schedule: DaySchedule,
    frozen_slots: Iterable[int] = (),
    max_depth: int = MAX_CHAIN_DEPTH,
) -> AllocationResult:
    """
    Fill *schedule* from *entries*. Mutates *schedule* in place.

    Args:
        day: Day type of the run (must match the schedule)
        entries: Preference entries for this day, any order
        schedule: Starting table; slots occupied on entry are frozen
        frozen_slots: Extra slots that must stay as they are (reserved bridge slots)
        max_depth: Longest displacement chain allowed

    Returns:
        AllocationResult with placed / unplaced entries and conflicts
    """
    if DayType(day) != schedule.day:
        raise ValueError(f"Schedule is for {schedule.day.value}, not {DayType(day).value}")
    for slot in frozen_slots:
        if slot < 1 or slot > schedule.size:
            raise SlotOutOfRange(f"Frozen slot {slot} is outside 1..{schedule.size}")

    result = AllocationResult(schedule)
    ordered = sort_entries(entries)

    # Pre-existing occupants can never move, neither can predetermined seeds
    frozen = set(frozen_slots) | set(schedule.occupied_slots())
    for entry in seed_predetermined(schedule, ordered):
        result.placed.append(entry)

    entries_by_player: Dict[str, PreferenceEntry] = {}
    for entry in ordered:
        entries_by_player.setdefault(entry.player_id, entry)

    for entry in ordered:
        if schedule.slot_of(entry.player_id) is not None:
            if entry not in result.placed:
                result.skipped.append(entry)
            continue
        slot = _try_place(schedule, entry, entries_by_player, frozen, max_depth, result)
        if slot is None:
            result.unplaced.append(entry)
            logger.debug("ALLOCATOR: day=%s unplaced player=%s", schedule.day.value, entry.player_id)
        else:
            result.placed.append(entry)

    logger.info(
        "ALLOCATOR: day=%s entries=%d placed=%d unplaced=%d chains=%d",
        schedule.day.value,
        len(ordered),
        len(result.placed),
        len(result.unplaced),
        result.chains_committed,
    )
    return result
