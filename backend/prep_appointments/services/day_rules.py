"""
Day-specific rules around the generic allocator.

Construction: the last slot is the bridge to Research slot 1. When the week
is generated together, bridge candidates (entries whose Research entry lists
slot 1) get the last slot first: the highest-priority candidate listing it
is placed and locked before the queue runs. Without such a candidate the
slot is an ordinary slot for the generic allocator, except for players who
cannot also take Research slot 1. Whoever ends up on it is the bridge player.

Research: slot 1 is seeded and locked for the Construction bridge player
before any entry is processed (or kept empty when the bridge is empty).

Troops: generic allocator only.
"""

import logging
from dataclasses import dataclass, replace
from typing import AbstractSet, Iterable, List, Optional, Sequence, Set

from prep_appointments.services.day_schedule import (
    BridgeConflict,
    DayType,
    DaySchedule,
    PreferenceEntry,
    ScheduledAppointment,
)
from prep_appointments.services.slot_allocator import AllocationResult, allocate, seed_predetermined, sort_entries

logger = logging.getLogger(__name__)

RESEARCH_BRIDGE_SLOT = 1


@dataclass(frozen=True)
class BridgeLink:
    """Player on Construction's last slot, mirrored to Research slot 1."""
    player_id: Optional[str] = None
    alliance: str = ""
    name: str = ""

    @property
    def is_empty(self) -> bool:
        return self.player_id is None

    def appointment(self) -> ScheduledAppointment:
        return ScheduledAppointment(player_id=self.player_id, alliance=self.alliance, name=self.name, locked=True)

    @classmethod
    def from_appointment(cls, appointment: Optional[ScheduledAppointment]) -> "BridgeLink":
        if appointment is None:
            return cls()
        return cls(player_id=appointment.player_id, alliance=appointment.alliance, name=appointment.name)


def construction_bridge_slot(schedule: DaySchedule) -> int:
    return schedule.size


def _seed_bridge(schedule: DaySchedule, slot: int, bridge: BridgeLink) -> None:
    occupant = schedule.occupant_of(slot)
    if occupant == bridge.player_id:
        return
    if occupant is not None:
        raise BridgeConflict(
            f"{schedule.day.value} slot {slot} holds {occupant}, bridge player is {bridge.player_id}"
        )
    existing = schedule.slot_of(bridge.player_id)
    if existing is not None:
        raise BridgeConflict(
            f"Bridge player {bridge.player_id} already holds {schedule.day.value} slot {existing}"
        )
    schedule.place(slot, bridge.appointment())


def _without_slot(entry: PreferenceEntry, slot: int) -> PreferenceEntry:
    return replace(entry, preferred_slots=tuple(s for s in entry.preferred_slots if s != slot))


def schedule_construction_day(
    entries: Sequence[PreferenceEntry],
    schedule: DaySchedule,
    frozen_slots: Iterable[int] = (),
    bridge_candidates: Optional[AbstractSet[str]] = None,
    fixed_bridge: Optional[BridgeLink] = None,
    bridge_excluded: AbstractSet[str] = frozenset(),
) -> "DayRunResult":
    """
    Construction day.

    Args:
        bridge_candidates: player ids allowed on the bridge slot. None runs
            the day standalone (last slot is an ordinary slot).
        fixed_bridge: bridge player already decided (predetermined or prior
            run); seeded instead of the priority pre-rule.
        bridge_excluded: player ids that may not end up on the bridge slot
            (they hold or are predetermined for another Research slot).
    """
    bridge_slot = construction_bridge_slot(schedule)
    frozen: Set[int] = set(frozen_slots)
    seed_predetermined(schedule, entries)
    paired = bridge_candidates is not None or fixed_bridge is not None

    if fixed_bridge is not None and not fixed_bridge.is_empty:
        _seed_bridge(schedule, bridge_slot, fixed_bridge)
    elif bridge_candidates is not None and schedule.is_empty(bridge_slot) and bridge_slot not in frozen:
        for entry in sort_entries(entries):
            if bridge_slot not in entry.preferred_slots or entry.player_id not in bridge_candidates:
                continue
            if entry.player_id in bridge_excluded:
                continue
            if schedule.slot_of(entry.player_id) is not None:
                continue
            schedule.place(bridge_slot, ScheduledAppointment.from_entry(entry, locked=True))
            logger.info("CONSTRUCTION: bridge slot %d -> player=%s", bridge_slot, entry.player_id)
            break

    if paired and not schedule.is_empty(bridge_slot):
        frozen.add(bridge_slot)
    elif paired and bridge_excluded:
        entries = [_without_slot(e, bridge_slot) if e.player_id in bridge_excluded else e for e in entries]

    allocation = allocate(DayType.construction, entries, schedule, frozen)
    bridge = BridgeLink.from_appointment(schedule.appointment_at(bridge_slot)) if paired else None
    if paired:
        logger.info("CONSTRUCTION: bridge player=%s", bridge.player_id)
    return DayRunResult(allocation=allocation, bridge=bridge)


def schedule_research_day(
    entries: Sequence[PreferenceEntry],
    schedule: DaySchedule,
    frozen_slots: Iterable[int] = (),
    bridge: Optional[BridgeLink] = None,
) -> "DayRunResult":
    """
    Research day. With a bridge link, slot 1 belongs to the bridge player
    (or stays empty); None runs the day standalone.
    """
    frozen: Set[int] = set(frozen_slots)
    if bridge is not None:
        for entry in entries:
            if entry.predetermined_slot == RESEARCH_BRIDGE_SLOT and entry.player_id != bridge.player_id:
                raise BridgeConflict(
                    f"Research slot 1 is predetermined for {entry.player_id}, bridge player is {bridge.player_id}"
                )
            if entry.player_id == bridge.player_id and entry.predetermined_slot not in (None, RESEARCH_BRIDGE_SLOT):
                raise BridgeConflict(
                    f"Bridge player {entry.player_id} is predetermined for research slot {entry.predetermined_slot}"
                )
        if not bridge.is_empty:
            _seed_bridge(schedule, RESEARCH_BRIDGE_SLOT, bridge)
            logger.info("RESEARCH: slot 1 locked for bridge player=%s", bridge.player_id)
        elif not schedule.is_empty(RESEARCH_BRIDGE_SLOT):
            raise BridgeConflict(
                f"Research slot 1 holds {schedule.occupant_of(RESEARCH_BRIDGE_SLOT)} but the construction bridge is empty"
            )
        frozen.add(RESEARCH_BRIDGE_SLOT)

    allocation = allocate(DayType.research, entries, schedule, frozen)
    return DayRunResult(allocation=allocation, bridge=bridge)


def schedule_troops_day(
    entries: Sequence[PreferenceEntry],
    schedule: DaySchedule,
    frozen_slots: Iterable[int] = (),
) -> "DayRunResult":
    return DayRunResult(allocation=allocate(DayType.troops, entries, schedule, frozen_slots))


@dataclass
class DayRunResult:
    allocation: AllocationResult
    bridge: Optional[BridgeLink] = None

    @property
    def schedule(self) -> DaySchedule:
        return self.allocation.schedule

    @property
    def unplaced(self) -> List[PreferenceEntry]:
        return self.allocation.unplaced
