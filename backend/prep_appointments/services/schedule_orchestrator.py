"""
Schedule Orchestrator - one entry point per day, plus the full week.

generate_schedule() runs one day in Replace or Append mode.
generate_week() runs Construction -> Research -> Troops and keeps the
Construction last slot and Research slot 1 on the same player.

Append mode:
  - the prior day's occupied slots are copied and frozen (never evicted)
  - entries of players already scheduled that day are skipped
  - re-running with the same inputs returns the same schedule

Input conflicts abort before any allocation:
  - predetermined slot held by someone else in the prior schedule -> SlotOccupied
  - bridge disagreement -> BridgeConflict
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Any, Dict, List, Mapping, Optional, Sequence, Set

from prep_appointments.services.day_rules import (
    RESEARCH_BRIDGE_SLOT,
    BridgeLink,
    DayRunResult,
    schedule_construction_day,
    schedule_research_day,
    schedule_troops_day,
)
from prep_appointments.services.day_schedule import (
    DEFAULT_DAY_SIZE,
    BridgeConflict,
    DaySchedule,
    DayType,
    PreferenceEntry,
    SlotOccupied,
    WeekSchedule,
    new_schedule,
)
from prep_appointments.services.slot_allocator import AllocationResult

logger = logging.getLogger(__name__)


class GenerationMode(str, Enum):
    replace = "replace"
    append = "append"


# ============================================================================
# Result Models
# ============================================================================


@dataclass
class GenerationResult:
    day: DayType
    schedule: DaySchedule
    unplaced: List[PreferenceEntry]
    allocation: AllocationResult
    bridge: Optional[BridgeLink] = None

    def to_dict(self) -> Dict[str, Any]:
        result = self.allocation.to_dict()
        if self.bridge is not None:
            result["bridge_player_id"] = self.bridge.player_id
        return result


@dataclass
class WeekGenerationResult:
    week: WeekSchedule
    mode: GenerationMode
    days: Dict[DayType, GenerationResult] = field(default_factory=dict)

    @property
    def unplaced(self) -> Dict[DayType, List[PreferenceEntry]]:
        return {day: result.unplaced for day, result in self.days.items()}

    @property
    def bridge(self) -> BridgeLink:
        return self.days[DayType.construction].bridge or BridgeLink()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "bridge_player_id": self.bridge.player_id,
            "days": {day.value: result.to_dict() for day, result in self.days.items()},
            "total_unplaced": sum(len(r.unplaced) for r in self.days.values()),
        }


# ============================================================================
# Single day
# ============================================================================


def _check_predetermined_against_prior(
    schedule: DaySchedule,
    entries: Sequence[PreferenceEntry],
    bridge_slots: Set[int],
) -> None:
    for entry in entries:
        if entry.predetermined_slot is None:
            continue
        occupant = schedule.occupant_of(entry.predetermined_slot)
        if occupant is None or occupant == entry.player_id:
            continue
        if entry.predetermined_slot in bridge_slots:
            raise BridgeConflict(
                f"{schedule.day.value} bridge slot {entry.predetermined_slot} already holds {occupant}, "
                f"cannot predetermine it for {entry.player_id}"
            )
        raise SlotOccupied(entry.predetermined_slot, occupant)


def generate_schedule(
    day: DayType,
    entries: Sequence[PreferenceEntry],
    mode: GenerationMode = GenerationMode.replace,
    prior: Optional[DaySchedule] = None,
    *,
    bridge_candidates: Optional[Set[str]] = None,
    fixed_bridge: Optional[BridgeLink] = None,
    bridge: Optional[BridgeLink] = None,
    bridge_excluded: AbstractSet[str] = frozenset(),
    size: int = DEFAULT_DAY_SIZE,
) -> GenerationResult:
    """
    Generate one day's schedule.

    Args:
        day: Day type
        entries: Validated preference entries for that day
        mode: Replace starts empty; Append keeps prior's occupants
        prior: Previous schedule of the same day (Append only)
        bridge_candidates: Construction only, enables the bridge pre-rule
        fixed_bridge: Construction only, bridge player decided up front
        bridge_excluded: Construction only, players kept off the bridge slot
        bridge: Research only, link produced by the Construction run
        size: Slot count for a fresh schedule

    Returns:
        GenerationResult (prior is never mutated)
    """
    day = DayType(day)
    mode = GenerationMode(mode)
    pending = list(entries)

    if mode == GenerationMode.append and prior is not None:
        if prior.day != day:
            raise ValueError(f"Prior schedule is for {prior.day.value}, not {day.value}")
        schedule = prior.copy()
        scheduled = set(schedule.player_ids())
        pending = [e for e in pending if e.player_id not in scheduled]
        bridge_slots: Set[int] = set()
        if day == DayType.construction and (bridge_candidates is not None or fixed_bridge is not None):
            bridge_slots.add(schedule.size)
        if day == DayType.research and bridge is not None:
            bridge_slots.add(RESEARCH_BRIDGE_SLOT)
        _check_predetermined_against_prior(schedule, pending, bridge_slots)
    else:
        schedule = new_schedule(day, size)

    frozen = schedule.occupied_slots()
    if day == DayType.construction:
        run: DayRunResult = schedule_construction_day(
            pending,
            schedule,
            frozen,
            bridge_candidates=bridge_candidates,
            fixed_bridge=fixed_bridge,
            bridge_excluded=bridge_excluded,
        )
    elif day == DayType.research:
        run = schedule_research_day(pending, schedule, frozen, bridge=bridge)
    else:
        run = schedule_troops_day(pending, schedule, frozen)

    logger.info(
        "ORCHESTRATOR: day=%s mode=%s entries=%d skipped=%d placed=%d unplaced=%d",
        day.value,
        mode.value,
        len(entries),
        len(entries) - len(pending) + len(run.allocation.skipped),
        len(run.allocation.placed),
        len(run.unplaced),
    )
    return GenerationResult(
        day=day,
        schedule=run.schedule,
        unplaced=list(run.unplaced),
        allocation=run.allocation,
        bridge=run.bridge,
    )


# ============================================================================
# Full week
# ============================================================================


def resolve_fixed_bridge(
    construction_entries: Sequence[PreferenceEntry],
    research_entries: Sequence[PreferenceEntry],
    construction_size: int = DEFAULT_DAY_SIZE,
    prior_week: Optional[WeekSchedule] = None,
) -> Optional[BridgeLink]:
    """
    Bridge player fixed before allocation: predetermined Construction last
    slot, predetermined Research slot 1, or (Append) the prior bridge.

    Raises:
        BridgeConflict when those sources name different players, or when
        the bridge player is predetermined somewhere else
    """
    sources: List[tuple] = []
    for entry in construction_entries:
        if entry.predetermined_slot == construction_size:
            sources.append(("predetermined construction", BridgeLink(entry.player_id, entry.alliance, entry.name)))
    for entry in research_entries:
        if entry.predetermined_slot == RESEARCH_BRIDGE_SLOT:
            sources.append(("predetermined research", BridgeLink(entry.player_id, entry.alliance, entry.name)))
    if prior_week is not None:
        for label, appointment in (
            ("prior construction", prior_week.construction.appointment_at(prior_week.construction.size)),
            ("prior research", prior_week.research.appointment_at(RESEARCH_BRIDGE_SLOT)),
        ):
            if appointment is not None:
                sources.append((label, BridgeLink.from_appointment(appointment)))

    players = {link.player_id for _, link in sources}
    if len(players) > 1:
        described = ", ".join(f"{label}={link.player_id}" for label, link in sources)
        raise BridgeConflict(f"Bridge slots name different players: {described}")
    if not sources:
        return None

    link = sources[0][1]
    for entry in construction_entries:
        if entry.player_id == link.player_id and entry.predetermined_slot not in (None, construction_size):
            raise BridgeConflict(
                f"Bridge player {link.player_id} is predetermined for construction slot {entry.predetermined_slot}"
            )
    for entry in research_entries:
        if entry.player_id == link.player_id and entry.predetermined_slot not in (None, RESEARCH_BRIDGE_SLOT):
            raise BridgeConflict(
                f"Bridge player {link.player_id} is predetermined for research slot {entry.predetermined_slot}"
            )
    return link


def generate_week(
    entries_by_day: Mapping[DayType, Sequence[PreferenceEntry]],
    mode: GenerationMode = GenerationMode.replace,
    prior_week: Optional[WeekSchedule] = None,
    sizes: Optional[Mapping[DayType, int]] = None,
) -> WeekGenerationResult:
    """Generate all three days. Construction runs before Research (bridge)."""
    mode = GenerationMode(mode)
    sizes = dict(sizes or {})
    append_prior = prior_week if mode == GenerationMode.append else None

    construction_entries = list(entries_by_day.get(DayType.construction, ()))
    research_entries = list(entries_by_day.get(DayType.research, ()))
    troops_entries = list(entries_by_day.get(DayType.troops, ()))

    construction_size = (
        append_prior.construction.size
        if append_prior is not None
        else sizes.get(DayType.construction, DEFAULT_DAY_SIZE)
    )
    fixed_bridge = resolve_fixed_bridge(construction_entries, research_entries, construction_size, append_prior)
    bridge_candidates = {e.player_id for e in research_entries if RESEARCH_BRIDGE_SLOT in e.preferred_slots}
    # players tied to another Research slot cannot also hold Research slot 1
    bridge_excluded = {
        e.player_id for e in research_entries if e.predetermined_slot not in (None, RESEARCH_BRIDGE_SLOT)
    }
    if append_prior is not None:
        for slot, appointment in append_prior.research.rows():
            if appointment is not None and slot != RESEARCH_BRIDGE_SLOT:
                bridge_excluded.add(appointment.player_id)

    def _prior(day: DayType) -> Optional[DaySchedule]:
        return append_prior.for_day(day) if append_prior is not None else None

    construction = generate_schedule(
        DayType.construction,
        construction_entries,
        mode,
        _prior(DayType.construction),
        bridge_candidates=bridge_candidates,
        fixed_bridge=fixed_bridge,
        bridge_excluded=bridge_excluded,
        size=construction_size,
    )
    research = generate_schedule(
        DayType.research,
        research_entries,
        mode,
        _prior(DayType.research),
        bridge=construction.bridge,
        size=sizes.get(DayType.research, DEFAULT_DAY_SIZE),
    )
    troops = generate_schedule(
        DayType.troops,
        troops_entries,
        mode,
        _prior(DayType.troops),
        size=sizes.get(DayType.troops, DEFAULT_DAY_SIZE),
    )

    week = WeekSchedule(construction=construction.schedule, research=research.schedule, troops=troops.schedule)
    last_construction, first_research = week.bridge_players()
    if last_construction != first_research:
        raise BridgeConflict(
            f"Bridge out of sync after generation: construction={last_construction} research={first_research}"
        )

    return WeekGenerationResult(
        week=week,
        mode=mode,
        days={DayType.construction: construction, DayType.research: research, DayType.troops: troops},
    )
