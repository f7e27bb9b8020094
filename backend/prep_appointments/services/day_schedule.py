"""
Schedule table for one preparation day.

A DaySchedule is a fixed-length grid: slot -> appointment or explicit empty.
Invariants:
  - every slot 1..size is present (None means empty)
  - a player holds at most one slot per day
  - locked appointments (predetermined, bridge, manual) are never displaced
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

DEFAULT_DAY_SIZE = 49


class DayType(str, Enum):
    construction = "construction"
    research = "research"
    troops = "troops"

    @property
    def display_title(self) -> str:
        return {
            DayType.construction: "Construction",
            DayType.research: "Research",
            DayType.troops: "Troops Training",
        }[self]


# ============================================================================
# Errors
# ============================================================================


class ScheduleError(Exception):
    """Base exception for scheduling errors"""
    pass


class InvalidSlotLabel(ScheduleError, ValueError):
    """Time label could not be converted to a slot"""
    pass


class SlotOutOfRange(ScheduleError, ValueError):
    """Slot index is outside the day"""
    pass


class SlotOccupied(ScheduleError):
    """Direct placement on a slot that already has an occupant"""

    def __init__(self, slot: int, occupant: str):
        super().__init__(f"Slot {slot} is already occupied by {occupant}")
        self.slot = slot
        self.occupant = occupant


class DuplicatePlayer(ScheduleError):
    """Player would hold two slots on the same day"""

    def __init__(self, player_id: str, slot: int):
        super().__init__(f"Player {player_id} already holds slot {slot}")
        self.player_id = player_id
        self.slot = slot


class BridgeConflict(ScheduleError):
    """Construction last slot and Research slot 1 would hold different players"""
    pass


# ============================================================================
# Data
# ============================================================================


@dataclass(frozen=True)
class PreferenceEntry:
    """One player's request for one day type."""
    player_id: str
    alliance: str
    preferred_slots: Tuple[int, ...] = ()
    priority_rank: int = 0
    name: str = ""
    predetermined_slot: Optional[int] = None
    score: int = 0

    def __post_init__(self):
        # accept lists from callers, keep the entry hashable and immutable
        object.__setattr__(self, "preferred_slots", tuple(dict.fromkeys(self.preferred_slots)))


@dataclass(frozen=True)
class ScheduledAppointment:
    player_id: str
    alliance: str
    name: str = ""
    locked: bool = False

    @property
    def display_name(self) -> str:
        return self.name or self.player_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "alliance": self.alliance,
            "name": self.name,
            "locked": self.locked,
        }

    @classmethod
    def from_entry(cls, entry: PreferenceEntry, locked: bool = False) -> "ScheduledAppointment":
        return cls(player_id=entry.player_id, alliance=entry.alliance, name=entry.name, locked=locked)


@dataclass(frozen=True)
class Move:
    """One step of a displacement chain."""
    from_slot: int
    player_id: str
    to_slot: int


@dataclass
class DaySchedule:
    day: DayType
    slots: List[Optional[ScheduledAppointment]] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.slots)

    def _check(self, slot: int) -> int:
        if not isinstance(slot, int) or slot < 1 or slot > self.size:
            raise SlotOutOfRange(f"Slot {slot} is outside 1..{self.size} on the {self.day.value} day")
        return slot - 1

    def appointment_at(self, slot: int) -> Optional[ScheduledAppointment]:
        return self.slots[self._check(slot)]

    def occupant_of(self, slot: int) -> Optional[str]:
        appointment = self.appointment_at(slot)
        return appointment.player_id if appointment else None

    def is_empty(self, slot: int) -> bool:
        return self.appointment_at(slot) is None

    def is_locked(self, slot: int) -> bool:
        appointment = self.appointment_at(slot)
        return bool(appointment and appointment.locked)

    def slot_of(self, player_id: str) -> Optional[int]:
        for index, appointment in enumerate(self.slots):
            if appointment is not None and appointment.player_id == player_id:
                return index + 1
        return None

    def place(self, slot: int, appointment: ScheduledAppointment, overwrite: bool = False) -> None:
        """
        Put *appointment* into *slot*.

        Raises:
            SlotOccupied if the slot holds someone and overwrite is False
            DuplicatePlayer if the player already holds a different slot
        """
        index = self._check(slot)
        current = self.slots[index]
        if current is not None and not overwrite:
            raise SlotOccupied(slot, current.player_id)
        existing = self.slot_of(appointment.player_id)
        if existing is not None and existing != slot:
            raise DuplicatePlayer(appointment.player_id, existing)
        self.slots[index] = appointment

    def clear(self, slot: int) -> Optional[ScheduledAppointment]:
        index = self._check(slot)
        previous = self.slots[index]
        self.slots[index] = None
        return previous

    def move(self, from_slot: int, to_slot: int) -> None:
        appointment = self.appointment_at(from_slot)
        if appointment is None:
            raise ScheduleError(f"Slot {from_slot} is empty, nothing to move")
        if not self.is_empty(to_slot):
            raise SlotOccupied(to_slot, self.occupant_of(to_slot))
        self.slots[to_slot - 1] = appointment
        self.slots[from_slot - 1] = None

    def occupied_slots(self) -> List[int]:
        return [i + 1 for i, a in enumerate(self.slots) if a is not None]

    def empty_slots(self) -> List[int]:
        return [i + 1 for i, a in enumerate(self.slots) if a is None]

    def player_ids(self) -> List[str]:
        return [a.player_id for a in self.slots if a is not None]

    def rows(self) -> Iterator[Tuple[int, Optional[ScheduledAppointment]]]:
        """Every slot in order, empty slots included."""
        for index, appointment in enumerate(self.slots):
            yield index + 1, appointment

    def copy(self) -> "DaySchedule":
        return DaySchedule(day=self.day, slots=list(self.slots))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day": self.day.value,
            "size": self.size,
            "slots": [a.to_dict() if a else None for a in self.slots],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DaySchedule":
        day = DayType(data["day"])
        raw = list(data.get("slots") or [])
        size = int(data.get("size") or len(raw) or DEFAULT_DAY_SIZE)
        raw.extend([None] * (size - len(raw)))
        slots = [
            ScheduledAppointment(
                player_id=str(item["player_id"]),
                alliance=item.get("alliance", ""),
                name=item.get("name", ""),
                locked=bool(item.get("locked", False)),
            )
            if item
            else None
            for item in raw[:size]
        ]
        return cls(day=day, slots=slots)


def new_schedule(day: DayType, size: int = DEFAULT_DAY_SIZE) -> DaySchedule:
    """Empty schedule with *size* slots."""
    if size < 1:
        raise SlotOutOfRange(f"A day needs at least one slot, got {size}")
    return DaySchedule(day=DayType(day), slots=[None] * size)


@dataclass
class WeekSchedule:
    construction: DaySchedule
    research: DaySchedule
    troops: DaySchedule

    @classmethod
    def empty(cls, sizes: Optional[Dict[DayType, int]] = None) -> "WeekSchedule":
        sizes = sizes or {}
        return cls(**{day.value: new_schedule(day, sizes.get(day, DEFAULT_DAY_SIZE)) for day in DayType})

    def for_day(self, day: DayType) -> DaySchedule:
        return getattr(self, DayType(day).value)

    def replace_day(self, schedule: DaySchedule) -> "WeekSchedule":
        days = {day.value: self.for_day(day) for day in DayType}
        days[schedule.day.value] = schedule
        return WeekSchedule(**days)

    def copy(self) -> "WeekSchedule":
        return WeekSchedule(**{day.value: self.for_day(day).copy() for day in DayType})

    def bridge_players(self) -> Tuple[Optional[str], Optional[str]]:
        """(Construction last slot occupant, Research slot 1 occupant)."""
        return (
            self.construction.occupant_of(self.construction.size),
            self.research.occupant_of(1),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {day.value: self.for_day(day).to_dict() for day in DayType}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WeekSchedule":
        days = {}
        for day in DayType:
            raw = data.get(day.value)
            days[day.value] = DaySchedule.from_dict(raw) if raw else new_schedule(day)
        return cls(**days)
