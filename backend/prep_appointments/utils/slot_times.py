"""
Slot model: the fixed slot space of a preparation day and its time labels.

Default table (49 slots):
  slot 1 -> 00:00, slot 2 -> 00:15, slot 3 -> 00:45, then +30 minutes
  per slot, up to slot 49 -> 23:45.

A form can shift a day's window (start_time / end_time); the same offsets
are then added to the start time, wrapping past midnight.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Sequence, Tuple

from prep_appointments.services.day_schedule import DayType, InvalidSlotLabel, SlotOutOfRange

if TYPE_CHECKING:
    from prep_appointments.services.day_schedule import PreferenceEntry

SLOTS_PER_DAY = 49
MINUTES_PER_DAY = 24 * 60

_LABEL_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def slot_offset_minutes(slot: int) -> int:
    """Minutes from the start of the day window to the start of *slot*."""
    if slot < 1:
        raise SlotOutOfRange(f"Slot {slot} is not a valid slot")
    if slot == 1:
        return 0
    if slot == 2:
        return 15
    return 45 + (slot - 3) * 30


def parse_clock(value: str) -> int:
    """Parse "HH:MM" into minutes after midnight.

    Trailing notes are ignored ("00:15 (UTC)" -> 15).
    """
    if value is None:
        raise InvalidSlotLabel("Time label is missing")
    text = str(value).strip()
    if "(" in text:
        text = text.split("(", 1)[0].strip()
    match = _LABEL_RE.match(text)
    if not match:
        raise InvalidSlotLabel(f"Invalid time label: {value!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise InvalidSlotLabel(f"Invalid time label: {value!r}")
    return hours * 60 + minutes


def format_clock(minutes: int) -> str:
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def calculate_time_slots(
    start_time: str = "00:00",
    end_time: Optional[str] = None,
    max_slots: int = SLOTS_PER_DAY,
) -> List[Tuple[int, str]]:
    """
    Build the (slot, label) table for a day window.

    Without end_time the full table of max_slots is returned. With an end
    time only slots starting strictly inside the window are kept; an end
    equal to the start means a full 24h window.
    """
    start = parse_clock(start_time)
    window = MINUTES_PER_DAY
    if end_time:
        window = (parse_clock(end_time) - start) % MINUTES_PER_DAY or MINUTES_PER_DAY

    table: List[Tuple[int, str]] = []
    for slot in range(1, max_slots + 1):
        offset = slot_offset_minutes(slot)
        if offset >= window:
            break
        table.append((slot, format_clock(start + offset)))
    return table


@dataclass(frozen=True)
class DayTimes:
    """Time window of one day type."""
    start_time: str = "00:00"
    end_time: Optional[str] = None

    def table(self) -> List[Tuple[int, str]]:
        return calculate_time_slots(self.start_time, self.end_time)

    def slot_count(self) -> int:
        return len(self.table())


@dataclass(frozen=True)
class WeekTimes:
    construction: DayTimes = field(default_factory=DayTimes)
    research: DayTimes = field(default_factory=DayTimes)
    troops: DayTimes = field(default_factory=DayTimes)

    def for_day(self, day: DayType) -> DayTimes:
        return getattr(self, DayType(day).value)


DEFAULT_WEEK_TIMES = WeekTimes()


def slot_to_label(day: DayType, slot: int, week_times: Optional[WeekTimes] = None) -> str:
    """Time label of *slot* on *day*. Raises SlotOutOfRange outside the table."""
    table = dict((week_times or DEFAULT_WEEK_TIMES).for_day(day).table())
    if slot not in table:
        raise SlotOutOfRange(f"Slot {slot} is outside the {DayType(day).value} day")
    return table[slot]


def label_to_slot(day: DayType, label: str, week_times: Optional[WeekTimes] = None) -> int:
    """Slot index of a time label on *day*. Raises InvalidSlotLabel."""
    minutes = parse_clock(label)
    for slot, slot_label in (week_times or DEFAULT_WEEK_TIMES).for_day(day).table():
        if parse_clock(slot_label) == minutes:
            return slot
    raise InvalidSlotLabel(f"{label!r} is not a slot time on the {DayType(day).value} day")


def slot_popularity(entries: Iterable["PreferenceEntry"]) -> Dict[int, int]:
    """Count how many entries list each slot anywhere in their preferences."""
    counts: Counter = Counter()
    for entry in entries:
        counts.update(set(entry.preferred_slots))
    return dict(sorted(counts.items()))


def order_by_popularity(slots: Sequence[int], popularity: Dict[int, int]) -> List[int]:
    """Most popular slots first, ties by ascending slot."""
    unique = sorted(set(slots))
    return sorted(unique, key=lambda s: -popularity.get(s, 0))
