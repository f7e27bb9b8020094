"""
Submission statistics: alliance participation and slot popularity per day.

Aggregates only. Player identifiers and names never appear in the output.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence

from prep_appointments.services.day_schedule import DayType, PreferenceEntry, SlotOutOfRange
from prep_appointments.utils.slot_times import WeekTimes, slot_popularity, slot_to_label

logger = logging.getLogger(__name__)


@dataclass
class ScheduleStatistics:
    # alliance -> day -> number of entries
    alliance_counts: Dict[str, Dict[DayType, int]] = field(default_factory=dict)
    # day -> slot -> number of entries listing it
    slot_popularity: Dict[DayType, Dict[int, int]] = field(default_factory=dict)

    def to_dict(self, week_times: Optional[WeekTimes] = None) -> Dict[str, Any]:
        """JSON-ready view; with week_times popularity is keyed by time label."""
        popularity: Dict[str, Dict[str, int]] = {}
        for day, counts in self.slot_popularity.items():
            keyed: Dict[str, int] = {}
            for slot, count in counts.items():
                key = str(slot)
                if week_times is not None:
                    try:
                        key = slot_to_label(day, slot, week_times)
                    except SlotOutOfRange:
                        # outside the form window, keep the slot number
                        logger.debug("STATS: day=%s slot=%d outside the day window", day.value, slot)
                keyed[key] = count
            popularity[day.value] = keyed
        return {
            "alliance_counts": {
                alliance: {day.value: count for day, count in days.items()}
                for alliance, days in sorted(self.alliance_counts.items())
            },
            "slot_popularity": popularity,
        }


def compute_statistics(entries_by_day: Mapping[DayType, Sequence[PreferenceEntry]]) -> ScheduleStatistics:
    stats = ScheduleStatistics()
    for day in DayType:
        entries = list(entries_by_day.get(day, ()))
        per_alliance = Counter(entry.alliance for entry in entries)
        for alliance, count in per_alliance.items():
            stats.alliance_counts.setdefault(alliance, {})[day] = count
        stats.slot_popularity[day] = slot_popularity(entries)
    return stats
