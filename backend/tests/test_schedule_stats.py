"""
Tests for submission statistics.
"""

import json
import logging

from prep_appointments.services.day_schedule import DayType, PreferenceEntry
from prep_appointments.services.schedule_stats import compute_statistics
from prep_appointments.utils.slot_times import DEFAULT_WEEK_TIMES, DayTimes, WeekTimes


def _entries():
    return {
        DayType.construction: [
            PreferenceEntry("1001", "ABC", (1, 2, 3), 1, name="Alice"),
            PreferenceEntry("1002", "ABC", (2, 3), 2, name="Bob"),
            PreferenceEntry("1003", "XYZ", (3,), 3, name="Carol"),
        ],
        DayType.troops: [PreferenceEntry("1001", "ABC", (49,), 1, name="Alice")],
    }


class TestComputeStatistics:
    def test_alliance_counts_per_day(self):
        stats = compute_statistics(_entries())
        assert stats.alliance_counts["ABC"] == {DayType.construction: 2, DayType.troops: 1}
        assert stats.alliance_counts["XYZ"] == {DayType.construction: 1}

    def test_slot_popularity(self):
        stats = compute_statistics(_entries())
        assert stats.slot_popularity[DayType.construction] == {1: 1, 2: 2, 3: 3}
        assert stats.slot_popularity[DayType.research] == {}

    def test_dict_keyed_by_time_label(self):
        data = compute_statistics(_entries()).to_dict(DEFAULT_WEEK_TIMES)
        assert data["slot_popularity"]["construction"] == {"00:00": 1, "00:15": 2, "00:45": 3}
        assert data["slot_popularity"]["troops"] == {"23:45": 1}
        assert data["alliance_counts"]["XYZ"] == {"construction": 1}

    def test_dict_keyed_by_slot_without_times(self):
        data = compute_statistics(_entries()).to_dict()
        assert data["slot_popularity"]["construction"] == {"1": 1, "2": 2, "3": 3}

    def test_slot_outside_short_window_keeps_number(self, caplog):
        week_times = WeekTimes(troops=DayTimes("10:00", "12:00"))
        with caplog.at_level(logging.DEBUG, logger="prep_appointments.services.schedule_stats"):
            data = compute_statistics(_entries()).to_dict(week_times)
        assert data["slot_popularity"]["troops"] == {"49": 1}
        assert data["slot_popularity"]["construction"] == {"00:00": 1, "00:15": 2, "00:45": 3}
        assert "slot=49 outside the day window" in caplog.text

    def test_no_player_identity_in_output(self):
        text = json.dumps(compute_statistics(_entries()).to_dict(DEFAULT_WEEK_TIMES))
        for secret in ("1001", "1002", "1003", "Alice", "Bob", "Carol"):
            assert secret not in text
