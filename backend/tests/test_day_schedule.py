"""
Tests for the per-day schedule table.
"""

import pytest

from prep_appointments.services.day_schedule import (
    DaySchedule,
    DayType,
    DuplicatePlayer,
    PreferenceEntry,
    ScheduledAppointment,
    SlotOccupied,
    SlotOutOfRange,
    WeekSchedule,
    new_schedule,
)


def _appt(player_id: str, locked: bool = False) -> ScheduledAppointment:
    return ScheduledAppointment(player_id=player_id, alliance="ABC", name=f"Player {player_id}", locked=locked)


class TestNewSchedule:
    def test_all_slots_empty(self):
        schedule = new_schedule(DayType.troops)
        assert schedule.size == 49
        assert schedule.occupied_slots() == []
        assert len(schedule.empty_slots()) == 49

    def test_custom_size(self):
        assert new_schedule(DayType.research, 13).size == 13

    def test_zero_size_rejected(self):
        with pytest.raises(SlotOutOfRange):
            new_schedule(DayType.research, 0)


class TestPlacement:
    def test_place_and_lookup(self):
        schedule = new_schedule(DayType.construction)
        schedule.place(5, _appt("p1"))
        assert schedule.occupant_of(5) == "p1"
        assert schedule.slot_of("p1") == 5
        assert not schedule.is_locked(5)
        assert schedule.occupant_of(6) is None

    def test_place_on_occupied_slot_raises(self):
        schedule = new_schedule(DayType.construction)
        schedule.place(5, _appt("p1"))
        with pytest.raises(SlotOccupied) as exc:
            schedule.place(5, _appt("p2"))
        assert exc.value.slot == 5
        assert exc.value.occupant == "p1"
        assert schedule.occupant_of(5) == "p1"

    def test_overwrite_replaces_occupant(self):
        schedule = new_schedule(DayType.construction)
        schedule.place(5, _appt("p1"))
        schedule.place(5, _appt("p2", locked=True), overwrite=True)
        assert schedule.occupant_of(5) == "p2"
        assert schedule.is_locked(5)

    def test_player_cannot_hold_two_slots(self):
        schedule = new_schedule(DayType.construction)
        schedule.place(5, _appt("p1"))
        with pytest.raises(DuplicatePlayer):
            schedule.place(6, _appt("p1"))

    def test_clear(self):
        schedule = new_schedule(DayType.construction)
        schedule.place(5, _appt("p1"))
        previous = schedule.clear(5)
        assert previous.player_id == "p1"
        assert schedule.is_empty(5)

    @pytest.mark.parametrize("slot", [0, 50, -1])
    def test_out_of_range(self, slot):
        schedule = new_schedule(DayType.construction)
        with pytest.raises(SlotOutOfRange):
            schedule.place(slot, _appt("p1"))
        with pytest.raises(SlotOutOfRange):
            schedule.occupant_of(slot)

    def test_move(self):
        schedule = new_schedule(DayType.troops)
        schedule.place(1, _appt("p1"))
        schedule.move(1, 2)
        assert schedule.is_empty(1)
        assert schedule.occupant_of(2) == "p1"

    def test_move_onto_occupied_slot_raises(self):
        schedule = new_schedule(DayType.troops)
        schedule.place(1, _appt("p1"))
        schedule.place(2, _appt("p2"))
        with pytest.raises(SlotOccupied):
            schedule.move(1, 2)


class TestRowsAndSerialization:
    def test_rows_include_every_slot(self):
        schedule = new_schedule(DayType.troops)
        schedule.place(3, _appt("p3"))
        rows = list(schedule.rows())
        assert len(rows) == 49
        assert rows[2] == (3, _appt("p3"))
        assert rows[0] == (1, None)

    def test_dict_round_trip(self):
        schedule = new_schedule(DayType.research)
        schedule.place(1, _appt("p1", locked=True))
        schedule.place(49, _appt("p49"))
        restored = DaySchedule.from_dict(schedule.to_dict())
        assert restored == schedule

    def test_copy_is_independent(self):
        schedule = new_schedule(DayType.research)
        clone = schedule.copy()
        clone.place(1, _appt("p1"))
        assert schedule.is_empty(1)

    def test_week_round_trip(self):
        week = WeekSchedule.empty()
        week.construction.place(49, _appt("b", locked=True))
        week.research.place(1, _appt("b", locked=True))
        restored = WeekSchedule.from_dict(week.to_dict())
        assert restored == week
        assert restored.bridge_players() == ("b", "b")


class TestPreferenceEntry:
    def test_slots_become_unique_tuple(self):
        entry = PreferenceEntry(player_id="1", alliance="A", preferred_slots=[3, 1, 3, 2])
        assert entry.preferred_slots == (3, 1, 2)

    def test_entry_is_immutable(self):
        entry = PreferenceEntry(player_id="1", alliance="A", preferred_slots=(1,))
        with pytest.raises(AttributeError):
            entry.priority_rank = 5
