"""
Tests for the displacement search (slot stealing).
"""

from typing import Dict, List, Tuple

import pytest

from prep_appointments.services.day_schedule import (
    DaySchedule,
    DayType,
    Move,
    PreferenceEntry,
    ScheduledAppointment,
    ScheduleError,
    new_schedule,
)
from prep_appointments.services.move_chain import (
    MAX_CHAIN_DEPTH,
    WEAKEST_CLAIM,
    apply_move_chain,
    claim_strength,
    find_move_chain,
)


def _entry(player_id: str, slots, rank: int) -> PreferenceEntry:
    return PreferenceEntry(player_id=player_id, alliance="ABC", preferred_slots=tuple(slots), priority_rank=rank)


def _seat(occupants: List[Tuple[int, PreferenceEntry]], locked: Tuple[int, ...] = ()) -> Tuple[DaySchedule, Dict[str, PreferenceEntry]]:
    """Helper: schedule with each entry sitting on the given slot."""
    schedule = new_schedule(DayType.construction)
    for slot, entry in occupants:
        schedule.place(slot, ScheduledAppointment.from_entry(entry, locked=slot in locked))
    return schedule, {entry.player_id: entry for _, entry in occupants}


def _ladder(length: int):
    """P_i sits on slot i and prefers slot i+1; slot length+1 is empty."""
    occupants = [(i, _entry(f"P{i}", (i + 1, i), rank=i)) for i in range(1, length + 1)]
    return _seat(occupants)


class TestClaimStrength:
    def test_earlier_position_is_stronger(self):
        entry = _entry("a", (4, 7), rank=3)
        assert claim_strength(entry, 4) < claim_strength(entry, 7)

    def test_rank_breaks_position_ties(self):
        assert claim_strength(_entry("a", (4,), 1), 4) < claim_strength(_entry("b", (4,), 2), 4)

    def test_unknown_preferences_are_weakest(self):
        assert claim_strength(None, 4) == WEAKEST_CLAIM
        assert claim_strength(_entry("a", (), 1), 4) == WEAKEST_CLAIM


class TestSingleMove:
    def test_occupant_moves_to_free_listed_slot(self):
        schedule, entries = _seat([(1, _entry("O", (2, 1), rank=1))])
        before = schedule.copy()

        chain = find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries)

        assert chain == [Move(from_slot=1, player_id="O", to_slot=2)]
        assert schedule == before  # search never mutates

    def test_own_preference_order_beats_slot_index(self):
        schedule, entries = _seat([(1, _entry("O", (3, 1, 2), rank=1))])
        chain = find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries)
        assert chain == [Move(from_slot=1, player_id="O", to_slot=3)]

    def test_fallback_to_lowest_free_slot_without_preferences(self):
        schedule = new_schedule(DayType.troops)
        schedule.place(1, ScheduledAppointment(player_id="x1", alliance="A"))
        schedule.place(2, ScheduledAppointment(player_id="x2", alliance="A"))
        schedule.place(5, ScheduledAppointment(player_id="O", alliance="A"))

        chain = find_move_chain(schedule, 5, _entry("E", (5,), rank=0), {})

        assert chain == [Move(from_slot=5, player_id="O", to_slot=3)]

    def test_empty_target_needs_no_moves(self):
        schedule = new_schedule(DayType.troops)
        assert find_move_chain(schedule, 4, _entry("E", (4,), rank=0), {}) == []


class TestRefusals:
    def test_locked_slot_is_never_a_target(self):
        schedule, entries = _seat([(1, _entry("O", (2, 1), rank=1))], locked=(1,))
        assert find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries) is None

    def test_frozen_slot_is_never_a_target(self):
        schedule, entries = _seat([(1, _entry("O", (2, 1), rank=1))])
        assert find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries, frozen_slots={1}) is None

    def test_frozen_destination_is_skipped(self):
        schedule, entries = _seat([(1, _entry("O", (2, 3, 1), rank=1))])
        chain = find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries, frozen_slots={2})
        assert chain == [Move(from_slot=1, player_id="O", to_slot=3)]

    def test_weaker_claim_cannot_bump(self):
        schedule, entries = _seat([(10, _entry("A", (10,), rank=1))])
        assert find_move_chain(schedule, 10, _entry("B", (10, 11), rank=2), entries) is None

    def test_earlier_choice_holds_against_better_rank(self):
        # A has slot 10 as first choice and a free fallback, E lists it second
        schedule, entries = _seat([(10, _entry("A", (10, 11), rank=5))])
        assert find_move_chain(schedule, 10, _entry("E", (3, 10), rank=0), entries) is None

    def test_same_choice_better_rank_holds(self):
        schedule, entries = _seat([(10, _entry("A", (10, 11), rank=1))])
        assert find_move_chain(schedule, 10, _entry("E", (10,), rank=2), entries) is None

    def test_occupant_without_alternatives(self):
        schedule, entries = _seat([(1, _entry("O", (1,), rank=5))])
        # E's claim (0, 0) beats O's hold (0, 5) but O has nowhere to go
        assert find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries) is None

    def test_two_slot_cycle_terminates(self):
        schedule, entries = _seat([(1, _entry("A", (2, 1), rank=1)), (2, _entry("B", (1, 2), rank=2))])
        assert find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries) is None


class TestCascade:
    def test_two_step_chain(self):
        schedule, entries = _seat([(1, _entry("A", (2, 1), rank=1)), (2, _entry("B", (3, 2), rank=2))])

        chain = find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries)

        assert chain == [
            Move(from_slot=1, player_id="A", to_slot=2),
            Move(from_slot=2, player_id="B", to_slot=3),
        ]

    def test_apply_chain_moves_everyone(self):
        schedule, entries = _seat([(1, _entry("A", (2, 1), rank=1)), (2, _entry("B", (3, 2), rank=2))])
        chain = find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries)

        apply_move_chain(schedule, chain)

        assert schedule.is_empty(1)
        assert schedule.occupant_of(2) == "A"
        assert schedule.occupant_of(3) == "B"

    def test_chain_of_max_depth_succeeds(self):
        schedule, entries = _ladder(MAX_CHAIN_DEPTH)
        chain = find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries)
        assert chain is not None
        assert len(chain) == MAX_CHAIN_DEPTH
        assert chain[-1] == Move(from_slot=5, player_id="P5", to_slot=6)

    def test_chain_beyond_max_depth_fails(self):
        schedule, entries = _ladder(MAX_CHAIN_DEPTH + 1)
        before = schedule.copy()
        assert find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries) is None
        assert schedule == before

    def test_custom_depth_limit(self):
        schedule, entries = _ladder(3)
        assert find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries, max_depth=2) is None
        assert len(find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries, max_depth=3)) == 3

    def test_shortest_chain_preferred(self):
        # A can go to 2 (needs B to move on) or 4 (free); the free slot wins
        schedule, entries = _seat([(1, _entry("A", (2, 4, 1), rank=1)), (2, _entry("B", (3, 2), rank=2))])
        chain = find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries)
        assert chain == [Move(from_slot=1, player_id="A", to_slot=4)]


class TestApplyGuards:
    def test_stale_chain_is_rejected_without_changes(self):
        schedule, entries = _seat([(1, _entry("A", (2, 1), rank=1)), (2, _entry("B", (3, 2), rank=2))])
        chain = find_move_chain(schedule, 1, _entry("E", (1,), rank=0), entries)
        schedule.place(3, ScheduledAppointment(player_id="late", alliance="X"))
        before = schedule.copy()

        with pytest.raises(ScheduleError):
            apply_move_chain(schedule, chain)
        assert schedule == before
