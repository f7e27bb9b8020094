"""
Tests for submission validation and the CSV import/export of form answers.
"""

import pytest
from pydantic import ValidationError

from prep_appointments.services.day_schedule import DayType
from prep_appointments.services.submission_import import (
    NON_OF_THE_ABOVE,
    SUBMISSION_RESUBMIT,
    SubmissionData,
    SubmissionValidationError,
    effective_alliance,
    export_submissions_csv,
    map_columns,
    parse_bool,
    parse_number,
    parse_submission_csv,
    parse_time_labels,
    validate_submission,
)
from prep_appointments.utils.slot_times import DEFAULT_WEEK_TIMES, DayTimes, WeekTimes

HEADER = (
    "Timestamp,Which alliance are you in?,Non of the above (type it here),What is your character name?,"
    "What is your player ID?,Is this form a new submission or a re-submission?,"
    "Do you want a Construction day appointment?,Construction day speedups (days),"
    "How much truegold do you have?,Construction day appointment times,"
    "Do you want a Research day appointment?,Research day speedups (days),"
    "How much truegold dust do you have?,Research day appointment times,"
    "Do you want a Troops Training day appointment?,Troops Training day speedups (days),"
    "Troops Training day appointment times"
)

FIVE_TIMES = '"00:00, 00:15, 00:45, 01:15, 01:45"'


def _submission(**overrides):
    values = dict(
        alliance="ABC",
        character_name="Alice",
        player_id="1001",
        wants_construction=True,
        construction_time_slots=[1, 2, 3, 4, 5],
    )
    values.update(overrides)
    return SubmissionData(**values)


class TestSubmissionData:
    def test_slots_are_sorted_and_unique(self):
        data = _submission(construction_time_slots=[5, 1, 3, 1, 2, 4])
        assert data.construction_time_slots == [1, 2, 3, 4, 5]

    def test_text_is_stripped(self):
        data = _submission(character_name="  Alice ", player_id=" 1001 ")
        assert data.character_name == "Alice"
        assert data.player_id == "1001"

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValidationError):
            _submission(construction_speedups=-1)


class TestValidateSubmission:
    def test_valid(self):
        validate_submission(_submission())

    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"character_name": ""}, "Character name is required"),
            ({"player_id": ""}, "Player ID is required"),
            ({"player_id": "12a"}, "Player ID must contain only digits"),
            ({"submission_type": "Other"}, "Invalid submission type"),
            ({"alliance": ""}, "Alliance selection is required"),
            ({"alliance": NON_OF_THE_ABOVE}, "Custom alliance name is required"),
            ({"construction_time_slots": [1, 2, 3, 4]}, "at least 5 time slots"),
            ({"construction_time_slots": [1, 2, 3, 4, 50]}, "Invalid construction time slot: 50"),
            ({"wants_construction": False}, "At least one day type"),
        ],
    )
    def test_rejections(self, overrides, message):
        with pytest.raises(SubmissionValidationError, match=message):
            validate_submission(_submission(**overrides))

    def test_unwanted_day_slots_are_not_checked(self):
        validate_submission(_submission(research_time_slots=[99]))

    def test_short_window_limits_slots(self):
        times = WeekTimes(construction=DayTimes("00:00", "02:00"))
        with pytest.raises(SubmissionValidationError, match="Invalid construction time slot: 6"):
            validate_submission(_submission(construction_time_slots=[1, 2, 3, 4, 6]), times)

    def test_custom_alliance(self):
        assert effective_alliance(NON_OF_THE_ABOVE, " NEW ") == "NEW"
        assert effective_alliance("ABC", "NEW") == "ABC"
        assert effective_alliance(NON_OF_THE_ABOVE, None) == NON_OF_THE_ABOVE


class TestCellParsing:
    def test_bools(self):
        assert parse_bool("Yes") and parse_bool("ja") and parse_bool("1")
        assert not parse_bool("No") and not parse_bool("")

    def test_numbers(self):
        assert parse_number("1,200") == 1200
        assert parse_number("3.7") == 3
        assert parse_number("lots") == 0
        assert parse_number("-4") == 0

    def test_time_labels(self):
        warnings = []
        slots = parse_time_labels("00:45, 00:00 (UTC), 00:20, 00:45", DayType.troops, DEFAULT_WEEK_TIMES, warnings)
        assert slots == [1, 3]
        assert len(warnings) == 1 and "00:20" in warnings[0]

    def test_columns_matched_by_keyword(self):
        columns = map_columns(HEADER.split(","))
        assert columns["alliance"] == 1
        assert columns["custom_alliance"] == 2
        assert columns["wants_construction"] == 6
        assert columns["construction_time_slots"] == 9
        assert columns["construction_truegold"] == 8
        assert columns["research_truegold_dust"] == 12
        assert columns["troops_time_slots"] == 16


class TestParseSubmissionCsv:
    def test_rows_become_submissions(self):
        raw = "\n".join(
            [
                HEADER,
                f"2025-01-01,ABC,,Alice,1001,New submission,Yes,10,2,{FIVE_TIMES},No,,,,No,,",
                f"2025-01-01,{NON_OF_THE_ABOVE},NEW,Bob,1002,Re-submission,No,,,,Yes,5,1,{FIVE_TIMES},No,,",
            ]
        )
        result = parse_submission_csv(raw)

        assert result.rows_read == 2
        alice, bob = result.submissions
        assert alice.wants_construction and alice.construction_truegold == 2
        assert alice.construction_time_slots == [1, 2, 3, 4, 5]
        assert bob.alliance == "NEW"
        assert bob.submission_type == SUBMISSION_RESUBMIT
        assert bob.research_speedups == 5 and bob.research_truegold_dust == 1

    def test_later_row_replaces_earlier(self):
        raw = "\n".join(
            [
                HEADER,
                f"t,ABC,,Alice,1001,New submission,Yes,1,0,{FIVE_TIMES},No,,,,No,,",
                f"t,ABC,,Bob,1002,New submission,Yes,1,0,{FIVE_TIMES},No,,,,No,,",
                f"t,ABC,,Alice,1001,Re-submission,Yes,9,0,{FIVE_TIMES},No,,,,No,,",
            ]
        )
        result = parse_submission_csv(raw)
        assert result.merged == 1
        assert [s.player_id for s in result.submissions] == ["1001", "1002"]
        assert result.submissions[0].construction_speedups == 9

    def test_rows_without_identity_are_skipped(self):
        raw = "\n".join([HEADER, "t,ABC,,,1001,New submission,Yes,1,0,,No,,,,No,,", ""])
        result = parse_submission_csv(raw)
        assert result.rows_skipped == 1
        assert result.submissions == []
        assert "Line 2" in result.warnings[0]

    def test_missing_identity_columns(self):
        with pytest.raises(SubmissionValidationError, match="player_id"):
            parse_submission_csv("Timestamp,What is your character name?\nt,Alice")

    def test_empty_text(self):
        assert parse_submission_csv("").submissions == []


class TestExportSubmissionsCsv:
    def test_export_reimports(self):
        rows = [
            _submission(construction_speedups=3, construction_truegold=1),
            _submission(
                player_id="1002",
                character_name="Bob",
                wants_construction=False,
                construction_time_slots=[],
                wants_troops=True,
                troops_speedups=7,
                troops_time_slots=[45, 46, 47, 48, 49],
            ),
        ]
        text = export_submissions_csv(rows)
        assert "23:45" in text

        parsed = parse_submission_csv(text).submissions
        assert [s.player_id for s in parsed] == ["1001", "1002"]
        assert parsed[0].construction_time_slots == [1, 2, 3, 4, 5]
        assert parsed[0].construction_speedups == 3
        assert parsed[1].troops_time_slots == [45, 46, 47, 48, 49]
        assert not parsed[1].wants_construction

    def test_notes_and_suggestions_survive_reimport(self):
        text = export_submissions_csv([_submission(additional_notes="late, after reset", suggestions="more slots")])
        parsed = parse_submission_csv(text).submissions[0]
        assert parsed.additional_notes == "late, after reset"
        assert parsed.suggestions == "more slots"

    def test_blank_notes_stay_empty(self):
        parsed = parse_submission_csv(export_submissions_csv([_submission()])).submissions[0]
        assert parsed.additional_notes is None
        assert parsed.suggestions is None
