"""Submission validation and CSV import.

Handles the spreadsheet export of the preparation-week form. The header
row is matched by keyword, so column order and wording may drift between
weeks:

  Timestamp, alliance, Non of the above (type it here), character name,
  player ID, Is this form..., Construction day appointment, speedups,
  truegold, times, Research day appointment, speedups, truegold dust,
  times, Troops Training day appointment, speedups, times, Additional notes,
  Suggestions

Time cells hold comma-separated labels ("00:00, 00:15 (UTC), 01:15").
Rows with the same player ID are merged: the later row wins, keeping the
first row's position in submission order.
"""

import csv
import io
import logging
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, field_validator

from prep_appointments.services.day_schedule import DayType, InvalidSlotLabel
from prep_appointments.utils.slot_times import DEFAULT_WEEK_TIMES, WeekTimes, label_to_slot, slot_to_label

logger = logging.getLogger(__name__)

NON_OF_THE_ABOVE = "Non of the above"
SUBMISSION_NEW = "New submission"
SUBMISSION_RESUBMIT = "Re-Submission"
SUBMISSION_TYPES = (SUBMISSION_NEW, SUBMISSION_RESUBMIT)
MIN_SLOTS_PER_DAY = 5


class SubmissionError(Exception):
    """Base exception for submission errors"""
    pass


class SubmissionValidationError(SubmissionError):
    """Submission failed validation"""
    pass


# ---------------------------------------------------------------------------
# Submission model
# ---------------------------------------------------------------------------


class SubmissionData(BaseModel):
    """One player's form answers, independent of storage."""

    alliance: str
    custom_alliance: Optional[str] = None
    character_name: str
    player_id: str
    submission_type: str = SUBMISSION_NEW

    wants_construction: bool = False
    construction_speedups: int = 0
    construction_truegold: int = 0
    construction_time_slots: List[int] = []

    wants_research: bool = False
    research_speedups: int = 0
    research_truegold_dust: int = 0
    research_time_slots: List[int] = []

    wants_troops: bool = False
    troops_speedups: int = 0
    troops_time_slots: List[int] = []

    additional_notes: Optional[str] = None
    suggestions: Optional[str] = None

    @field_validator("alliance", "character_name", "player_id", "submission_type")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("construction_time_slots", "research_time_slots", "troops_time_slots")
    @classmethod
    def sort_slots(cls, v: List[int]) -> List[int]:
        return sorted(set(v))

    @field_validator(
        "construction_speedups", "construction_truegold", "research_speedups", "research_truegold_dust", "troops_speedups"
    )
    @classmethod
    def non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be zero or positive")
        return v


def effective_alliance(alliance: str, custom_alliance: Optional[str]) -> str:
    """'Non of the above' resolves to the custom tag when one was typed."""
    lowered = (alliance or "").strip().lower()
    if (NON_OF_THE_ABOVE.lower() in lowered or lowered == "non") and custom_alliance and custom_alliance.strip():
        return custom_alliance.strip()
    return (alliance or "").strip()


def _day_fields(day: DayType) -> tuple:
    return {
        DayType.construction: ("wants_construction", "construction_time_slots"),
        DayType.research: ("wants_research", "research_time_slots"),
        DayType.troops: ("wants_troops", "troops_time_slots"),
    }[day]


def validate_submission(data: SubmissionData, week_times: Optional[WeekTimes] = None) -> None:
    """
    Validate form answers.

    Raises:
        SubmissionValidationError with the first problem found
    """
    week_times = week_times or DEFAULT_WEEK_TIMES

    if not data.character_name:
        raise SubmissionValidationError("Character name is required")
    if not data.player_id:
        raise SubmissionValidationError("Player ID is required")
    if not data.player_id.isdigit():
        raise SubmissionValidationError("Player ID must contain only digits")
    if data.submission_type not in SUBMISSION_TYPES:
        raise SubmissionValidationError("Invalid submission type")
    if not data.alliance:
        raise SubmissionValidationError("Alliance selection is required")
    if data.alliance == NON_OF_THE_ABOVE and not (data.custom_alliance or "").strip():
        raise SubmissionValidationError(
            "Custom alliance name is required when 'Non of the above' is selected"
        )

    for day in DayType:
        wants_attr, slots_attr = _day_fields(day)
        if not getattr(data, wants_attr):
            continue
        slots = getattr(data, slots_attr)
        if len(slots) < MIN_SLOTS_PER_DAY:
            raise SubmissionValidationError(
                f"{day.display_title} day requires at least {MIN_SLOTS_PER_DAY} time slots"
            )
        slot_count = week_times.for_day(day).slot_count()
        for slot in slots:
            if slot < 1 or slot > slot_count:
                raise SubmissionValidationError(f"Invalid {day.value} time slot: {slot}")

    if not (data.wants_construction or data.wants_research or data.wants_troops):
        raise SubmissionValidationError(
            "At least one day type (Construction, Research, or Troops) must be selected"
        )


# ---------------------------------------------------------------------------
# CSV import
# ---------------------------------------------------------------------------


class CsvImportResult(BaseModel):
    submissions: List[SubmissionData] = []
    warnings: List[str] = []
    rows_read: int = 0
    rows_skipped: int = 0
    merged: int = 0


# column -> predicate over the lower-cased header
_COLUMN_MATCHERS: Dict[str, Callable[[str], bool]] = {
    "custom_alliance": lambda h: "non of the above" in h and "type it here" in h,
    "alliance": lambda h: "alliance" in h and "non of the above" not in h,
    "character_name": lambda h: "character name" in h,
    "player_id": lambda h: "player id" in h,
    "submission_type": lambda h: "is this form" in h,
    "construction_time_slots": lambda h: "construction day" in h and "times" in h,
    "construction_speedups": lambda h: "construction day" in h and "speedups" in h,
    "wants_construction": lambda h: "construction day appointment" in h,
    "construction_truegold": lambda h: "truegold" in h and "dust" not in h,
    "research_time_slots": lambda h: "research day" in h and "times" in h,
    "research_speedups": lambda h: "research day" in h and "speedups" in h,
    "wants_research": lambda h: "research day appointment" in h,
    "research_truegold_dust": lambda h: "truegold dust" in h,
    "troops_time_slots": lambda h: "troops training day" in h and "times" in h,
    "troops_speedups": lambda h: "troops training day" in h and "speedups" in h,
    "wants_troops": lambda h: "troops training day appointment" in h,
    "additional_notes": lambda h: "additional notes" in h,
    "suggestions": lambda h: "suggestion" in h,
}


def map_columns(headers: List[str]) -> Dict[str, int]:
    """Assign each known field the first unclaimed header that matches it."""
    lowered = [h.strip().lower() for h in headers]
    claimed: Dict[int, str] = {}
    columns: Dict[str, int] = {}
    for field_name, matcher in _COLUMN_MATCHERS.items():
        for index, header in enumerate(lowered):
            if index in claimed:
                continue
            if matcher(header):
                columns[field_name] = index
                claimed[index] = field_name
                break
    return columns


def parse_bool(value: str) -> bool:
    return (value or "").strip().lower() in ("yes", "true", "1", "ja")


def parse_number(value: str) -> int:
    """Lenient integer parse: blanks, junk and negatives count as 0."""
    text = (value or "").strip().replace(",", "").replace(" ", "")
    try:
        number = int(float(text))
    except ValueError:
        return 0
    return max(number, 0)


def parse_time_labels(
    value: str, day: DayType, week_times: WeekTimes, warnings: Optional[List[str]] = None
) -> List[int]:
    """Comma-separated time labels -> sorted unique slots; unknown labels are dropped."""
    slots = set()
    for part in (value or "").split(","):
        label = part.strip()
        if not label:
            continue
        try:
            slots.add(label_to_slot(day, label, week_times))
        except InvalidSlotLabel:
            if warnings is not None:
                warnings.append(f"Dropped unknown {day.value} time {label!r}")
    return sorted(slots)


def parse_submission_csv(raw_text: str, week_times: Optional[WeekTimes] = None) -> CsvImportResult:
    """
    Parse the form's CSV export into submissions.

    Rows without a name or player ID are skipped. Rows repeating a player ID
    replace the earlier row.
    """
    week_times = week_times or DEFAULT_WEEK_TIMES
    result = CsvImportResult()
    reader = csv.reader(io.StringIO(raw_text.strip()))
    try:
        headers = next(reader)
    except StopIteration:
        return result
    columns = map_columns(headers)
    missing = [name for name in ("character_name", "player_id") if name not in columns]
    if missing:
        raise SubmissionValidationError(f"CSV header is missing columns: {', '.join(missing)}")

    def cell(row: List[str], field_name: str) -> str:
        index = columns.get(field_name)
        if index is None or index >= len(row):
            return ""
        return row[index].strip()

    by_player: Dict[str, SubmissionData] = {}
    for line_number, row in enumerate(reader, start=2):
        if not any(c.strip() for c in row):
            continue
        result.rows_read += 1

        name = cell(row, "character_name")
        player_id = cell(row, "player_id")
        if not name or not player_id:
            result.rows_skipped += 1
            result.warnings.append(f"Line {line_number}: missing character name or player ID")
            continue

        submission_type = cell(row, "submission_type").lower()
        is_resubmission = "re-submission" in submission_type or "resubmission" in submission_type

        submission = SubmissionData(
            alliance=effective_alliance(cell(row, "alliance"), cell(row, "custom_alliance")),
            custom_alliance=cell(row, "custom_alliance") or None,
            character_name=name,
            player_id=player_id,
            submission_type=SUBMISSION_RESUBMIT if is_resubmission else SUBMISSION_NEW,
            wants_construction=parse_bool(cell(row, "wants_construction")),
            construction_speedups=parse_number(cell(row, "construction_speedups")),
            construction_truegold=parse_number(cell(row, "construction_truegold")),
            construction_time_slots=parse_time_labels(
                cell(row, "construction_time_slots"), DayType.construction, week_times, result.warnings
            ),
            wants_research=parse_bool(cell(row, "wants_research")),
            research_speedups=parse_number(cell(row, "research_speedups")),
            research_truegold_dust=parse_number(cell(row, "research_truegold_dust")),
            research_time_slots=parse_time_labels(
                cell(row, "research_time_slots"), DayType.research, week_times, result.warnings
            ),
            wants_troops=parse_bool(cell(row, "wants_troops")),
            troops_speedups=parse_number(cell(row, "troops_speedups")),
            troops_time_slots=parse_time_labels(
                cell(row, "troops_time_slots"), DayType.troops, week_times, result.warnings
            ),
            additional_notes=cell(row, "additional_notes") or None,
            suggestions=cell(row, "suggestions") or None,
        )
        if player_id in by_player:
            result.merged += 1
        by_player[player_id] = submission

    result.submissions = list(by_player.values())
    if result.warnings:
        logger.warning("CSV_IMPORT: %d warnings, first: %s", len(result.warnings), result.warnings[0])
    logger.info(
        "CSV_IMPORT: rows=%d skipped=%d merged=%d submissions=%d",
        result.rows_read,
        result.rows_skipped,
        result.merged,
        len(result.submissions),
    )
    return result


# ---------------------------------------------------------------------------
# CSV export
# ---------------------------------------------------------------------------

EXPORT_HEADERS = [
    "Timestamp",
    "Which alliance are you in?",
    "Non of the above (type it here)",
    "What is your character name?",
    "What is your player ID?",
    "Is this form a new submission or a re-submission?",
    "Do you want a Construction day appointment?",
    "Construction day speedups (days)",
    "How much truegold do you have?",
    "Construction day appointment times",
    "Do you want a Research day appointment?",
    "Research day speedups (days)",
    "How much truegold dust do you have?",
    "Research day appointment times",
    "Do you want a Troops Training day appointment?",
    "Troops Training day speedups (days)",
    "Troops Training day appointment times",
    "Additional notes",
    "Suggestions",
]


def export_submissions_csv(rows: List[object], week_times: Optional[WeekTimes] = None) -> str:
    """
    Render submissions back into the import format (round-trips through
    parse_submission_csv). *rows* are FormSubmission rows or SubmissionData.
    """
    week_times = week_times or DEFAULT_WEEK_TIMES
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)

    def labels(day: DayType, slots: List[int]) -> str:
        return ", ".join(slot_to_label(day, s, week_times) for s in slots)

    def yes_no(flag: bool) -> str:
        return "Yes" if flag else "No"

    for row in rows:
        submitted_at = getattr(row, "submitted_at", None)
        writer.writerow([
            submitted_at.strftime("%Y-%m-%d %H:%M:%S") if submitted_at else "",
            row.alliance,
            row.custom_alliance or "",
            row.character_name,
            row.player_id,
            row.submission_type,
            yes_no(row.wants_construction),
            row.construction_speedups,
            row.construction_truegold,
            labels(DayType.construction, row.construction_time_slots or []),
            yes_no(row.wants_research),
            row.research_speedups,
            row.research_truegold_dust,
            labels(DayType.research, row.research_time_slots or []),
            yes_no(row.wants_troops),
            row.troops_speedups,
            labels(DayType.troops, row.troops_time_slots or []),
            row.additional_notes or "",
            row.suggestions or "",
        ])
    return buffer.getvalue()
