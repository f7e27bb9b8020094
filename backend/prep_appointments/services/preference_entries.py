"""
Turn stored submissions into per-day preference entries.

Scores (higher = earlier in the queue):
  construction = truegold * 2000 + speedups * 30
  research     = truegold dust * 1000 + speedups * 30
  troops       = speedups

Rank is the position in score order (1 = first); equal scores keep
submission order. Submissions name a set of acceptable times, not an
order, so each player's slots are ordered by how popular they are among
that day's submissions (most contested first, ties by slot).

Works on FormSubmission rows or SubmissionData; both carry the same fields.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from prep_appointments.services.day_schedule import DayType, PreferenceEntry
from prep_appointments.services.submission_import import effective_alliance
from prep_appointments.utils.slot_times import order_by_popularity


@dataclass(frozen=True)
class PredeterminedAssignment:
    day: DayType
    slot: int
    player_id: str
    alliance: str = ""
    name: str = ""


def construction_score(submission) -> int:
    return (submission.construction_truegold or 0) * 2000 + (submission.construction_speedups or 0) * 30


def research_score(submission) -> int:
    return (submission.research_truegold_dust or 0) * 1000 + (submission.research_speedups or 0) * 30


def troops_score(submission) -> int:
    return submission.troops_speedups or 0


def day_score(submission, day: DayType) -> int:
    return {
        DayType.construction: construction_score,
        DayType.research: research_score,
        DayType.troops: troops_score,
    }[DayType(day)](submission)


def day_slots(submission, day: DayType) -> List[int]:
    day = DayType(day)
    if not getattr(submission, f"wants_{day.value}"):
        return []
    return list(getattr(submission, f"{day.value}_time_slots") or [])


def build_day_entries(
    day: DayType,
    submissions: Sequence[object],
    predetermined: Iterable[PredeterminedAssignment] = (),
) -> List[PreferenceEntry]:
    """Entries for one day, in rank order."""
    day = DayType(day)
    wanting = [s for s in submissions if day_slots(s, day)]

    popularity: Dict[int, int] = {}
    for submission in wanting:
        for slot in set(day_slots(submission, day)):
            popularity[slot] = popularity.get(slot, 0) + 1

    fixed: Dict[str, PredeterminedAssignment] = {}
    for assignment in predetermined:
        if DayType(assignment.day) == day:
            fixed[assignment.player_id] = assignment

    ranked = sorted(wanting, key=lambda s: -day_score(s, day))
    entries: List[PreferenceEntry] = []
    for rank, submission in enumerate(ranked, start=1):
        assignment: Optional[PredeterminedAssignment] = fixed.pop(submission.player_id, None)
        entries.append(
            PreferenceEntry(
                player_id=submission.player_id,
                alliance=effective_alliance(submission.alliance, submission.custom_alliance),
                name=submission.character_name,
                preferred_slots=tuple(order_by_popularity(day_slots(submission, day), popularity)),
                priority_rank=rank,
                predetermined_slot=assignment.slot if assignment else None,
                score=day_score(submission, day),
            )
        )

    # Predetermined players without a submission for this day
    for assignment in fixed.values():
        entries.append(
            PreferenceEntry(
                player_id=assignment.player_id,
                alliance=assignment.alliance,
                name=assignment.name,
                priority_rank=0,
                predetermined_slot=assignment.slot,
            )
        )
    return entries


def build_week_entries(
    submissions: Sequence[object],
    predetermined: Iterable[PredeterminedAssignment] = (),
) -> Dict[DayType, List[PreferenceEntry]]:
    predetermined = list(predetermined)
    return {day: build_day_entries(day, submissions, predetermined) for day in DayType}
