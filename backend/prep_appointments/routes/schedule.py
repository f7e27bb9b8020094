"""Schedule endpoints: generate, view, manual edit and text export.

Every generation stores a new ScheduleSnapshot (version_number + 1). The
latest snapshot is the current schedule; manual edits update it in place.
Append mode seeds the run from the latest snapshot.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from sqlmodel import Session, select

from prep_appointments.database import get_session
from prep_appointments.models.form_submission import FormSubmission
from prep_appointments.models.predetermined_slot import PredeterminedSlot
from prep_appointments.models.prep_form import PrepForm
from prep_appointments.models.schedule_snapshot import ScheduleSnapshot
from prep_appointments.services.day_schedule import (
    BridgeConflict,
    DayType,
    DuplicatePlayer,
    ScheduleError,
    SlotOccupied,
    WeekSchedule,
)
from prep_appointments.services.preference_entries import build_week_entries
from prep_appointments.services.schedule_export import render_day, render_week
from prep_appointments.services.schedule_orchestrator import GenerationMode, generate_week
from prep_appointments.services.submission_import import effective_alliance
from prep_appointments.utils.form_guards import (
    day_sizes_for,
    latest_snapshot,
    require_form,
    require_snapshot,
    week_times_for,
)
from prep_appointments.utils.manual_assignment import (
    ManualEditError,
    ManualOccupant,
    apply_manual_edit,
    parse_manual_label,
)
from prep_appointments.utils.slot_times import WeekTimes, slot_to_label

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class GenerateRequest(BaseModel):
    append: bool = False


class SlotRow(BaseModel):
    slot: int
    time: str
    is_empty: bool
    player_id: Optional[str] = None
    alliance: Optional[str] = None
    name: Optional[str] = None
    locked: bool = False


class UnplacedRow(BaseModel):
    player_id: str
    alliance: str
    name: str


class ScheduleResponse(BaseModel):
    form_code: str
    version_number: int
    mode: str
    manual_edits: int
    days: Dict[str, List[SlotRow]]
    unplaced: Dict[str, List[UnplacedRow]]


class GenerateResponse(BaseModel):
    schedule: ScheduleResponse
    summary: dict
    duration_ms: int


class ManualEditRequest(BaseModel):
    """Set or clear one slot.

    Give either player_id (alliance/name looked up from submissions when
    omitted) or label ("[ALLIANCE] Name"). Nothing set clears the slot.
    """

    player_id: Optional[str] = None
    alliance: Optional[str] = None
    name: Optional[str] = None
    label: Optional[str] = None


# ============================================================================
# Helpers
# ============================================================================


def _schedule_response(form: PrepForm, snapshot: ScheduleSnapshot, week_times: WeekTimes) -> ScheduleResponse:
    week = WeekSchedule.from_dict(snapshot.week_json)
    days: Dict[str, List[SlotRow]] = {}
    for day in DayType:
        rows = []
        for slot, appointment in week.for_day(day).rows():
            rows.append(
                SlotRow(
                    slot=slot,
                    time=slot_to_label(day, slot, week_times),
                    is_empty=appointment is None,
                    player_id=appointment.player_id if appointment else None,
                    alliance=appointment.alliance if appointment else None,
                    name=appointment.name if appointment else None,
                    locked=appointment.locked if appointment else False,
                )
            )
        days[day.value] = rows
    unplaced = {
        day: [UnplacedRow(**row) for row in rows] for day, rows in (snapshot.unplaced_json or {}).items()
    }
    return ScheduleResponse(
        form_code=form.code,
        version_number=snapshot.version_number,
        mode=snapshot.mode,
        manual_edits=snapshot.manual_edits,
        days=days,
        unplaced=unplaced,
    )


def _raise_http(e: ScheduleError) -> None:
    if isinstance(e, (BridgeConflict, SlotOccupied, DuplicatePlayer)):
        raise HTTPException(status_code=409, detail=f"{type(e).__name__}: {e}")
    raise HTTPException(status_code=400, detail=f"{type(e).__name__}: {e}")


def _resolve_occupant(session: Session, form: PrepForm, request: ManualEditRequest) -> Optional[ManualOccupant]:
    if request.label is not None:
        return parse_manual_label(request.label)
    if not request.player_id or not request.player_id.strip():
        return None

    player_id = request.player_id.strip()
    alliance, name = request.alliance, request.name
    if alliance is None or name is None:
        submission = session.exec(
            select(FormSubmission).where(FormSubmission.form_id == form.id, FormSubmission.player_id == player_id)
        ).first()
        if submission:
            alliance = alliance if alliance is not None else effective_alliance(
                submission.alliance, submission.custom_alliance
            )
            name = name if name is not None else submission.character_name
    return ManualOccupant(player_id=player_id, alliance=alliance or "", name=name or "")


# ============================================================================
# Routes
# ============================================================================


@router.post("/forms/{code}/schedule/generate", response_model=GenerateResponse)
def generate(code: str, request: GenerateRequest, session: Session = Depends(get_session)):
    """Run the allocation engine over the form's submissions."""
    form = require_form(session, code)
    week_times = week_times_for(form)
    start = time.perf_counter()

    submissions = session.exec(
        select(FormSubmission).where(FormSubmission.form_id == form.id).order_by(FormSubmission.id)
    ).all()
    predetermined = session.exec(select(PredeterminedSlot).where(PredeterminedSlot.form_id == form.id)).all()
    entries = build_week_entries(submissions, predetermined)

    previous = latest_snapshot(session, form.id)
    mode = GenerationMode.append if request.append else GenerationMode.replace
    prior_week = WeekSchedule.from_dict(previous.week_json) if (previous and request.append) else None

    try:
        result = generate_week(entries, mode, prior_week, sizes=day_sizes_for(form))
    except ScheduleError as e:
        logger.warning("SCHEDULE: form=%s generation rejected: %s", form.code, e)
        _raise_http(e)

    snapshot = ScheduleSnapshot(
        form_id=form.id,
        version_number=(previous.version_number + 1) if previous else 1,
        mode=mode.value,
        week_json=result.week.to_dict(),
        unplaced_json={
            day.value: [{"player_id": e.player_id, "alliance": e.alliance, "name": e.name} for e in unplaced]
            for day, unplaced in result.unplaced.items()
        },
    )
    session.add(snapshot)
    session.commit()
    session.refresh(snapshot)

    duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        "SCHEDULE: form=%s version=%d mode=%s unplaced=%d duration_ms=%d",
        form.code,
        snapshot.version_number,
        mode.value,
        sum(len(v) for v in result.unplaced.values()),
        duration_ms,
    )
    return GenerateResponse(
        schedule=_schedule_response(form, snapshot, week_times),
        summary=result.to_dict(),
        duration_ms=duration_ms,
    )


@router.get("/forms/{code}/schedule", response_model=ScheduleResponse)
def get_schedule(code: str, session: Session = Depends(get_session)):
    form = require_form(session, code)
    return _schedule_response(form, require_snapshot(session, form), week_times_for(form))


@router.put("/forms/{code}/schedule/{day}/slots/{slot}", response_model=ScheduleResponse)
def edit_slot(
    code: str,
    day: DayType,
    slot: int,
    request: ManualEditRequest,
    session: Session = Depends(get_session),
):
    """Manual edit. Bridge slots are mirrored; 409 when the mirror cannot be applied."""
    form = require_form(session, code)
    snapshot = require_snapshot(session, form)

    try:
        occupant = _resolve_occupant(session, form, request)
        updated = apply_manual_edit(WeekSchedule.from_dict(snapshot.week_json), day, slot, occupant)
    except ManualEditError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ScheduleError as e:
        logger.warning("SCHEDULE: form=%s manual edit rejected day=%s slot=%d: %s", form.code, day.value, slot, e)
        _raise_http(e)

    snapshot.week_json = updated.to_dict()
    snapshot.manual_edits += 1
    snapshot.updated_at = datetime.now(timezone.utc)
    session.add(snapshot)
    session.commit()
    session.refresh(snapshot)
    return _schedule_response(form, snapshot, week_times_for(form))


@router.get("/forms/{code}/schedule/export", response_class=PlainTextResponse)
def export_week(code: str, session: Session = Depends(get_session)):
    form = require_form(session, code)
    snapshot = require_snapshot(session, form)
    return PlainTextResponse(render_week(WeekSchedule.from_dict(snapshot.week_json), week_times_for(form)))


@router.get("/forms/{code}/schedule/{day}/export", response_class=PlainTextResponse)
def export_day(code: str, day: DayType, session: Session = Depends(get_session)):
    form = require_form(session, code)
    snapshot = require_snapshot(session, form)
    week = WeekSchedule.from_dict(snapshot.week_json)
    return PlainTextResponse(render_day(week.for_day(day), week_times_for(form)))
