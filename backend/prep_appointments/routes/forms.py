import logging
import secrets
import string
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session, select

from prep_appointments.database import get_session
from prep_appointments.models.form_submission import FormSubmission
from prep_appointments.models.predetermined_slot import PredeterminedSlot
from prep_appointments.models.prep_form import PrepForm
from prep_appointments.services.day_rules import RESEARCH_BRIDGE_SLOT
from prep_appointments.services.day_schedule import DayType, InvalidSlotLabel
from prep_appointments.services.submission_import import effective_alliance
from prep_appointments.utils.form_guards import day_sizes_for, latest_snapshot, require_form, week_times_for
from prep_appointments.utils.slot_times import label_to_slot, parse_clock

logger = logging.getLogger(__name__)

router = APIRouter()

FORM_CODE_LENGTH = 12
_CODE_ALPHABET = string.ascii_letters + string.digits


class FormCreate(BaseModel):
    name: str
    server_number: Optional[int] = None
    alliances: List[str] = []
    intro_text: Optional[str] = None
    construction_start_time: str = "00:00"
    construction_end_time: Optional[str] = None
    research_start_time: str = "00:00"
    research_end_time: Optional[str] = None
    troops_start_time: str = "00:00"
    troops_end_time: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("alliances")
    @classmethod
    def normalize_alliances(cls, v):
        return [a.strip() for a in v if a and a.strip()]

    @field_validator(
        "construction_start_time",
        "construction_end_time",
        "research_start_time",
        "research_end_time",
        "troops_start_time",
        "troops_end_time",
    )
    @classmethod
    def validate_clock(cls, v):
        if v is None or not v.strip():
            return None
        parse_clock(v)
        return v.strip()

    @model_validator(mode="after")
    def default_start_times(self):
        for day in DayType:
            if not getattr(self, f"{day.value}_start_time"):
                setattr(self, f"{day.value}_start_time", "00:00")
        return self


class TimeSlotResponse(BaseModel):
    slot: int
    time: str


class FormResponse(BaseModel):
    id: int
    code: str
    name: str
    server_number: Optional[int]
    alliances: List[str]
    intro_text: Optional[str]
    created_at: datetime
    time_slots: Dict[str, List[TimeSlotResponse]]


class PredeterminedSlotIn(BaseModel):
    day: DayType
    time: str
    player_id: Optional[str] = None
    alliance: Optional[str] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def require_player_reference(self):
        if not (self.player_id and self.player_id.strip()) and not (self.alliance and self.name):
            raise ValueError("player_id or alliance + name is required")
        return self


class PredeterminedSlotResponse(BaseModel):
    day: DayType
    slot: int
    time: str
    player_id: str
    alliance: str
    name: str


def generate_form_code() -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(FORM_CODE_LENGTH))


def _form_response(form: PrepForm) -> FormResponse:
    week_times = week_times_for(form)
    return FormResponse(
        id=form.id,
        code=form.code,
        name=form.name,
        server_number=form.server_number,
        alliances=form.alliances or [],
        intro_text=form.intro_text,
        created_at=form.created_at,
        time_slots={
            day.value: [TimeSlotResponse(slot=s, time=t) for s, t in week_times.for_day(day).table()]
            for day in DayType
        },
    )


@router.post("/forms", response_model=FormResponse, status_code=201)
def create_form(payload: FormCreate, session: Session = Depends(get_session)):
    code = generate_form_code()
    while session.exec(select(PrepForm).where(PrepForm.code == code)).first():
        code = generate_form_code()

    form = PrepForm(code=code, **payload.model_dump())
    session.add(form)
    session.commit()
    session.refresh(form)
    logger.info("FORMS: created form id=%s code=%s", form.id, form.code)
    return _form_response(form)


@router.get("/forms/{code}", response_model=FormResponse)
def get_form(code: str, session: Session = Depends(get_session)):
    return _form_response(require_form(session, code))


def _has_form_data(session: Session, form: PrepForm) -> bool:
    """Submissions, predetermined slots or a schedule refer to slot numbers of this form."""
    if session.exec(select(FormSubmission).where(FormSubmission.form_id == form.id)).first():
        return True
    if session.exec(select(PredeterminedSlot).where(PredeterminedSlot.form_id == form.id)).first():
        return True
    return latest_snapshot(session, form.id) is not None


@router.put("/forms/{code}", response_model=FormResponse)
def update_form(code: str, payload: FormCreate, session: Session = Depends(get_session)):
    """
    Replace a form's configuration (name, alliances, intro text, day windows).

    A day window may be shifted at any time. Changing how many slots a day
    has is rejected with 409 once the form has submissions, predetermined
    slots or a schedule.
    """
    form = require_form(session, code)
    old_sizes = day_sizes_for(form)
    new_sizes = day_sizes_for(payload)
    resized = [day.value for day in DayType if old_sizes[day] != new_sizes[day]]
    if resized and _has_form_data(session, form):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot change the number of slots for {', '.join(resized)} after data was collected",
        )

    for key, value in payload.model_dump().items():
        setattr(form, key, value)
    session.add(form)
    session.commit()
    session.refresh(form)
    logger.info("FORMS: form=%s config updated resized=%s", form.code, resized)
    return _form_response(form)


@router.get("/forms/{code}/predetermined", response_model=List[PredeterminedSlotResponse])
def list_predetermined(code: str, session: Session = Depends(get_session)):
    form = require_form(session, code)
    week_times = week_times_for(form)
    rows = session.exec(
        select(PredeterminedSlot)
        .where(PredeterminedSlot.form_id == form.id)
        .order_by(PredeterminedSlot.day, PredeterminedSlot.slot)
    ).all()
    return [
        PredeterminedSlotResponse(
            day=row.day,
            slot=row.slot,
            time=dict(week_times.for_day(row.day).table()).get(row.slot, ""),
            player_id=row.player_id,
            alliance=row.alliance,
            name=row.name,
        )
        for row in rows
    ]


def _resolve_player(session: Session, form_id: int, item: PredeterminedSlotIn) -> FormSubmission:
    """Find the submission a predetermined slot refers to (by id, else alliance + name)."""
    submissions = session.exec(select(FormSubmission).where(FormSubmission.form_id == form_id)).all()
    if item.player_id and item.player_id.strip():
        wanted = item.player_id.strip()
        for submission in submissions:
            if submission.player_id == wanted:
                return submission
        raise HTTPException(status_code=400, detail=f"No submission for player ID {wanted}")

    alliance = item.alliance.strip().lower()
    name = item.name.strip().lower()
    for submission in submissions:
        if (
            effective_alliance(submission.alliance, submission.custom_alliance).lower() == alliance
            and submission.character_name.strip().lower() == name
        ):
            return submission
    raise HTTPException(status_code=400, detail=f"No submission for [{item.alliance}] {item.name}")


@router.put("/forms/{code}/predetermined", response_model=List[PredeterminedSlotResponse])
def replace_predetermined(
    code: str,
    items: List[PredeterminedSlotIn],
    session: Session = Depends(get_session),
):
    """Replace all predetermined slots of a form."""
    form = require_form(session, code)
    week_times = week_times_for(form)
    construction_last = week_times.construction.slot_count()

    rows: List[PredeterminedSlot] = []
    seen: Dict[tuple, str] = {}
    for item in items:
        try:
            slot = label_to_slot(item.day, item.time, week_times)
        except InvalidSlotLabel as e:
            raise HTTPException(status_code=400, detail=str(e))
        key = (item.day, slot)
        if key in seen:
            raise HTTPException(
                status_code=400, detail=f"Duplicate predetermined slot: {item.day.value} {item.time}"
            )
        submission = _resolve_player(session, form.id, item)
        for (day, _), player_id in seen.items():
            if day == item.day and player_id == submission.player_id:
                raise HTTPException(
                    status_code=400,
                    detail=f"Player {submission.player_id} has two predetermined {item.day.value} slots",
                )
        seen[key] = submission.player_id
        rows.append(
            PredeterminedSlot(
                form_id=form.id,
                day=item.day,
                slot=slot,
                player_id=submission.player_id,
                alliance=effective_alliance(submission.alliance, submission.custom_alliance),
                name=submission.character_name,
            )
        )

    bridge_construction = seen.get((DayType.construction, construction_last))
    bridge_research = seen.get((DayType.research, RESEARCH_BRIDGE_SLOT))
    if bridge_construction and bridge_research and bridge_construction != bridge_research:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Bridge conflict: construction slot {construction_last} is predetermined for "
                f"{bridge_construction} but research slot 1 for {bridge_research}"
            ),
        )

    for existing in session.exec(select(PredeterminedSlot).where(PredeterminedSlot.form_id == form.id)).all():
        session.delete(existing)
    session.flush()
    for row in rows:
        session.add(row)
    session.commit()
    logger.info("FORMS: form=%s predetermined slots replaced count=%d", form.code, len(rows))
    return list_predetermined(code, session)
