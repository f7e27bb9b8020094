"""Submission endpoints: form submit, list, CSV import and CSV export.

A submission for a player ID that already exists replaces the earlier one
(new submissions and re-submissions alike); the latest answer counts.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from prep_appointments.database import get_session
from prep_appointments.models.form_submission import FormSubmission
from prep_appointments.models.prep_form import PrepForm
from prep_appointments.services.submission_import import (
    SubmissionData,
    SubmissionValidationError,
    effective_alliance,
    export_submissions_csv,
    parse_submission_csv,
    validate_submission,
)
from prep_appointments.utils.form_guards import require_form, week_times_for

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class SubmissionResponse(BaseModel):
    id: int
    form_id: int
    submitted_at: datetime
    alliance: str
    custom_alliance: Optional[str] = None
    character_name: str
    player_id: str
    submission_type: str
    wants_construction: bool
    construction_speedups: int
    construction_truegold: int
    construction_time_slots: List[int]
    wants_research: bool
    research_speedups: int
    research_truegold_dust: int
    research_time_slots: List[int]
    wants_troops: bool
    troops_speedups: int
    troops_time_slots: List[int]
    additional_notes: Optional[str] = None
    suggestions: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SubmitResponse(BaseModel):
    status: str  # created | replaced
    submission: SubmissionResponse


class CsvImportRequest(BaseModel):
    """Request body for CSV import."""

    raw_text: str  # CSV export of the form, header row first
    clear_existing: bool = False  # Drop all stored submissions before import


class CsvImportResponse(BaseModel):
    form_code: str
    rows_read: int
    rows_skipped: int
    merged: int
    created: int
    replaced: int
    warnings: List[str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _find_submission(session: Session, form_id: int, player_id: str) -> Optional[FormSubmission]:
    return session.exec(
        select(FormSubmission).where(FormSubmission.form_id == form_id, FormSubmission.player_id == player_id)
    ).first()


def upsert_submission(session: Session, form: PrepForm, data: SubmissionData) -> tuple:
    """
    Store *data*, replacing any earlier submission of the same player.

    Returns:
        (FormSubmission, "created" | "replaced")
    """
    values = data.model_dump()
    values["alliance"] = effective_alliance(data.alliance, data.custom_alliance)
    existing = _find_submission(session, form.id, data.player_id)
    if existing:
        for key, value in values.items():
            setattr(existing, key, value)
        existing.submitted_at = datetime.now(timezone.utc)
        session.add(existing)
        return existing, "replaced"

    submission = FormSubmission(form_id=form.id, **values)
    session.add(submission)
    return submission, "created"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/forms/{code}/submissions", response_model=SubmitResponse, status_code=201)
def submit(code: str, payload: SubmissionData, session: Session = Depends(get_session)):
    form = require_form(session, code)
    try:
        validate_submission(payload, week_times_for(form))
    except SubmissionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    submission, status = upsert_submission(session, form, payload)
    session.commit()
    session.refresh(submission)
    logger.info("SUBMISSIONS: form=%s player=%s %s", form.code, submission.player_id, status)
    return SubmitResponse(status=status, submission=SubmissionResponse.model_validate(submission))


@router.get("/forms/{code}/submissions", response_model=List[SubmissionResponse])
def list_submissions(code: str, session: Session = Depends(get_session)):
    form = require_form(session, code)
    rows = session.exec(
        select(FormSubmission).where(FormSubmission.form_id == form.id).order_by(FormSubmission.id)
    ).all()
    return [SubmissionResponse.model_validate(row) for row in rows]


@router.get("/forms/{code}/players/{player_id}", response_model=SubmissionResponse)
def get_player_submission(code: str, player_id: str, session: Session = Depends(get_session)):
    """A player's current submission, used to pre-fill the form on return visits."""
    form = require_form(session, code)
    submission = _find_submission(session, form.id, player_id.strip())
    if not submission:
        raise HTTPException(status_code=404, detail=f"No submission for player {player_id}")
    return SubmissionResponse.model_validate(submission)


@router.post("/forms/{code}/submissions/import", response_model=CsvImportResponse)
def import_submissions(code: str, request: CsvImportRequest, session: Session = Depends(get_session)):
    form = require_form(session, code)
    try:
        parsed = parse_submission_csv(request.raw_text, week_times_for(form))
    except SubmissionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if request.clear_existing:
        for row in session.exec(select(FormSubmission).where(FormSubmission.form_id == form.id)).all():
            session.delete(row)
        session.flush()

    created = replaced = 0
    for data in parsed.submissions:
        _, status = upsert_submission(session, form, data)
        session.flush()
        if status == "created":
            created += 1
        else:
            replaced += 1
    session.commit()

    logger.info("SUBMISSIONS: form=%s csv import created=%d replaced=%d", form.code, created, replaced)
    return CsvImportResponse(
        form_code=form.code,
        rows_read=parsed.rows_read,
        rows_skipped=parsed.rows_skipped,
        merged=parsed.merged,
        created=created,
        replaced=replaced,
        warnings=parsed.warnings,
    )


@router.get("/forms/{code}/submissions/export", response_class=PlainTextResponse)
def export_submissions(code: str, session: Session = Depends(get_session)):
    form = require_form(session, code)
    rows = session.exec(
        select(FormSubmission).where(FormSubmission.form_id == form.id).order_by(FormSubmission.id)
    ).all()
    return PlainTextResponse(export_submissions_csv(rows, week_times_for(form)), media_type="text/csv")
