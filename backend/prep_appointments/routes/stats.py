from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from prep_appointments.database import get_session
from prep_appointments.models.form_submission import FormSubmission
from prep_appointments.services.preference_entries import build_week_entries
from prep_appointments.services.schedule_stats import compute_statistics
from prep_appointments.utils.form_guards import require_form, week_times_for

router = APIRouter()


class StatsResponse(BaseModel):
    form_code: str
    total_submissions: int
    alliance_counts: Dict[str, Dict[str, int]]
    slot_popularity: Dict[str, Dict[str, int]]


@router.get("/forms/{code}/stats", response_model=StatsResponse)
def get_stats(code: str, session: Session = Depends(get_session)):
    """Alliance participation and time popularity. No player data."""
    form = require_form(session, code)
    submissions = session.exec(
        select(FormSubmission).where(FormSubmission.form_id == form.id).order_by(FormSubmission.id)
    ).all()
    stats = compute_statistics(build_week_entries(submissions)).to_dict(week_times_for(form))
    return StatsResponse(form_code=form.code, total_submissions=len(submissions), **stats)
