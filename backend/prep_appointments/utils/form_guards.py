"""
Form Lookup Guards and Utilities

Reusable helpers for routes that address a form by its public code:
- Form lookup (404 when unknown)
- Per-form day windows
- Latest schedule snapshot lookup
"""

from typing import Dict, Optional

from fastapi import HTTPException
from sqlmodel import Session, select

from prep_appointments.models.prep_form import PrepForm
from prep_appointments.models.schedule_snapshot import ScheduleSnapshot
from prep_appointments.services.day_schedule import DayType
from prep_appointments.utils.slot_times import DayTimes, WeekTimes


def require_form(session: Session, code: str) -> PrepForm:
    """
    Look up a form by code.

    Raises:
        HTTPException 404: Form not found
    """
    form = session.exec(select(PrepForm).where(PrepForm.code == code)).first()
    if not form:
        raise HTTPException(status_code=404, detail=f"Form {code} not found")
    return form


def week_times_for(form: PrepForm) -> WeekTimes:
    return WeekTimes(
        construction=DayTimes(form.construction_start_time, form.construction_end_time),
        research=DayTimes(form.research_start_time, form.research_end_time),
        troops=DayTimes(form.troops_start_time, form.troops_end_time),
    )


def day_sizes_for(form: PrepForm) -> Dict[DayType, int]:
    week_times = week_times_for(form)
    return {day: week_times.for_day(day).slot_count() for day in DayType}


def latest_snapshot(session: Session, form_id: int) -> Optional[ScheduleSnapshot]:
    return session.exec(
        select(ScheduleSnapshot)
        .where(ScheduleSnapshot.form_id == form_id)
        .order_by(ScheduleSnapshot.version_number.desc())
    ).first()


def require_snapshot(session: Session, form: PrepForm) -> ScheduleSnapshot:
    """
    Raises:
        HTTPException 404: No schedule generated yet
    """
    snapshot = latest_snapshot(session, form.id)
    if not snapshot:
        raise HTTPException(status_code=404, detail=f"No schedule generated for form {form.code}")
    return snapshot
