"""
Plain-text schedule export.

    ** Construction Day **
    00:00 [ABC] PlayerOne
    00:15 [EMPTY]
    ...

Every slot of the day gets a line; empty slots are written explicitly.
"""

from typing import List, Optional

from prep_appointments.services.day_schedule import DaySchedule, DayType, ScheduledAppointment, WeekSchedule
from prep_appointments.utils.slot_times import WeekTimes, slot_to_label

EMPTY_MARKER = "[EMPTY]"


def format_player_name(alliance: str, name: str) -> str:
    if alliance:
        return f"[{alliance}] {name}"
    return name


def format_slot_line(label: str, appointment: Optional[ScheduledAppointment]) -> str:
    if appointment is None:
        return f"{label} {EMPTY_MARKER}"
    return f"{label} {format_player_name(appointment.alliance, appointment.display_name)}"


def render_day(schedule: DaySchedule, week_times: Optional[WeekTimes] = None) -> str:
    lines: List[str] = [f"** {schedule.day.display_title} Day **"]
    for slot, appointment in schedule.rows():
        lines.append(format_slot_line(slot_to_label(schedule.day, slot, week_times), appointment))
    return "\n".join(lines) + "\n"


def render_week(week: WeekSchedule, week_times: Optional[WeekTimes] = None) -> str:
    return "\n".join(render_day(week.for_day(day), week_times) for day in DayType)
