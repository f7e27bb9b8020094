from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from prep_appointments.models.form_submission import FormSubmission
    from prep_appointments.models.predetermined_slot import PredeterminedSlot
    from prep_appointments.models.schedule_snapshot import ScheduleSnapshot


class PrepForm(SQLModel, table=True):
    __tablename__ = "prepform"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True, max_length=12)
    name: str
    server_number: Optional[int] = None
    alliances: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    intro_text: Optional[str] = None

    # Day windows (HH:MM); None end means the full 49-slot table
    construction_start_time: str = Field(default="00:00")
    construction_end_time: Optional[str] = None
    research_start_time: str = Field(default="00:00")
    research_end_time: Optional[str] = None
    troops_start_time: str = Field(default="00:00")
    troops_end_time: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    submissions: List["FormSubmission"] = Relationship(back_populates="form")
    predetermined_slots: List["PredeterminedSlot"] = Relationship(back_populates="form")
    snapshots: List["ScheduleSnapshot"] = Relationship(back_populates="form")
