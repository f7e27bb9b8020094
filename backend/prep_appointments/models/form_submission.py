from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from prep_appointments.models.prep_form import PrepForm


class FormSubmission(SQLModel, table=True):
    __tablename__ = "formsubmission"

    id: Optional[int] = Field(default=None, primary_key=True)
    form_id: int = Field(foreign_key="prepform.id", index=True)
    submitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    alliance: str
    custom_alliance: Optional[str] = None
    character_name: str
    player_id: str = Field(index=True)
    submission_type: str = Field(default="New submission")  # "New submission" | "Re-Submission"

    wants_construction: bool = Field(default=False)
    construction_speedups: int = Field(default=0)
    construction_truegold: int = Field(default=0)
    construction_time_slots: List[int] = Field(default_factory=list, sa_column=Column(JSON))

    wants_research: bool = Field(default=False)
    research_speedups: int = Field(default=0)
    research_truegold_dust: int = Field(default=0)
    research_time_slots: List[int] = Field(default_factory=list, sa_column=Column(JSON))

    wants_troops: bool = Field(default=False)
    troops_speedups: int = Field(default=0)
    troops_time_slots: List[int] = Field(default_factory=list, sa_column=Column(JSON))

    additional_notes: Optional[str] = None
    suggestions: Optional[str] = None

    # Relationships
    form: "PrepForm" = Relationship(back_populates="submissions")
