from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from prep_appointments.models.prep_form import PrepForm


class ScheduleSnapshot(SQLModel, table=True):
    """Serialized WeekSchedule of one generation run (latest per form is current)."""

    __tablename__ = "schedulesnapshot"

    id: Optional[int] = Field(default=None, primary_key=True)
    form_id: int = Field(foreign_key="prepform.id", index=True)
    version_number: int
    mode: str = Field(default="replace")  # "replace" | "append"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None
    week_json: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    unplaced_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    manual_edits: int = Field(default=0)

    # Relationships
    form: "PrepForm" = Relationship(back_populates="snapshots")
