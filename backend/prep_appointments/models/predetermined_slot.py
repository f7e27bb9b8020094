from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from prep_appointments.services.day_schedule import DayType

if TYPE_CHECKING:
    from prep_appointments.models.prep_form import PrepForm


class PredeterminedSlot(SQLModel, table=True):
    __tablename__ = "predeterminedslot"
    __table_args__ = (SAUniqueConstraint("form_id", "day", "slot", name="uq_predetermined_day_slot"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    form_id: int = Field(foreign_key="prepform.id", index=True)
    day: DayType = Field(sa_column=Column(String))
    slot: int
    player_id: str
    alliance: str = Field(default="")
    name: str = Field(default="")

    # Relationships
    form: "PrepForm" = Relationship(back_populates="predetermined_slots")
