"""
Manual schedule edits from the dashboard.

Invariants enforced on every edit:

1. **One slot per player per day**: a player cannot be put on a second slot
2. **Bridge**: Construction's last slot and Research slot 1 always hold the
   same player (or are both empty). An edit on either bridge slot is applied
   to both days in one transaction; if the mirrored half cannot be applied
   the whole edit is rejected with BridgeConflict.
3. **Atomic**: edits work on copies; the caller's WeekSchedule is never
   touched, a rejected edit leaves nothing behind.

Manual assignments are marked with locked=True so regeneration in append
mode and the displacement search leave them alone.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from prep_appointments.services.day_rules import RESEARCH_BRIDGE_SLOT
from prep_appointments.services.day_schedule import (
    BridgeConflict,
    DayType,
    DuplicatePlayer,
    ScheduledAppointment,
    ScheduleError,
    WeekSchedule,
)

logger = logging.getLogger(__name__)

MANUAL_ID_PREFIX = "MANUAL"

_LABEL_RE = re.compile(r"^\s*\[([^\]]*)\]\s*(.+?)\s*$")


class ManualEditError(ScheduleError):
    """Manual edit input could not be understood"""
    pass


@dataclass(frozen=True)
class ManualOccupant:
    player_id: str
    alliance: str = ""
    name: str = ""

    def appointment(self) -> ScheduledAppointment:
        return ScheduledAppointment(player_id=self.player_id, alliance=self.alliance, name=self.name, locked=True)


def parse_manual_label(label: Optional[str]) -> Optional[ManualOccupant]:
    """
    Parse the dashboard's "[ALLIANCE] Name" notation.

    - None or blank -> None (clear the slot)
    - "[ABC] Player" -> ManualOccupant(player_id="MANUAL-ABC-Player", ...)
    """
    if label is None or not label.strip():
        return None
    match = _LABEL_RE.match(label)
    if not match or not match.group(1).strip():
        raise ManualEditError(f"Expected '[ALLIANCE] Name', got {label!r}")
    alliance, name = match.group(1).strip(), match.group(2)
    return ManualOccupant(player_id=f"{MANUAL_ID_PREFIX}-{alliance}-{name}", alliance=alliance, name=name)


def bridge_partner(week: WeekSchedule, day: DayType, slot: int) -> Optional[Tuple[DayType, int]]:
    """Mirrored (day, slot) of a bridge slot, None for ordinary slots."""
    if day == DayType.construction and slot == week.construction.size:
        return DayType.research, RESEARCH_BRIDGE_SLOT
    if day == DayType.research and slot == RESEARCH_BRIDGE_SLOT:
        return DayType.construction, week.construction.size
    return None


def validate_player_free(week: WeekSchedule, day: DayType, slot: int, player_id: str) -> Tuple[bool, Optional[int]]:
    """
    Check the player holds no other slot on *day*.

    Returns:
        (is_free, slot_already_held)
    """
    held = week.for_day(day).slot_of(player_id)
    if held is None or held == slot:
        return True, None
    return False, held


def apply_manual_edit(
    week: WeekSchedule,
    day: DayType,
    slot: int,
    occupant: Optional[ManualOccupant],
) -> WeekSchedule:
    """
    Set or clear one slot. Returns a new WeekSchedule.

    Raises:
        SlotOutOfRange if slot is not on the day
        DuplicatePlayer if the player already holds another slot that day
        BridgeConflict if the mirrored bridge edit cannot be applied
    """
    day = DayType(day)
    updated = week.copy()
    target = updated.for_day(day)
    target.appointment_at(slot)  # range check before anything else

    partner = bridge_partner(updated, day, slot)

    if occupant is None:
        target.clear(slot)
        if partner is not None:
            updated.for_day(partner[0]).clear(partner[1])
        logger.info("MANUAL_EDIT: cleared day=%s slot=%d mirrored=%s", day.value, slot, partner is not None)
        return updated

    is_free, held = validate_player_free(updated, day, slot, occupant.player_id)
    if not is_free:
        raise DuplicatePlayer(occupant.player_id, held)

    if partner is not None:
        partner_day, partner_slot = partner
        is_free, held = validate_player_free(updated, partner_day, partner_slot, occupant.player_id)
        if not is_free:
            logger.warning(
                "MANUAL_EDIT: rejected bridge edit day=%s slot=%d player=%s holds %s slot %d",
                day.value,
                slot,
                occupant.player_id,
                partner_day.value,
                held,
            )
            raise BridgeConflict(
                f"{occupant.player_id} already holds {partner_day.value} slot {held}; "
                f"the bridge needs them on {partner_day.value} slot {partner_slot}"
            )
        updated.for_day(partner_day).place(partner_slot, occupant.appointment(), overwrite=True)

    target.place(slot, occupant.appointment(), overwrite=True)

    last_construction, first_research = updated.bridge_players()
    if last_construction != first_research:
        raise BridgeConflict(
            f"Edit would leave construction slot {updated.construction.size}={last_construction} "
            f"and research slot 1={first_research}"
        )

    logger.info(
        "MANUAL_EDIT: day=%s slot=%d player=%s mirrored=%s", day.value, slot, occupant.player_id, partner is not None
    )
    return updated
