from prep_appointments.models.form_submission import FormSubmission
from prep_appointments.models.predetermined_slot import PredeterminedSlot
from prep_appointments.models.prep_form import PrepForm
from prep_appointments.models.schedule_snapshot import ScheduleSnapshot

__all__ = [
    "PrepForm",
    "FormSubmission",
    "PredeterminedSlot",
    "ScheduleSnapshot",
]
