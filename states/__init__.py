from .forms import TrainerRegistration, AbsenceForm, AdminRejectAbsence

__all__ = ["TrainerRegistration", "AbsenceForm", "AdminRejectAbsence"]
