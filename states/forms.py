"""FSM состояния"""
from aiogram.fsm.state import State, StatesGroup


class TrainerRegistration(StatesGroup):
    """Ввод имени при создании профиля тренера"""
    waiting_for_name = State()


class AbsenceForm(StatesGroup):
    """Подача заявки на отсутствие: диапазон уже выбран, ждём причину"""
    waiting_for_reason = State()


class AdminRejectAbsence(StatesGroup):
    """Отклонение заявки администратором"""
    waiting_for_reason = State()
