"""Ошибки модуля расписания"""


class SchedulingError(Exception):
    """Базовая ошибка расписания тренеров"""


class EditableFloorError(SchedulingError):
    """Дата раньше допустимой для редактирования (сейчас + 24 часа)"""

    def __init__(self, dates, floor):
        self.dates = sorted(dates)
        self.floor = floor
        super().__init__(f"Нельзя изменить даты раньше {floor}: {', '.join(self.dates)}")


class AbsenceValidationError(SchedulingError):
    """Некорректные параметры заявки на отсутствие"""


class AbsenceRequestNotFound(SchedulingError):
    """Заявка не найдена"""


class InvalidTransitionError(SchedulingError):
    """Заявка уже рассмотрена (одобрена или отклонена)"""

    def __init__(self, request_id, status):
        self.request_id = request_id
        self.status = status
        super().__init__(f"Заявка {request_id} уже в статусе {status.value}")


class ActionInFlightError(SchedulingError):
    """Действие над этой сущностью уже выполняется"""

    def __init__(self, key):
        self.key = key
        super().__init__(f"Действие уже выполняется: {key}")
