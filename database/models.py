"""Модели данных"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


def normalize_trainer_id(value: Any) -> str:
    """Приводит ID тренера к строке, чтобы 7 и "7" совпадали"""
    return str(value).strip()


class DayStatus(str, Enum):
    """Итоговый статус дня тренера (вычисляется, не хранится)"""
    APPROVED_ABSENCE = "approved_absence"
    PENDING_ABSENCE = "pending_absence"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    NONE = "none"


class RequestState(str, Enum):
    """Статус заявки на отсутствие"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestState.PENDING


@dataclass
class User:
    """Пользователь бота"""
    user_id: int
    username: Optional[str]
    role: Optional[str]  # 'trainer' или 'admin'


@dataclass
class Trainer:
    """Профиль тренера"""
    id: Optional[int]
    user_id: int
    username: Optional[str]
    name: str
    created_at: Optional[str]


@dataclass
class AvailabilitySlot:
    """Отметка доступности тренера на дату.

    Отметки на весь день, которые ставит панель, не имеют времени.
    """
    trainer_id: str
    date: str
    start_time: Optional[str]
    end_time: Optional[str]
    is_available: bool


@dataclass
class AbsenceRequest:
    """Заявка тренера на отсутствие, обе границы включительно"""
    id: Optional[int]
    trainer_id: str
    date_from: str
    date_to: str
    reason: Optional[str]
    status: RequestState
    rejection_reason: Optional[str]
    created_at: Optional[str]
    trainer_name: Optional[str] = None
    decided_at: Optional[str] = None

    def __post_init__(self):
        self.trainer_id = normalize_trainer_id(self.trainer_id)
        self.status = RequestState(self.status)

    def covers(self, date: str) -> bool:
        """Попадает ли дата в диапазон заявки"""
        return self.date_from <= date <= self.date_to

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "trainer_id": self.trainer_id,
            "trainer_name": self.trainer_name,
            "date_from": self.date_from,
            "date_to": self.date_to,
            "status": self.status.value,
            "created_at": self.created_at,
        }
        if self.reason:
            data["reason"] = self.reason
        if self.rejection_reason:
            data["rejection_reason"] = self.rejection_reason
        return data


@dataclass
class TrainerSlots:
    """Ответ поиска слотов по одному тренеру"""
    id: str
    name: str
    slots: List[AvailabilitySlot] = field(default_factory=list)


@dataclass
class TrainerAbsenceDates:
    """Ответ поиска дат отсутствия по одному тренеру"""
    id: str
    name: str
    approved_dates: List[str] = field(default_factory=list)
    pending_dates: List[str] = field(default_factory=list)
