"""Вычисление статуса дня тренера.

Три источника сводятся к одному DayStatus. Приоритет фиксирован:
одобренное отсутствие, ожидающее отсутствие, доступен, недоступен, ничего.
Одобренное отсутствие перекрывает отметку "доступен" - это подтверждённое
исключение из расписания.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

from database.models import (
    AvailabilitySlot,
    DayStatus,
    TrainerAbsenceDates,
    TrainerSlots,
    normalize_trainer_id,
)
from services.calendar_grid import DateLike, to_date_string


@dataclass
class LookupTables:
    """Три таблицы, из которых выводится статус.

    Ключи - нормализованные ID тренеров, слоты сгруппированы по дате.
    """
    approved_absence_dates: Dict[str, Set[str]] = field(default_factory=dict)
    pending_absence_dates: Dict[str, Set[str]] = field(default_factory=dict)
    slots_by_trainer: Dict[str, Dict[str, List[AvailabilitySlot]]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "LookupTables":
        return cls()

    @classmethod
    def from_lookups(
        cls,
        slot_rows: Iterable[TrainerSlots] = (),
        absence_rows: Iterable[TrainerAbsenceDates] = ()
    ) -> "LookupTables":
        """Собрать таблицы из ответов поиска слотов и дат отсутствия"""
        tables = cls()
        for row in slot_rows:
            by_date = tables.slots_by_trainer.setdefault(normalize_trainer_id(row.id), {})
            for slot in row.slots:
                by_date.setdefault(to_date_string(slot.date), []).append(slot)
        for row in absence_rows:
            key = normalize_trainer_id(row.id)
            tables.approved_absence_dates.setdefault(key, set()).update(row.approved_dates)
            tables.pending_absence_dates.setdefault(key, set()).update(row.pending_dates)
        return tables

    def absence_dates(self, trainer_id) -> Set[str]:
        """Все даты с одобренным или ожидающим отсутствием"""
        key = normalize_trainer_id(trainer_id)
        return self.approved_absence_dates.get(key, set()) | self.pending_absence_dates.get(key, set())


def resolve(trainer_id, day: DateLike, tables: LookupTables) -> DayStatus:
    """Статус тренера на дату. Чистая функция без побочных эффектов."""
    key = normalize_trainer_id(trainer_id)
    day_str = to_date_string(day)

    if day_str in tables.approved_absence_dates.get(key, ()):
        return DayStatus.APPROVED_ABSENCE
    if day_str in tables.pending_absence_dates.get(key, ()):
        return DayStatus.PENDING_ABSENCE

    slots = tables.slots_by_trainer.get(key, {}).get(day_str, [])
    if any(slot.is_available for slot in slots):
        return DayStatus.AVAILABLE
    if slots:
        return DayStatus.UNAVAILABLE
    return DayStatus.NONE


def resolve_window(trainer_id, days: Iterable[DateLike], tables: LookupTables) -> List[Tuple[str, DayStatus]]:
    """Статусы для всех дат окна"""
    return [(to_date_string(day), resolve(trainer_id, day, tables)) for day in days]
