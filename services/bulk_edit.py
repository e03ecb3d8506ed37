"""Массовые отметки доступности на месяц"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, List, Optional

from config import EDITABLE_FLOOR_HOURS
from database import TOPIC_TRAINER_AVAILABILITY
from database.models import normalize_trainer_id
from services.calendar_grid import (
    DateLike,
    editable_floor,
    month_dates,
    month_end,
    parse_month,
    to_date_string,
)
from services.in_flight import InFlightRegistry
from services.live_sync import LiveSyncCoordinator

logger = logging.getLogger(__name__)


class DayClass(str, Enum):
    """Класс дней для массовой операции"""
    WEEKDAY = "weekdays"
    WEEKEND = "weekends"
    ALL = "all"


def classify(day: date) -> DayClass:
    """Будний день (Пн-Пт) или выходной (Сб, Вс)"""
    return DayClass.WEEKEND if day.weekday() >= 5 else DayClass.WEEKDAY


def matches(day: date, classification: DayClass) -> bool:
    return classification is DayClass.ALL or classify(day) is classification


def editable_month_dates(month: DateLike, floor: date) -> List[date]:
    """Дни месяца, которые ещё можно редактировать"""
    return [d for d in month_dates(month) if d >= floor]


@dataclass
class BulkEditResult:
    """Итог массовой операции"""
    month: str
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class BulkEditOperations:
    """Отметки на будни, выходные, все дни и очистка месяца.

    Даты с одобренным или ожидающим отсутствием пропускаются.
    """

    def __init__(
        self,
        store,
        live_sync: LiveSyncCoordinator,
        clock: Callable[[], datetime] = datetime.now,
        floor_hours: int = EDITABLE_FLOOR_HOURS,
        in_flight: Optional[InFlightRegistry] = None
    ):
        self.store = store
        self.live_sync = live_sync
        self.clock = clock
        self.floor_hours = floor_hours
        self.in_flight = in_flight or InFlightRegistry()

    async def mark_weekdays(self, trainer_id, month: DateLike) -> BulkEditResult:
        return await self.apply(trainer_id, month, DayClass.WEEKDAY, True)

    async def mark_weekends(self, trainer_id, month: DateLike) -> BulkEditResult:
        return await self.apply(trainer_id, month, DayClass.WEEKEND, True)

    async def mark_all_days(self, trainer_id, month: DateLike) -> BulkEditResult:
        return await self.apply(trainer_id, month, DayClass.ALL, True)

    async def clear_month(self, trainer_id, month: DateLike) -> BulkEditResult:
        return await self.apply(trainer_id, month, DayClass.ALL, None)

    async def apply(
        self,
        trainer_id,
        month: DateLike,
        classification: DayClass,
        available: Optional[bool]
    ) -> BulkEditResult:
        """available=None очищает отметки"""
        trainer_key = normalize_trainer_id(trainer_id)
        first = parse_month(month)
        result = BulkEditResult(month=first.strftime("%Y-%m"))
        floor = editable_floor(self.clock(), self.floor_hours)
        candidates = [
            to_date_string(d)
            for d in editable_month_dates(first, floor)
            if matches(d, DayClass(classification))
        ]
        if not candidates:
            return result

        # Месяц и каждая дата: одиночная отметка той же даты получит отказ
        keys = [(trainer_key, result.month)] + [(trainer_key, d) for d in candidates]
        with self.in_flight.hold(*keys):
            # Без дат отсутствия нельзя гарантировать, что они не будут затронуты
            rows = await self.store.get_absence_dates(
                to_date_string(first), to_date_string(month_end(first)), trainer_id=trainer_key
            )
            protected = set()
            for row in rows:
                if normalize_trainer_id(row.id) == trainer_key:
                    protected.update(row.approved_dates)
                    protected.update(row.pending_dates)

            for day in candidates:
                (result.skipped if day in protected else result.applied).append(day)

            if result.applied:
                if available is None:
                    await self.store.clear_availability_dates(trainer_key, result.applied)
                else:
                    await self.store.set_availability_dates(trainer_key, result.applied, available)

        if result.applied:
            logger.info(
                f"Тренер {trainer_key}, {result.month}: {classification.value} "
                f"{'очищено' if available is None else 'отмечено'} {len(result.applied)}, "
                f"пропущено из-за отсутствий {len(result.skipped)}"
            )
            self.live_sync.invalidate(TOPIC_TRAINER_AVAILABILITY)
        return result
