"""Загрузка данных для окна календаря и открытое представление.

Каждый запрос окна получает номер поколения. Если окно успело смениться,
пока запрос выполнялся, его ответ отбрасывается.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple

from database.models import DayStatus
from services.availability_status import LookupTables, resolve_window
from services.calendar_grid import CalendarGrid, Period, to_date_string
from services.selection import SelectionController

logger = logging.getLogger(__name__)


class WindowLoader:
    """Запрос трёх таблиц для окна дат"""

    def __init__(self, store):
        self.store = store
        self.generation = 0
        self.tables = LookupTables.empty()
        self.window: Optional[Tuple[str, str]] = None

    async def load(self, date_from, date_to, trainer_id=None) -> Optional[LookupTables]:
        """Загрузить таблицы. None - ответ устарел и отброшен."""
        self.generation += 1
        generation = self.generation
        date_from = to_date_string(date_from)
        date_to = to_date_string(date_to)

        slot_rows, absence_rows = await asyncio.gather(
            self.store.get_availability_slots(date_from, date_to, trainer_id=trainer_id),
            self.store.get_absence_dates(date_from, date_to, trainer_id=trainer_id),
            return_exceptions=True,
        )
        # Ошибки поиска не блокируют отображение: таблица считается пустой
        if isinstance(slot_rows, Exception):
            logger.warning(f"Не удалось загрузить слоты {date_from}..{date_to}: {slot_rows}")
            slot_rows = []
        if isinstance(absence_rows, Exception):
            logger.warning(f"Не удалось загрузить отсутствия {date_from}..{date_to}: {absence_rows}")
            absence_rows = []

        if generation != self.generation:
            logger.debug(f"Ответ для окна {date_from}..{date_to} устарел (поколение {generation})")
            return None

        self.tables = LookupTables.from_lookups(slot_rows, absence_rows)
        self.window = (date_from, date_to)
        return self.tables


class AvailabilityView:
    """Открытый календарь: сетка, данные окна, выбор и статусы.

    trainer_id - тренер, календарь которого показан. Выбор есть только
    в панели самого тренера.
    """

    def __init__(
        self,
        store,
        trainer_id,
        period: Period = Period.MONTH,
        anchor=None,
        selection: Optional[SelectionController] = None,
        on_refresh: Optional[Callable[["AvailabilityView"], Awaitable[None]]] = None,
        clock: Callable[[], datetime] = datetime.now,
        trainer_name: Optional[str] = None
    ):
        self.trainer_id = trainer_id
        self.trainer_name = trainer_name
        self.grid = CalendarGrid(period, anchor, clock=clock)
        self.loader = WindowLoader(store)
        self.selection = selection
        self.on_refresh = on_refresh

    async def refresh(self) -> bool:
        """Перезапросить данные текущего окна. False - ответ отброшен."""
        first, last = self.grid.window()
        tables = await self.loader.load(first, last, trainer_id=self.trainer_id)
        return tables is not None

    async def handle_invalidate(self):
        """Подписчик живой синхронизации"""
        if await self.refresh() and self.on_refresh is not None:
            await self.on_refresh(self)

    def statuses(self) -> List[Tuple[str, DayStatus]]:
        return resolve_window(self.trainer_id, self.grid.dates(), self.loader.tables)
