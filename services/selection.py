"""Выбор нескольких дат в панели тренера"""
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Set, Tuple

from config import EDITABLE_FLOOR_HOURS
from database.models import AbsenceRequest
from services.calendar_grid import DateLike, editable_floor, is_editable, to_date_string


class SelectionController:
    """Набор выбранных дат.

    Даты раньше допустимой (сейчас + 24 часа) выбрать нельзя. Выбор
    сохраняется при навигации и сбрасывается после успешного действия.
    """

    def __init__(
        self,
        trainer_id,
        editor,
        workflow,
        clock: Callable[[], datetime] = datetime.now,
        floor_hours: int = EDITABLE_FLOOR_HOURS,
        selected: Iterable[str] = ()
    ):
        self.trainer_id = trainer_id
        self.editor = editor
        self.workflow = workflow
        self.clock = clock
        self.floor_hours = floor_hours
        self._selected: Set[str] = set()
        for day in selected:
            self.toggle(day)

    def floor(self) -> date:
        return editable_floor(self.clock(), self.floor_hours)

    @property
    def dates(self) -> List[str]:
        return sorted(self._selected)

    def __contains__(self, day) -> bool:
        return to_date_string(day) in self._selected

    def __len__(self) -> int:
        return len(self._selected)

    def toggle(self, day: DateLike) -> bool:
        """Добавить или убрать дату. Возвращает True, если выбор изменился."""
        if not is_editable(day, self.floor()):
            return False
        day_str = to_date_string(day)
        if day_str in self._selected:
            self._selected.remove(day_str)
        else:
            self._selected.add(day_str)
        return True

    def clear(self):
        self._selected.clear()

    def absence_range(self) -> Optional[Tuple[str, str]]:
        """Диапазон заявки: от самой ранней до самой поздней выбранной даты.

        Промежуточные невыбранные дни тоже входят в диапазон.
        """
        if not self._selected:
            return None
        ordered = self.dates
        return ordered[0], ordered[-1]

    async def make_available(self) -> List[str]:
        return await self._set(True)

    async def mark_unavailable(self) -> List[str]:
        return await self._set(False)

    async def _set(self, available: bool) -> List[str]:
        if not self._selected:
            return []
        changed = await self.editor.set_many(self.trainer_id, self.dates, available)
        self.clear()
        return changed

    async def add_absence(
        self,
        reason: Optional[str] = None,
        date_range: Optional[Tuple[str, str]] = None
    ) -> Optional[AbsenceRequest]:
        """Подать заявку на диапазон выбранных дат.

        date_range: диапазон, уже показанный тренеру; выбор, сделанный
        после этого, в заявку не попадает.
        """
        if date_range is None:
            date_range = self.absence_range()
        if date_range is None:
            return None
        request = await self.workflow.submit(self.trainer_id, date_range[0], date_range[1], reason)
        self.clear()
        return request
