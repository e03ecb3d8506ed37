"""Отметки доступности тренера на отдельные даты"""
import logging
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

from config import EDITABLE_FLOOR_HOURS
from database import TOPIC_TRAINER_AVAILABILITY
from database.models import normalize_trainer_id
from services.calendar_grid import DateLike, editable_floor, is_editable, to_date_string
from services.errors import EditableFloorError
from services.in_flight import InFlightRegistry
from services.live_sync import LiveSyncCoordinator

logger = logging.getLogger(__name__)


class AvailabilityEditor:
    """setAvailability: запись отметок через хранилище.

    Даты раньше допустимой отклоняются до обращения к хранилищу.
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

    def floor(self) -> date:
        return editable_floor(self.clock(), self.floor_hours)

    def check_editable(self, dates: Iterable[DateLike]) -> List[str]:
        """Проверить даты; вернуть их в виде строк"""
        floor = self.floor()
        date_strings = sorted({to_date_string(d) for d in dates})
        too_early = [d for d in date_strings if not is_editable(d, floor)]
        if too_early:
            raise EditableFloorError(too_early, floor)
        return date_strings

    async def set_availability(self, trainer_id, day: DateLike, available: bool):
        """Отметить одну дату доступной или недоступной"""
        await self.set_many(trainer_id, [day], available)

    async def set_many(self, trainer_id, dates: Iterable[DateLike], available: bool) -> List[str]:
        """Отметить несколько дат одной операцией"""
        trainer_key = normalize_trainer_id(trainer_id)
        date_strings = self.check_editable(dates)
        if not date_strings:
            return []

        keys = [(trainer_key, d) for d in date_strings]
        with self.in_flight.hold(*keys):
            await self.store.set_availability_dates(trainer_key, date_strings, available)

        logger.info(
            f"Тренер {trainer_key}: {len(date_strings)} дат отмечено как "
            f"{'доступен' if available else 'недоступен'}"
        )
        self.live_sync.invalidate(TOPIC_TRAINER_AVAILABILITY)
        return date_strings
