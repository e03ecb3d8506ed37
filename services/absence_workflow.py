"""Заявки тренеров на отсутствие и их рассмотрение администратором.

Переходы только pending -> approved и pending -> rejected, конечные статусы
не меняются. Действие над заявкой выполняется не более одного раза
одновременно для каждого ID.
"""
import logging
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

from config import ABSENCE_MAX_DAYS, ABSENCE_REASON_MAX_LENGTH, EDITABLE_FLOOR_HOURS
from database import TOPIC_TRAINER_AVAILABILITY
from database.models import AbsenceRequest, DayStatus, RequestState, normalize_trainer_id
from services.calendar_grid import DateLike, editable_floor, parse_date, to_date_string
from services.errors import (
    AbsenceRequestNotFound,
    AbsenceValidationError,
    EditableFloorError,
    InvalidTransitionError,
)
from services.in_flight import InFlightRegistry
from services.live_sync import LiveSyncCoordinator

logger = logging.getLogger(__name__)


CELL_REQUEST_STATES = {
    DayStatus.APPROVED_ABSENCE: RequestState.APPROVED,
    DayStatus.PENDING_ABSENCE: RequestState.PENDING,
}


def find_request_for_cell(
    requests: Iterable[AbsenceRequest],
    trainer_id,
    day: DateLike,
    cell_status: Optional[DayStatus] = None
) -> Optional[AbsenceRequest]:
    """Заявка тренера, которая даёт ячейке её статус.

    Отклонённые заявки не дают отсутствия и не рассматриваются. Порядок -
    порядок списка (по дате создания). Если у ячейки статус отсутствия,
    ищется первая заявка с соответствующим статусом.
    """
    key = normalize_trainer_id(trainer_id)
    day_str = to_date_string(day)
    matches = [
        r for r in requests
        if r.trainer_id == key and r.status is not RequestState.REJECTED and r.covers(day_str)
    ]
    wanted = CELL_REQUEST_STATES.get(cell_status)
    if wanted is not None:
        return next((r for r in matches if r.status is wanted), None)
    return matches[0] if matches else None


class AbsenceRequestWorkflow:
    """Подача, одобрение и отклонение заявок на отсутствие"""

    def __init__(
        self,
        store,
        live_sync: LiveSyncCoordinator,
        clock: Callable[[], datetime] = datetime.now,
        floor_hours: int = EDITABLE_FLOOR_HOURS,
        max_days: int = ABSENCE_MAX_DAYS,
        in_flight: Optional[InFlightRegistry] = None
    ):
        self.store = store
        self.live_sync = live_sync
        self.clock = clock
        self.floor_hours = floor_hours
        self.max_days = max_days
        self.in_flight = in_flight or InFlightRegistry()

    def floor(self) -> date:
        return editable_floor(self.clock(), self.floor_hours)

    def is_in_flight(self, request_id: int) -> bool:
        return self.in_flight.is_in_flight(request_id)

    async def list_requests(
        self,
        status: Optional[RequestState] = None,
        trainer_id=None
    ) -> List[AbsenceRequest]:
        return await self.store.list_absence_requests(status=status, trainer_id=trainer_id)

    async def find_for_cell(
        self,
        trainer_id,
        day: DateLike,
        cell_status: Optional[DayStatus] = None
    ) -> Optional[AbsenceRequest]:
        """Заявка для ячейки администраторской сетки"""
        requests = await self.store.list_absence_requests(trainer_id=trainer_id)
        return find_request_for_cell(requests, trainer_id, day, cell_status)

    async def submit(
        self,
        trainer_id,
        date_from: DateLike,
        date_to: DateLike,
        reason: Optional[str] = None
    ) -> AbsenceRequest:
        """Создать заявку в статусе pending"""
        first = parse_date(date_from)
        last = parse_date(date_to)
        if last < first:
            # Перевёрнутый диапазон сводится к одному дню
            last = first

        floor = self.floor()
        if first < floor:
            raise EditableFloorError([to_date_string(first)], floor)
        if (last - first).days > self.max_days:
            raise AbsenceValidationError(f"Период отсутствия не может превышать {self.max_days} дней")

        reason = reason.strip() if reason else None
        if reason and len(reason) > ABSENCE_REASON_MAX_LENGTH:
            raise AbsenceValidationError(
                f"Причина слишком длинная (максимум {ABSENCE_REASON_MAX_LENGTH} символов)"
            )

        request = await self.store.create_absence_request(
            normalize_trainer_id(trainer_id),
            to_date_string(first),
            to_date_string(last),
            reason or None
        )
        logger.info(
            f"Тренер {request.trainer_id} запросил отсутствие "
            f"{request.date_from} - {request.date_to} (заявка {request.id})"
        )
        self.live_sync.invalidate(TOPIC_TRAINER_AVAILABILITY)
        return request

    async def approve(self, request_id: int) -> Optional[AbsenceRequest]:
        """Одобрить заявку"""
        return await self._transition(request_id, RequestState.APPROVED)

    async def reject(self, request_id: int, reason: Optional[str] = None) -> Optional[AbsenceRequest]:
        """Отклонить заявку с необязательной причиной"""
        reason = reason.strip() if reason else None
        return await self._transition(request_id, RequestState.REJECTED, reason or None)

    async def _transition(
        self,
        request_id: int,
        status: RequestState,
        rejection_reason: Optional[str] = None
    ) -> Optional[AbsenceRequest]:
        """Переход pending -> status.

        Если заявка уже рассмотрена и это видно заранее - InvalidTransitionError.
        Если хранилище сообщило о конфликте - действие игнорируется (None).
        """
        with self.in_flight.hold(request_id):
            current = await self.store.get_absence_request(request_id)
            if current is None:
                raise AbsenceRequestNotFound(f"Заявка {request_id} не найдена")
            if current.status.is_terminal:
                raise InvalidTransitionError(request_id, current.status)

            updated = await self.store.transition_absence_request(request_id, status, rejection_reason)

        if updated is None:
            logger.info(f"Заявка {request_id} уже рассмотрена, действие {status.value} проигнорировано")
            return None

        logger.info(f"Заявка {request_id} тренера {updated.trainer_id}: {status.value}")
        self.live_sync.invalidate(TOPIC_TRAINER_AVAILABILITY)
        return updated
