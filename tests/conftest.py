from datetime import datetime
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from database import Database
from database.models import (
    AbsenceRequest,
    AvailabilitySlot,
    RequestState,
    TrainerAbsenceDates,
    TrainerSlots,
    normalize_trainer_id,
)
from services.calendar_grid import iter_dates, parse_date, to_date_string

# 2024-01-10 12:00, первая редактируемая дата 2024-01-11
NOW = datetime(2024, 1, 10, 12, 0)


def fixed_clock():
    return NOW


class RecordingLiveSync:
    """Запоминает сигналы вместо рассылки"""

    def __init__(self):
        self.invalidated: List[str] = []

    def invalidate(self, topic: str):
        self.invalidated.append(topic)


class FakeStore:
    """Хранилище в памяти с тем же интерфейсом, что и Database"""

    def __init__(self):
        self.trainers: Dict[str, str] = {}
        self.slots: Dict[str, Dict[str, bool]] = {}
        self.requests: Dict[int, AbsenceRequest] = {}
        self.next_request_id = 1
        self.calls: List[tuple] = []
        self.fail_absence_lookup = False
        self.fail_writes = False
        self.conflict_on_transition = False

    def add_trainer(self, trainer_id, name: str):
        self.trainers[normalize_trainer_id(trainer_id)] = name

    def _trainer_ids(self, trainer_id):
        if trainer_id is None:
            return list(self.trainers)
        return [normalize_trainer_id(trainer_id)]

    async def get_availability_slots(self, date_from, date_to, trainer_id=None) -> List[TrainerSlots]:
        self.calls.append(("get_availability_slots", date_from, date_to))
        result = []
        for tid in self._trainer_ids(trainer_id):
            slots = [
                AvailabilitySlot(tid, day, None, None, available)
                for day, available in sorted(self.slots.get(tid, {}).items())
                if date_from <= day <= date_to
            ]
            result.append(TrainerSlots(id=tid, name=self.trainers.get(tid, ""), slots=slots))
        return result

    async def get_absence_dates(self, date_from, date_to, trainer_id=None) -> List[TrainerAbsenceDates]:
        self.calls.append(("get_absence_dates", date_from, date_to))
        if self.fail_absence_lookup:
            raise RuntimeError("absence lookup failed")
        result = []
        for tid in self._trainer_ids(trainer_id):
            entry = TrainerAbsenceDates(id=tid, name=self.trainers.get(tid, ""))
            for request in self.requests.values():
                if request.trainer_id != tid or request.status is RequestState.REJECTED:
                    continue
                first = max(parse_date(request.date_from), parse_date(date_from))
                last = min(parse_date(request.date_to), parse_date(date_to))
                target = entry.approved_dates if request.status is RequestState.APPROVED else entry.pending_dates
                target.extend(to_date_string(d) for d in iter_dates(first, last))
            result.append(entry)
        return result

    async def set_availability_dates(self, trainer_id, dates, available: bool):
        self.calls.append(("set_availability_dates", normalize_trainer_id(trainer_id), list(dates), available))
        if self.fail_writes:
            raise RuntimeError("write failed")
        marks = self.slots.setdefault(normalize_trainer_id(trainer_id), {})
        for day in dates:
            marks[day] = available

    async def clear_availability_dates(self, trainer_id, dates):
        self.calls.append(("clear_availability_dates", normalize_trainer_id(trainer_id), list(dates)))
        if self.fail_writes:
            raise RuntimeError("write failed")
        marks = self.slots.setdefault(normalize_trainer_id(trainer_id), {})
        for day in dates:
            marks.pop(day, None)

    async def create_absence_request(self, trainer_id, date_from, date_to, reason=None) -> AbsenceRequest:
        self.calls.append(("create_absence_request", trainer_id, date_from, date_to, reason))
        if self.fail_writes:
            raise RuntimeError("write failed")
        request = AbsenceRequest(
            id=self.next_request_id,
            trainer_id=trainer_id,
            date_from=date_from,
            date_to=date_to,
            reason=reason,
            status=RequestState.PENDING,
            rejection_reason=None,
            created_at=f"2024-01-10 12:00:{self.next_request_id:02d}",
        )
        self.requests[request.id] = request
        self.next_request_id += 1
        return request

    def add_request(self, trainer_id, date_from, date_to, status=RequestState.PENDING, reason=None):
        request = AbsenceRequest(
            id=self.next_request_id,
            trainer_id=trainer_id,
            date_from=date_from,
            date_to=date_to,
            reason=reason,
            status=status,
            rejection_reason=None,
            created_at=f"2024-01-01 09:00:{self.next_request_id:02d}",
        )
        self.requests[request.id] = request
        self.next_request_id += 1
        return request

    async def get_absence_request(self, request_id) -> Optional[AbsenceRequest]:
        return self.requests.get(request_id)

    async def list_absence_requests(self, status=None, trainer_id=None) -> List[AbsenceRequest]:
        result = list(self.requests.values())
        if status is not None:
            result = [r for r in result if r.status is RequestState(status)]
        if trainer_id is not None:
            result = [r for r in result if r.trainer_id == normalize_trainer_id(trainer_id)]
        return sorted(result, key=lambda r: (r.created_at, r.id))

    async def transition_absence_request(self, request_id, status, rejection_reason=None):
        self.calls.append(("transition_absence_request", request_id, status))
        if self.fail_writes:
            raise RuntimeError("write failed")
        if self.conflict_on_transition:
            return None
        request = self.requests.get(request_id)
        if request is None or request.status is not RequestState.PENDING:
            return None
        request.status = RequestState(status)
        request.rejection_reason = rejection_reason
        return request

    def write_calls(self):
        return [c for c in self.calls if c[0] in (
            "set_availability_dates", "clear_availability_dates",
            "create_absence_request", "transition_absence_request",
        )]


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def live_sync():
    return RecordingLiveSync()


@pytest.fixture
def store():
    fake = FakeStore()
    fake.add_trainer(7, "Анна")
    fake.add_trainer(8, "Борис")
    return fake


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.init_db()
    return database
