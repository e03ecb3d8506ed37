"""Работа с базой данных"""
import aiosqlite
from typing import Any, Dict, Iterable, List, Optional

from services.calendar_grid import iter_dates, parse_date, to_date_string
from .models import (
    AbsenceRequest,
    AvailabilitySlot,
    RequestState,
    Trainer,
    TrainerAbsenceDates,
    TrainerSlots,
    User,
    normalize_trainer_id,
)

TOPIC_TRAINER_AVAILABILITY = "trainer_availability"


def _db_trainer_id(trainer_id: Any):
    """ID тренера в виде, пригодном для запроса"""
    value = normalize_trainer_id(trainer_id)
    return int(value) if value.isdigit() else value


def _request_from_row(row: aiosqlite.Row) -> AbsenceRequest:
    data = dict(row)
    return AbsenceRequest(
        id=data["id"],
        trainer_id=data["trainer_id"],
        date_from=data["date_from"],
        date_to=data["date_to"],
        reason=data["reason"],
        status=data["status"],
        rejection_reason=data["rejection_reason"],
        created_at=data["created_at"],
        trainer_name=data.get("trainer_name"),
        decided_at=data["decided_at"],
    )


class Database:
    """Класс для работы с SQLite базой данных"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        # Версии тем после изменений, сделанных этим процессом
        self.local_versions: Dict[str, int] = {}

    async def init_db(self):
        """Инициализация базы данных"""
        async with aiosqlite.connect(self.db_path) as db:
            # Таблица пользователей
            await db.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    user_id INTEGER PRIMARY KEY,
                    username TEXT,
                    role TEXT
                )
            """)

            # Таблица профилей тренеров
            await db.execute("""
                CREATE TABLE IF NOT EXISTS trainers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER UNIQUE,
                    username TEXT,
                    name TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (user_id)
                )
            """)

            # Отметки доступности (без времени - на весь день)
            await db.execute("""
                CREATE TABLE IF NOT EXISTS availability_slots (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    trainer_id INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    start_time TEXT,
                    end_time TEXT,
                    is_available INTEGER NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (trainer_id) REFERENCES trainers (id)
                )
            """)
            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_slots_trainer_date
                ON availability_slots (trainer_id, date)
            """)

            # Заявки на отсутствие
            await db.execute("""
                CREATE TABLE IF NOT EXISTS absence_requests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    trainer_id INTEGER NOT NULL,
                    date_from TEXT NOT NULL,
                    date_to TEXT NOT NULL,
                    reason TEXT,
                    status TEXT DEFAULT 'pending',
                    rejection_reason TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    decided_at TIMESTAMP,
                    FOREIGN KEY (trainer_id) REFERENCES trainers (id)
                )
            """)

            # Версии тем для опроса живой синхронизации
            await db.execute("""
                CREATE TABLE IF NOT EXISTS topic_versions (
                    topic TEXT PRIMARY KEY,
                    version INTEGER NOT NULL DEFAULT 0
                )
            """)

            await db.commit()

    async def _touch_topic(self, db: aiosqlite.Connection, topic: str):
        """Увеличить версию темы в той же транзакции, что и изменение, и зафиксировать её"""
        await db.execute(
            "INSERT INTO topic_versions (topic, version) VALUES (?, 1) "
            "ON CONFLICT(topic) DO UPDATE SET version = version + 1",
            (topic,)
        )
        async with db.execute("SELECT version FROM topic_versions WHERE topic = ?", (topic,)) as cursor:
            row = await cursor.fetchone()
        await db.commit()
        self.local_versions[topic] = row[0]

    # === Пользователи ===

    async def add_user(self, user_id: int, username: Optional[str], role: Optional[str] = None):
        """Добавить или обновить пользователя"""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO users (user_id, username, role) VALUES (?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET username = excluded.username",
                (user_id, username, role)
            )
            await db.commit()

    async def get_user(self, user_id: int) -> Optional[User]:
        """Получить пользователя по ID"""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM users WHERE user_id = ?", (user_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row:
                    return User(**dict(row))
                return None

    async def update_user_role(self, user_id: int, role: str):
        """Обновить роль пользователя"""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "UPDATE users SET role = ? WHERE user_id = ?",
                (role, user_id)
            )
            await db.commit()

    # === Тренеры ===

    async def create_trainer(self, user_id: int, username: Optional[str], name: str) -> int:
        """Создать профиль тренера"""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "INSERT INTO trainers (user_id, username, name) VALUES (?, ?, ?)",
                (user_id, username, name)
            ) as cursor:
                await db.commit()
                return cursor.lastrowid

    async def get_trainer_by_user_id(self, user_id: int) -> Optional[Trainer]:
        """Получить профиль тренера по user_id"""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM trainers WHERE user_id = ?", (user_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row:
                    return Trainer(**dict(row))
                return None

    async def get_trainer_by_id(self, trainer_id) -> Optional[Trainer]:
        """Получить профиль тренера по ID"""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM trainers WHERE id = ?", (_db_trainer_id(trainer_id),)
            ) as cursor:
                row = await cursor.fetchone()
                if row:
                    return Trainer(**dict(row))
                return None

    async def get_all_trainers(self) -> List[Trainer]:
        """Получить всех тренеров"""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM trainers ORDER BY name, id"
            ) as cursor:
                rows = await cursor.fetchall()
                return [Trainer(**dict(row)) for row in rows]

    # === Доступность ===

    async def get_availability_slots(
        self,
        date_from: str,
        date_to: str,
        trainer_id=None
    ) -> List[TrainerSlots]:
        """Слоты всех (или одного) тренеров в окне дат, включительно"""
        query = (
            "SELECT t.id AS t_id, t.name AS t_name, s.date, s.start_time, s.end_time, s.is_available "
            "FROM trainers t LEFT JOIN availability_slots s "
            "ON s.trainer_id = t.id AND s.date BETWEEN ? AND ?"
        )
        params: List[Any] = [date_from, date_to]
        if trainer_id is not None:
            query += " WHERE t.id = ?"
            params.append(_db_trainer_id(trainer_id))
        query += " ORDER BY t.id, s.date, s.start_time"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()

        result: Dict[str, TrainerSlots] = {}
        for row in rows:
            key = normalize_trainer_id(row["t_id"])
            entry = result.setdefault(key, TrainerSlots(id=key, name=row["t_name"]))
            if row["date"] is None:
                continue
            entry.slots.append(AvailabilitySlot(
                trainer_id=key,
                date=row["date"],
                start_time=row["start_time"],
                end_time=row["end_time"],
                is_available=bool(row["is_available"]),
            ))
        return list(result.values())

    async def add_slot(
        self,
        trainer_id,
        slot_date: str,
        start_time: Optional[str],
        end_time: Optional[str],
        is_available: bool
    ):
        """Добавить слот с временем (тренер может иметь несколько слотов на дату)"""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO availability_slots (trainer_id, date, start_time, end_time, is_available) "
                "VALUES (?, ?, ?, ?, ?)",
                (_db_trainer_id(trainer_id), slot_date, start_time, end_time, int(is_available))
            )
            await self._touch_topic(db, TOPIC_TRAINER_AVAILABILITY)

    async def set_availability_dates(self, trainer_id, dates: Iterable[str], available: bool):
        """Перезаписать отметки на указанные даты одной транзакцией"""
        dates = sorted(set(dates))
        if not dates:
            return
        tid = _db_trainer_id(trainer_id)
        async with aiosqlite.connect(self.db_path) as db:
            # Старые слоты этих дат заменяются отметкой на весь день
            await db.executemany(
                "DELETE FROM availability_slots WHERE trainer_id = ? AND date = ?",
                [(tid, d) for d in dates]
            )
            await db.executemany(
                "INSERT INTO availability_slots (trainer_id, date, start_time, end_time, is_available) "
                "VALUES (?, ?, NULL, NULL, ?)",
                [(tid, d, int(available)) for d in dates]
            )
            await self._touch_topic(db, TOPIC_TRAINER_AVAILABILITY)

    async def clear_availability_dates(self, trainer_id, dates: Iterable[str]):
        """Удалить отметки доступности на указанные даты"""
        dates = sorted(set(dates))
        if not dates:
            return
        tid = _db_trainer_id(trainer_id)
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                "DELETE FROM availability_slots WHERE trainer_id = ? AND date = ?",
                [(tid, d) for d in dates]
            )
            await self._touch_topic(db, TOPIC_TRAINER_AVAILABILITY)

    # === Отсутствия ===

    async def get_absence_dates(
        self,
        date_from: str,
        date_to: str,
        trainer_id=None
    ) -> List[TrainerAbsenceDates]:
        """Даты одобренных и ожидающих отсутствий в окне, по тренерам.

        Диапазоны заявок разворачиваются в отдельные дни и обрезаются по окну.
        """
        query = (
            "SELECT t.id AS t_id, t.name AS t_name, r.date_from, r.date_to, r.status "
            "FROM trainers t LEFT JOIN absence_requests r "
            "ON r.trainer_id = t.id AND r.date_from <= ? AND r.date_to >= ? "
            "AND r.status IN ('pending', 'approved')"
        )
        params: List[Any] = [date_to, date_from]
        if trainer_id is not None:
            query += " WHERE t.id = ?"
            params.append(_db_trainer_id(trainer_id))
        query += " ORDER BY t.id, r.date_from"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()

        window_start = parse_date(date_from)
        window_end = parse_date(date_to)
        result: Dict[str, TrainerAbsenceDates] = {}
        for row in rows:
            key = normalize_trainer_id(row["t_id"])
            entry = result.setdefault(key, TrainerAbsenceDates(id=key, name=row["t_name"]))
            if row["status"] is None:
                continue
            first = max(parse_date(row["date_from"]), window_start)
            last = min(parse_date(row["date_to"]), window_end)
            target = entry.approved_dates if row["status"] == RequestState.APPROVED.value else entry.pending_dates
            for day in iter_dates(first, last):
                day_str = to_date_string(day)
                if day_str not in target:
                    target.append(day_str)

        for entry in result.values():
            entry.approved_dates.sort()
            entry.pending_dates.sort()
        return list(result.values())

    async def create_absence_request(
        self,
        trainer_id,
        date_from: str,
        date_to: str,
        reason: Optional[str] = None
    ) -> AbsenceRequest:
        """Создать заявку на отсутствие (статус pending)"""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "INSERT INTO absence_requests (trainer_id, date_from, date_to, reason, status) "
                "VALUES (?, ?, ?, ?, ?)",
                (_db_trainer_id(trainer_id), date_from, date_to, reason, RequestState.PENDING.value)
            ) as cursor:
                request_id = cursor.lastrowid
            await self._touch_topic(db, TOPIC_TRAINER_AVAILABILITY)
        return await self.get_absence_request(request_id)

    async def get_absence_request(self, request_id: int) -> Optional[AbsenceRequest]:
        """Получить заявку по ID"""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT r.*, t.name AS trainer_name FROM absence_requests r "
                "LEFT JOIN trainers t ON t.id = r.trainer_id WHERE r.id = ?",
                (request_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row:
                    return _request_from_row(row)
                return None

    async def list_absence_requests(
        self,
        status: Optional[RequestState] = None,
        trainer_id=None
    ) -> List[AbsenceRequest]:
        """Список заявок в порядке создания"""
        query = (
            "SELECT r.*, t.name AS trainer_name FROM absence_requests r "
            "LEFT JOIN trainers t ON t.id = r.trainer_id"
        )
        conditions = []
        params: List[Any] = []
        if status is not None:
            conditions.append("r.status = ?")
            params.append(RequestState(status).value)
        if trainer_id is not None:
            conditions.append("r.trainer_id = ?")
            params.append(_db_trainer_id(trainer_id))
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY r.created_at, r.id"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
                return [_request_from_row(row) for row in rows]

    async def absence_requests_payload(self, status: Optional[RequestState] = None) -> dict:
        """Список заявок в формате {"requests": [...]}"""
        requests = await self.list_absence_requests(status=status)
        return {"requests": [request.to_dict() for request in requests]}

    async def transition_absence_request(
        self,
        request_id: int,
        status: RequestState,
        rejection_reason: Optional[str] = None
    ) -> Optional[AbsenceRequest]:
        """Перевести заявку из pending в конечный статус.

        Возвращает None, если заявка уже не в статусе pending (конфликт).
        """
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "UPDATE absence_requests SET status = ?, rejection_reason = ?, "
                "decided_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ? AND status = ?",
                (RequestState(status).value, rejection_reason, request_id, RequestState.PENDING.value)
            ) as cursor:
                changed = cursor.rowcount
            if not changed:
                return None
            await self._touch_topic(db, TOPIC_TRAINER_AVAILABILITY)
        return await self.get_absence_request(request_id)

    # === Живая синхронизация ===

    async def get_topic_versions(self) -> Dict[str, int]:
        """Текущие версии тем"""
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT topic, version FROM topic_versions") as cursor:
                rows = await cursor.fetchall()
                return {topic: version for topic, version in rows}
