import pytest

from database import Database, TOPIC_TRAINER_AVAILABILITY
from database.models import RequestState


async def make_trainer(db, user_id=100, name="Анна"):
    await db.add_user(user_id, f"user{user_id}")
    return await db.create_trainer(user_id, f"user{user_id}", name)


@pytest.mark.asyncio
async def test_users_and_trainers(db):
    await db.add_user(1, "first")
    await db.update_user_role(1, "trainer")
    await db.add_user(1, "renamed")

    user = await db.get_user(1)
    assert user.username == "renamed"
    assert user.role == "trainer"

    trainer_id = await db.create_trainer(1, "renamed", "Анна")
    trainer = await db.get_trainer_by_user_id(1)
    assert trainer.id == trainer_id
    assert (await db.get_trainer_by_id(str(trainer_id))).name == "Анна"
    assert [t.name for t in await db.get_all_trainers()] == ["Анна"]


@pytest.mark.asyncio
async def test_slots_lookup_includes_trainers_without_slots(db):
    anna = await make_trainer(db, 1, "Анна")
    boris = await make_trainer(db, 2, "Борис")
    await db.set_availability_dates(anna, ["2024-01-12", "2024-01-13"], True)
    await db.set_availability_dates(anna, ["2024-02-01"], False)

    rows = await db.get_availability_slots("2024-01-01", "2024-01-31")
    by_id = {row.id: row for row in rows}

    assert set(by_id) == {str(anna), str(boris)}
    assert [s.date for s in by_id[str(anna)].slots] == ["2024-01-12", "2024-01-13"]
    assert all(s.is_available for s in by_id[str(anna)].slots)
    assert by_id[str(boris)].slots == []


@pytest.mark.asyncio
async def test_set_availability_replaces_existing_marks(db):
    anna = await make_trainer(db)
    await db.add_slot(anna, "2024-01-12", "09:00", "12:00", False)
    await db.add_slot(anna, "2024-01-12", "14:00", "18:00", True)

    await db.set_availability_dates(anna, ["2024-01-12"], False)
    rows = await db.get_availability_slots("2024-01-12", "2024-01-12", trainer_id=anna)

    assert len(rows[0].slots) == 1
    assert rows[0].slots[0].is_available is False
    assert rows[0].slots[0].start_time is None

    await db.clear_availability_dates(anna, ["2024-01-12"])
    rows = await db.get_availability_slots("2024-01-12", "2024-01-12", trainer_id=anna)
    assert rows[0].slots == []


@pytest.mark.asyncio
async def test_absence_dates_are_expanded_and_clipped(db):
    anna = await make_trainer(db)
    approved = await db.create_absence_request(anna, "2024-01-30", "2024-02-02", "Отпуск")
    await db.transition_absence_request(approved.id, RequestState.APPROVED)
    await db.create_absence_request(anna, "2024-01-15", "2024-01-16")
    rejected = await db.create_absence_request(anna, "2024-01-20", "2024-01-20")
    await db.transition_absence_request(rejected.id, RequestState.REJECTED)

    rows = await db.get_absence_dates("2024-01-01", "2024-01-31", trainer_id=anna)

    assert len(rows) == 1
    assert rows[0].approved_dates == ["2024-01-30", "2024-01-31"]
    assert rows[0].pending_dates == ["2024-01-15", "2024-01-16"]


@pytest.mark.asyncio
async def test_transition_only_from_pending(db):
    anna = await make_trainer(db)
    request = await db.create_absence_request(anna, "2024-01-15", "2024-01-16")
    assert request.status is RequestState.PENDING
    assert request.trainer_name == "Анна"

    updated = await db.transition_absence_request(request.id, RequestState.REJECTED, "Нет замены")
    assert updated.status is RequestState.REJECTED
    assert updated.rejection_reason == "Нет замены"
    assert updated.decided_at is not None

    assert await db.transition_absence_request(request.id, RequestState.APPROVED) is None
    assert (await db.get_absence_request(request.id)).status is RequestState.REJECTED


@pytest.mark.asyncio
async def test_list_requests_order_and_filters(db):
    anna = await make_trainer(db, 1, "Анна")
    boris = await make_trainer(db, 2, "Борис")
    first = await db.create_absence_request(anna, "2024-01-15", "2024-01-16")
    second = await db.create_absence_request(boris, "2024-01-15", "2024-01-16")
    third = await db.create_absence_request(anna, "2024-01-20", "2024-01-21")
    await db.transition_absence_request(third.id, RequestState.APPROVED)

    assert [r.id for r in await db.list_absence_requests()] == [first.id, second.id, third.id]
    assert [r.id for r in await db.list_absence_requests(status=RequestState.PENDING)] == [first.id, second.id]
    assert [r.id for r in await db.list_absence_requests(trainer_id=str(anna))] == [first.id, third.id]

    payload = await db.absence_requests_payload(status=RequestState.APPROVED)
    assert [r["id"] for r in payload["requests"]] == [third.id]
    assert payload["requests"][0]["status"] == "approved"


@pytest.mark.asyncio
async def test_topic_version_bumps_on_every_change(db):
    anna = await make_trainer(db)
    assert await db.get_topic_versions() == {}

    await db.set_availability_dates(anna, ["2024-01-12"], True)
    request = await db.create_absence_request(anna, "2024-01-15", "2024-01-16")
    await db.transition_absence_request(request.id, RequestState.APPROVED)

    assert await db.get_topic_versions() == {TOPIC_TRAINER_AVAILABILITY: 3}

    # Конфликт ничего не меняет
    await db.transition_absence_request(request.id, RequestState.REJECTED)
    assert await db.get_topic_versions() == {TOPIC_TRAINER_AVAILABILITY: 3}


@pytest.mark.asyncio
async def test_local_versions_track_own_writes(db):
    anna = await make_trainer(db)
    await db.set_availability_dates(anna, ["2024-01-12"], True)
    assert db.local_versions == {TOPIC_TRAINER_AVAILABILITY: 1}

    # тот же файл, другой процесс
    other = Database(db.db_path)
    await other.set_availability_dates(anna, ["2024-01-13"], True)

    assert await db.get_topic_versions() == {TOPIC_TRAINER_AVAILABILITY: 2}
    assert db.local_versions == {TOPIC_TRAINER_AVAILABILITY: 1}
    assert other.local_versions == {TOPIC_TRAINER_AVAILABILITY: 2}
