from datetime import date

import pytest

from database.models import RequestState
from services.bulk_edit import BulkEditOperations, DayClass, classify, editable_month_dates, matches
from services.availability_editor import AvailabilityEditor
from services.errors import ActionInFlightError
from services.in_flight import InFlightRegistry


@pytest.fixture
def bulk(store, live_sync, clock):
    return BulkEditOperations(store, live_sync, clock=clock)


def test_classify_weekdays_and_weekends():
    assert classify(date(2024, 1, 12)) is DayClass.WEEKDAY  # пятница
    assert classify(date(2024, 1, 13)) is DayClass.WEEKEND
    assert classify(date(2024, 1, 14)) is DayClass.WEEKEND
    assert classify(date(2024, 1, 15)) is DayClass.WEEKDAY
    assert matches(date(2024, 1, 13), DayClass.ALL)


def test_editable_month_dates_respects_floor():
    days = editable_month_dates("2024-01", date(2024, 1, 11))

    assert days[0] == date(2024, 1, 11)
    assert days[-1] == date(2024, 1, 31)
    assert len(days) == 21


@pytest.mark.asyncio
async def test_mark_weekdays(bulk, store, live_sync):
    result = await bulk.mark_weekdays("7", "2024-01")

    assert len(result.applied) == 15
    assert result.skipped == []
    assert all(classify(date.fromisoformat(d)) is DayClass.WEEKDAY for d in result.applied)
    assert "2024-01-10" not in store.slots["7"]
    assert live_sync.invalidated == ["trainer_availability"]


@pytest.mark.asyncio
async def test_mark_weekends(bulk, store):
    result = await bulk.mark_weekends(7, date(2024, 1, 20))

    assert result.month == "2024-01"
    assert result.applied == [
        "2024-01-13", "2024-01-14", "2024-01-20",
        "2024-01-21", "2024-01-27", "2024-01-28",
    ]
    assert all(store.slots["7"][d] for d in result.applied)


@pytest.mark.asyncio
async def test_absence_dates_are_skipped(bulk, store):
    store.add_request("7", "2024-01-15", "2024-01-16", status=RequestState.APPROVED)
    store.add_request("7", "2024-01-17", "2024-01-17", status=RequestState.PENDING)
    store.add_request("7", "2024-01-18", "2024-01-18", status=RequestState.REJECTED)

    result = await bulk.mark_all_days("7", "2024-01")

    assert result.skipped == ["2024-01-15", "2024-01-16", "2024-01-17"]
    assert "2024-01-18" in result.applied
    for day in result.skipped:
        assert day not in store.slots["7"]


@pytest.mark.asyncio
async def test_other_trainer_absences_do_not_block(bulk, store):
    store.add_request("8", "2024-01-15", "2024-01-16", status=RequestState.APPROVED)

    result = await bulk.mark_all_days("7", "2024-01")

    assert result.skipped == []
    assert len(result.applied) == 21


@pytest.mark.asyncio
async def test_clear_month_keeps_absence_dates(bulk, store):
    store.slots["7"] = {"2024-01-12": True, "2024-01-15": False, "2024-01-05": True}
    store.add_request("7", "2024-01-15", "2024-01-15", status=RequestState.PENDING)

    result = await bulk.clear_month("7", "2024-01")

    assert "2024-01-15" in result.skipped
    assert store.slots["7"] == {"2024-01-15": False, "2024-01-05": True}
    clear_calls = [c for c in store.calls if c[0] == "clear_availability_dates"]
    assert len(clear_calls) == 1
    assert "2024-01-15" not in clear_calls[0][2]


@pytest.mark.asyncio
async def test_absence_lookup_failure_aborts(bulk, store, live_sync):
    store.fail_absence_lookup = True

    with pytest.raises(RuntimeError):
        await bulk.mark_all_days("7", "2024-01")

    assert store.write_calls() == []
    assert live_sync.invalidated == []


@pytest.mark.asyncio
async def test_past_month_has_nothing_to_apply(bulk, store, live_sync):
    result = await bulk.mark_all_days("7", "2023-12")

    assert result.applied == []
    assert store.calls == []
    assert live_sync.invalidated == []


@pytest.mark.asyncio
async def test_everything_skipped_does_not_invalidate(bulk, store, live_sync):
    store.add_request("7", "2024-01-11", "2024-01-31", status=RequestState.APPROVED)

    result = await bulk.mark_weekdays("7", "2024-01")

    assert result.applied == []
    assert len(result.skipped) == 15
    assert store.write_calls() == []
    assert live_sync.invalidated == []


@pytest.mark.asyncio
async def test_same_month_is_locked_while_running(bulk):
    with bulk.in_flight.hold(("7", "2024-01")):
        with pytest.raises(ActionInFlightError):
            await bulk.mark_weekdays("7", "2024-01")

    result = await bulk.mark_weekdays("7", "2024-02")
    assert result.applied


@pytest.mark.asyncio
async def test_write_failure_releases_lock(bulk, store, live_sync):
    store.fail_writes = True

    with pytest.raises(RuntimeError):
        await bulk.mark_weekdays("7", "2024-01")

    assert live_sync.invalidated == []
    assert not bulk.in_flight.is_in_flight(("7", "2024-01"))
    assert not bulk.in_flight.is_in_flight(("7", "2024-01-12"))
    assert "7" not in store.slots


@pytest.mark.asyncio
async def test_shared_registry_blocks_single_and_bulk_edits(store, live_sync, clock):
    in_flight = InFlightRegistry()
    editor = AvailabilityEditor(store, live_sync, clock=clock, in_flight=in_flight)
    bulk = BulkEditOperations(store, live_sync, clock=clock, in_flight=in_flight)

    with editor.in_flight.hold(("7", "2024-01-12")):
        with pytest.raises(ActionInFlightError):
            await bulk.mark_weekdays("7", "2024-01")
        # выходные не задевают занятую пятницу
        result = await bulk.mark_weekends("7", "2024-01")

    assert result.applied
    assert "2024-01-12" not in store.slots["7"]

    with bulk.in_flight.hold(("7", "2024-01"), ("7", "2024-01-15")):
        with pytest.raises(ActionInFlightError):
            await editor.set_availability("7", "2024-01-15", True)

    assert "2024-01-15" not in store.slots["7"]
