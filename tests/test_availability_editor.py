import pytest

from services.availability_editor import AvailabilityEditor
from services.errors import ActionInFlightError, EditableFloorError


@pytest.fixture
def editor(store, live_sync, clock):
    return AvailabilityEditor(store, live_sync, clock=clock)


@pytest.mark.asyncio
async def test_set_availability_single_date(editor, store, live_sync):
    await editor.set_availability(7, "2024-01-12", True)

    assert store.slots["7"] == {"2024-01-12": True}
    assert store.write_calls() == [("set_availability_dates", "7", ["2024-01-12"], True)]
    assert live_sync.invalidated == ["trainer_availability"]

    await editor.set_availability("7", "2024-01-12", False)
    assert store.slots["7"] == {"2024-01-12": False}


@pytest.mark.asyncio
async def test_date_before_floor_never_reaches_store(editor, store, live_sync):
    with pytest.raises(EditableFloorError):
        await editor.set_availability("7", "2024-01-10", True)

    assert store.calls == []
    assert live_sync.invalidated == []


@pytest.mark.asyncio
async def test_same_date_is_locked_while_running(editor, store):
    with editor.in_flight.hold(("7", "2024-01-12")):
        with pytest.raises(ActionInFlightError):
            await editor.set_availability("7", "2024-01-12", True)
        with pytest.raises(ActionInFlightError):
            await editor.set_many("7", ["2024-01-12", "2024-01-13"], True)
        # другая дата и другой тренер не ждут
        await editor.set_availability("7", "2024-01-13", True)
        await editor.set_availability("8", "2024-01-12", True)

    assert store.slots["7"] == {"2024-01-13": True}
    assert store.slots["8"] == {"2024-01-12": True}


@pytest.mark.asyncio
async def test_write_failure_releases_lock(editor, store, live_sync):
    store.fail_writes = True

    with pytest.raises(RuntimeError):
        await editor.set_availability("7", "2024-01-12", True)

    assert live_sync.invalidated == []
    assert not editor.in_flight.is_in_flight(("7", "2024-01-12"))
