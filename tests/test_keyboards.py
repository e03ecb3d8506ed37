from datetime import date, datetime

from database.models import AbsenceRequest, Trainer
from keyboards.inline import (
    get_absence_reason_keyboard,
    get_absence_review_keyboard,
    get_admin_grid_keyboard,
    get_availability_keyboard,
    get_trainers_list_keyboard,
)
from services.availability_status import LookupTables
from services.availability_view import AvailabilityView
from services.calendar_grid import Period
from services.selection import SelectionController

NOW = datetime(2024, 1, 10, 12, 0)


def fixed_clock():
    return NOW


def callbacks(markup):
    return [button.callback_data for row in markup.inline_keyboard for button in row]


def make_view(store, period=Period.MONTH, anchor="2024-01-10", with_selection=True):
    selection = SelectionController("7", None, None, clock=fixed_clock) if with_selection else None
    view = AvailabilityView(store, "7", period, anchor, selection=selection, clock=fixed_clock)
    view.loader.tables = LookupTables.from_lookups([], [])
    return view


def test_month_keyboard_has_week_rows(store):
    view = make_view(store)

    markup = get_availability_keyboard(view, date(2024, 1, 11))
    week_rows = [row for row in markup.inline_keyboard if len(row) == 7]

    # заголовок и пять недель
    assert len(week_rows) == 6
    assert [b.text for b in week_rows[0]] == ["Пн", "Вт", "Ср", "Чт", "Пт", "Сб", "Вс"]
    data = callbacks(markup)
    assert "av_day:2024-01-10" not in data
    assert "av_day:2024-01-11" in data
    assert "av_day:2024-02-04" in data
    assert "av_nav:prev" in data and "av_nav:next" in data
    assert "av_period:week" in data
    assert "av_bulk:weekdays" in data and "av_bulk:clear" in data


def test_selection_actions_appear_only_with_selection(store):
    view = make_view(store)
    assert "av_make" not in callbacks(get_availability_keyboard(view, date(2024, 1, 11)))

    view.selection.toggle("2024-01-12")
    markup = get_availability_keyboard(view, date(2024, 1, 11))

    assert {"av_make", "av_unavail", "av_absence", "av_clear_sel"} <= set(callbacks(markup))
    texts = [button.text for row in markup.inline_keyboard for button in row]
    assert "✅12" in texts


def test_day_view_is_single_button(store):
    view = make_view(store, Period.DAY, "2024-01-12")

    markup = get_availability_keyboard(view, date(2024, 1, 11))

    assert "av_day:2024-01-12" in callbacks(markup)
    assert "noop" not in callbacks(markup)


def test_admin_grid_uses_own_prefix(store):
    view = make_view(store, with_selection=False)

    data = callbacks(get_admin_grid_keyboard(view))

    assert "adm_day:2024-01-10" in data
    assert "adm_nav:today" in data
    assert not any(d.startswith("av_") for d in data)


def test_review_and_lists():
    request = AbsenceRequest(5, "7", "2024-01-15", "2024-01-16", None, "pending", None, None, "Анна")

    assert callbacks(get_absence_review_keyboard(request.id)) == [
        "abs_approve:5", "abs_reject:5", "admin_absences"
    ]
    assert callbacks(get_trainers_list_keyboard([Trainer(7, 100, None, "Анна", None)])) == [
        "adm_grid:7", "admin_menu"
    ]
    reasons = callbacks(get_absence_reason_keyboard())
    assert reasons[0] == "abs_reason:0"
    assert reasons[-2:] == ["abs_reason:skip", "abs_cancel"]
