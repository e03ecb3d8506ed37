"""Inline клавиатуры"""
from datetime import date
from typing import List, Optional

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from config import ABSENCE_REASONS
from database.models import AbsenceRequest, DayStatus, Trainer
from services.availability_view import AvailabilityView
from services.calendar_grid import WEEKDAY_HEADERS, Period, parse_date

STATUS_MARKS = {
    DayStatus.APPROVED_ABSENCE: "🚫",
    DayStatus.PENDING_ABSENCE: "⏳",
    DayStatus.AVAILABLE: "🟢",
    DayStatus.UNAVAILABLE: "🔴",
    DayStatus.NONE: "",
}

STATUS_LABELS = {
    DayStatus.APPROVED_ABSENCE: "отсутствие",
    DayStatus.PENDING_ABSENCE: "ждёт одобрения",
    DayStatus.AVAILABLE: "доступен",
    DayStatus.UNAVAILABLE: "недоступен",
    DayStatus.NONE: "не отмечено",
}

PERIOD_LABELS = {
    Period.DAY: "День",
    Period.WEEK: "Неделя",
    Period.MONTH: "Месяц",
}

LEGEND = "🟢 доступен  🔴 недоступен  ⏳ ждёт одобрения  🚫 отсутствие"


def get_role_keyboard() -> InlineKeyboardMarkup:
    """Клавиатура выбора роли"""
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="💪 Я тренер", callback_data="role_trainer")
    )
    return builder.as_markup()


def _cell_text(day: date, status: DayStatus, selected: bool) -> str:
    if selected:
        return f"✅{day.day}"
    return f"{STATUS_MARKS[status]}{day.day}"


def _add_navigation(builder: InlineKeyboardBuilder, view: AvailabilityView, prefix: str):
    """Заголовок, переключатель режима и навигация"""
    builder.row(
        InlineKeyboardButton(text="⬅️", callback_data=f"{prefix}_nav:prev"),
        InlineKeyboardButton(text=view.grid.title(), callback_data=f"{prefix}_nav:today"),
        InlineKeyboardButton(text="➡️", callback_data=f"{prefix}_nav:next"),
    )
    builder.row(*[
        InlineKeyboardButton(
            text=f"• {label}" if view.grid.period is period else label,
            callback_data=f"{prefix}_period:{period.value}"
        )
        for period, label in PERIOD_LABELS.items()
    ])


def _add_days(
    builder: InlineKeyboardBuilder,
    view: AvailabilityView,
    prefix: str,
    floor: Optional[date] = None
):
    """Дни окна. Если floor задан, дни раньше него не нажимаются."""
    selected = set(view.selection.dates) if view.selection is not None else set()
    statuses = view.statuses()

    def callback_for(day_str: str) -> str:
        if floor is not None and parse_date(day_str) < floor:
            return "noop"
        return f"{prefix}_day:{day_str}"

    if view.grid.period is Period.DAY:
        day_str, status = statuses[0]
        builder.row(
            InlineKeyboardButton(
                text=f"{_cell_text(parse_date(day_str), status, day_str in selected)} - {STATUS_LABELS[status]}",
                callback_data=callback_for(day_str)
            )
        )
        return

    builder.row(*[
        InlineKeyboardButton(text=header, callback_data="noop")
        for header in WEEKDAY_HEADERS
    ])
    for week in range(0, len(statuses), 7):
        builder.row(*[
            InlineKeyboardButton(
                text=_cell_text(parse_date(day_str), status, day_str in selected),
                callback_data=callback_for(day_str)
            )
            for day_str, status in statuses[week:week + 7]
        ])


def get_availability_keyboard(view: AvailabilityView, floor: date) -> InlineKeyboardMarkup:
    """Панель тренера: календарь, действия с выбором и массовые отметки"""
    builder = InlineKeyboardBuilder()
    _add_navigation(builder, view, "av")
    _add_days(builder, view, "av", floor)

    if view.selection is not None and len(view.selection):
        builder.row(
            InlineKeyboardButton(text="🟢 Доступен", callback_data="av_make"),
            InlineKeyboardButton(text="🔴 Недоступен", callback_data="av_unavail"),
        )
        builder.row(
            InlineKeyboardButton(text="🌴 Отсутствие", callback_data="av_absence"),
            InlineKeyboardButton(
                text=f"✖️ Сбросить ({len(view.selection)})",
                callback_data="av_clear_sel"
            ),
        )
    else:
        builder.row(
            InlineKeyboardButton(text="🌴 Добавить отсутствие", callback_data="av_absence")
        )

    builder.row(
        InlineKeyboardButton(text="Будни", callback_data="av_bulk:weekdays"),
        InlineKeyboardButton(text="Выходные", callback_data="av_bulk:weekends"),
        InlineKeyboardButton(text="Все дни", callback_data="av_bulk:all"),
    )
    builder.row(
        InlineKeyboardButton(text="🧹 Очистить месяц", callback_data="av_bulk:clear")
    )
    builder.row(
        InlineKeyboardButton(text="❌ Закрыть", callback_data="av_close")
    )
    return builder.as_markup()


def get_absence_reason_keyboard() -> InlineKeyboardMarkup:
    """Выбор причины отсутствия"""
    builder = InlineKeyboardBuilder()
    for index, reason in enumerate(ABSENCE_REASONS):
        builder.row(
            InlineKeyboardButton(text=reason, callback_data=f"abs_reason:{index}")
        )
    builder.row(
        InlineKeyboardButton(text="⏭ Без причины", callback_data="abs_reason:skip")
    )
    builder.row(
        InlineKeyboardButton(text="❌ Отмена", callback_data="abs_cancel")
    )
    return builder.as_markup()


def get_admin_menu_keyboard() -> InlineKeyboardMarkup:
    """Главное меню администратора"""
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="📋 Заявки на отсутствие",
            callback_data="admin_absences"
        )
    )
    builder.row(
        InlineKeyboardButton(
            text="📅 Календари тренеров",
            callback_data="admin_trainers"
        )
    )
    builder.row(
        InlineKeyboardButton(
            text="🗓 Обзор недели",
            callback_data="admin_overview"
        )
    )
    return builder.as_markup()


def get_trainers_list_keyboard(trainers: List[Trainer]) -> InlineKeyboardMarkup:
    """Список тренеров для просмотра календаря"""
    builder = InlineKeyboardBuilder()
    for trainer in trainers:
        builder.row(
            InlineKeyboardButton(
                text=f"👤 {trainer.name}",
                callback_data=f"adm_grid:{trainer.id}"
            )
        )
    builder.row(
        InlineKeyboardButton(text="🔙 Назад", callback_data="admin_menu")
    )
    return builder.as_markup()


def get_admin_grid_keyboard(view: AvailabilityView) -> InlineKeyboardMarkup:
    """Календарь тренера для администратора (только просмотр)"""
    builder = InlineKeyboardBuilder()
    _add_navigation(builder, view, "adm")
    _add_days(builder, view, "adm")
    builder.row(
        InlineKeyboardButton(text="🔙 К списку тренеров", callback_data="admin_trainers")
    )
    return builder.as_markup()


def get_absence_requests_keyboard(requests: List[AbsenceRequest]) -> InlineKeyboardMarkup:
    """Список заявок на отсутствие"""
    builder = InlineKeyboardBuilder()
    for request in requests:
        builder.row(
            InlineKeyboardButton(
                text=f"{request.trainer_name or request.trainer_id}: {request.date_from} - {request.date_to}",
                callback_data=f"abs_view:{request.id}"
            )
        )
    builder.row(
        InlineKeyboardButton(text="🔙 Назад", callback_data="admin_menu")
    )
    return builder.as_markup()


def get_absence_review_keyboard(request_id: int, back_callback: str = "admin_absences") -> InlineKeyboardMarkup:
    """Рассмотрение заявки"""
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="✅ Одобрить",
            callback_data=f"abs_approve:{request_id}"
        ),
        InlineKeyboardButton(
            text="❌ Отклонить",
            callback_data=f"abs_reject:{request_id}"
        )
    )
    builder.row(
        InlineKeyboardButton(text="🔙 Назад", callback_data=back_callback)
    )
    return builder.as_markup()


def get_reject_reason_keyboard(request_id: int) -> InlineKeyboardMarkup:
    """Отклонение без причины или отмена"""
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(
            text="⏭ Без причины",
            callback_data=f"abs_reject_noreason:{request_id}"
        )
    )
    builder.row(
        InlineKeyboardButton(text="❌ Отмена", callback_data=f"abs_view:{request_id}")
    )
    return builder.as_markup()


def get_back_to_menu_keyboard() -> InlineKeyboardMarkup:
    """Возврат в меню администратора"""
    builder = InlineKeyboardBuilder()
    builder.row(
        InlineKeyboardButton(text="🔙 Меню", callback_data="admin_menu")
    )
    return builder.as_markup()
