"""Обработчики для тренеров: панель доступности и заявки на отсутствие"""
import logging
from typing import Optional

from aiogram import Router, F, Bot
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message
from aiogram.fsm.context import FSMContext

from config import ABSENCE_REASONS
from database import Database
from database.models import Trainer
from handlers.common import TRAINER_PANEL, notify_admins, safe_edit, safe_edit_by_id
from keyboards.inline import LEGEND, get_absence_reason_keyboard, get_availability_keyboard
from services.absence_workflow import AbsenceRequestWorkflow
from services.availability_editor import AvailabilityEditor
from services.availability_view import AvailabilityView
from services.bulk_edit import BulkEditOperations, DayClass
from services.calendar_grid import Period, month_end, parse_date, to_date_string
from services.errors import ActionInFlightError, SchedulingError
from services.live_sync import ViewStateStore
from services.selection import SelectionController
from states import AbsenceForm

logger = logging.getLogger(__name__)

router = Router()


def panel_text(view: AvailabilityView, editor: AvailabilityEditor) -> str:
    """Текст над календарём тренера"""
    floor = editor.floor()
    text = (
        "📅 <b>Моё расписание</b>\n\n"
        f"{LEGEND}\n\n"
        "Нажимайте на даты, чтобы выбрать их (можно несколько), "
        "затем выберите действие.\n"
        f"Изменять можно даты начиная с <b>{floor.strftime('%d.%m.%Y')}</b>."
    )
    if view.selection is not None and len(view.selection):
        text += f"\n\nВыбрано дат: <b>{len(view.selection)}</b>"
    return text


async def open_panel(
    message: Message,
    bot: Bot,
    trainer: Trainer,
    user_id: int,
    views: ViewStateStore,
    editor: AvailabilityEditor,
    workflow: AbsenceRequestWorkflow,
    db: Database
) -> AvailabilityView:
    """Отправить новую панель и подписать её на живую синхронизацию"""
    previous = views.get(user_id, TRAINER_PANEL)
    selection = SelectionController(
        trainer.id,
        editor,
        workflow,
        clock=editor.clock,
        selected=previous.selection.dates if previous is not None and previous.selection else ()
    )
    view = AvailabilityView(db, trainer.id, selection=selection, clock=editor.clock)
    if previous is not None:
        view.grid.set_period(previous.grid.period)
        view.grid.anchor = previous.grid.anchor
    await view.refresh()

    sent = await message.answer(
        panel_text(view, editor),
        reply_markup=get_availability_keyboard(view, editor.floor())
    )

    async def rerender(updated: AvailabilityView):
        await safe_edit_by_id(
            bot,
            sent.chat.id,
            sent.message_id,
            panel_text(updated, editor),
            get_availability_keyboard(updated, editor.floor())
        )

    view.on_refresh = rerender
    views.open(user_id, TRAINER_PANEL, view, on_invalidate=view.handle_invalidate)
    return view


async def render_panel(callback: CallbackQuery, view: AvailabilityView, editor: AvailabilityEditor):
    await safe_edit(
        callback.message,
        panel_text(view, editor),
        get_availability_keyboard(view, editor.floor())
    )


async def get_panel(
    callback: CallbackQuery,
    views: ViewStateStore
) -> Optional[AvailabilityView]:
    """Открытая панель пользователя или сообщение о том, что её нет"""
    view = views.get(callback.from_user.id, TRAINER_PANEL)
    if view is None:
        await callback.answer(
            "Панель устарела. Откройте расписание заново: /availability",
            show_alert=True
        )
    return view


@router.message(Command("availability"))
async def cmd_availability(
    message: Message,
    bot: Bot,
    db: Database,
    views: ViewStateStore,
    editor: AvailabilityEditor,
    workflow: AbsenceRequestWorkflow
):
    """Открыть панель доступности"""
    trainer = await db.get_trainer_by_user_id(message.from_user.id)
    if not trainer:
        await message.answer("❌ Профиль тренера не найден. Создайте его через /start")
        return

    await open_panel(message, bot, trainer, message.from_user.id, views, editor, workflow, db)


@router.callback_query(F.data.startswith("av_nav:"))
async def process_panel_navigation(callback: CallbackQuery, views: ViewStateStore, editor: AvailabilityEditor):
    """Навигация: назад, вперёд, к текущему периоду"""
    view = await get_panel(callback, views)
    if view is None:
        return

    action = callback.data.split(":", 1)[1]
    if action == "prev":
        view.grid.go_prev()
    elif action == "next":
        view.grid.go_next()
    else:
        view.grid.go_to_current()

    if await view.refresh():
        await render_panel(callback, view, editor)
    await callback.answer()


@router.callback_query(F.data.startswith("av_period:"))
async def process_panel_period(callback: CallbackQuery, views: ViewStateStore, editor: AvailabilityEditor):
    """Смена режима: день, неделя, месяц"""
    view = await get_panel(callback, views)
    if view is None:
        return

    view.grid.set_period(Period(callback.data.split(":", 1)[1]))
    if await view.refresh():
        await render_panel(callback, view, editor)
    await callback.answer()


@router.callback_query(F.data.startswith("av_day:"))
async def process_panel_day(callback: CallbackQuery, views: ViewStateStore, editor: AvailabilityEditor):
    """Выбор даты"""
    view = await get_panel(callback, views)
    if view is None:
        return

    day = callback.data.split(":", 1)[1]
    if not view.selection.toggle(day):
        await callback.answer("⛔ Эту дату уже нельзя изменить", show_alert=True)
        return

    await render_panel(callback, view, editor)
    await callback.answer()


@router.callback_query(F.data == "av_clear_sel")
async def process_panel_clear_selection(callback: CallbackQuery, views: ViewStateStore, editor: AvailabilityEditor):
    """Сбросить выбор"""
    view = await get_panel(callback, views)
    if view is None:
        return

    view.selection.clear()
    await render_panel(callback, view, editor)
    await callback.answer()


@router.callback_query(F.data.in_({"av_make", "av_unavail"}))
async def process_panel_set_availability(callback: CallbackQuery, views: ViewStateStore, editor: AvailabilityEditor):
    """Отметить выбранные даты доступными или недоступными"""
    view = await get_panel(callback, views)
    if view is None:
        return

    available = callback.data == "av_make"
    try:
        if available:
            changed = await view.selection.make_available()
        else:
            changed = await view.selection.mark_unavailable()
    except ActionInFlightError:
        await callback.answer("⏳ Сохранение уже выполняется", show_alert=True)
        return
    except SchedulingError as e:
        await callback.answer(f"❌ {e}", show_alert=True)
        return
    except Exception as e:
        logger.error(f"Ошибка сохранения доступности тренера {view.trainer_id}: {e}", exc_info=True)
        await callback.answer("❌ Не удалось сохранить. Попробуйте ещё раз.", show_alert=True)
        return

    await view.refresh()
    await render_panel(callback, view, editor)
    await callback.answer(f"✅ Сохранено дат: {len(changed)}")


@router.callback_query(F.data.startswith("av_bulk:"))
async def process_panel_bulk(
    callback: CallbackQuery,
    views: ViewStateStore,
    editor: AvailabilityEditor,
    bulk: BulkEditOperations
):
    """Массовые отметки на месяц текущего окна"""
    view = await get_panel(callback, views)
    if view is None:
        return

    action = callback.data.split(":", 1)[1]
    operations = {
        DayClass.WEEKDAY.value: bulk.mark_weekdays,
        DayClass.WEEKEND.value: bulk.mark_weekends,
        DayClass.ALL.value: bulk.mark_all_days,
        "clear": bulk.clear_month,
    }
    try:
        result = await operations[action](view.trainer_id, view.grid.anchor)
    except ActionInFlightError:
        await callback.answer("⏳ Операция уже выполняется", show_alert=True)
        return
    except Exception as e:
        logger.error(f"Ошибка массовой операции {action} тренера {view.trainer_id}: {e}", exc_info=True)
        await callback.answer("❌ Не удалось выполнить операцию. Попробуйте ещё раз.", show_alert=True)
        return

    await view.refresh()
    await render_panel(callback, view, editor)
    text = f"✅ Изменено дат: {len(result.applied)}"
    if result.skipped:
        text += f"\nПропущено (отсутствие): {len(result.skipped)}"
    await callback.answer(text, show_alert=bool(result.skipped))


@router.callback_query(F.data == "av_absence")
async def process_panel_absence(callback: CallbackQuery, state: FSMContext, views: ViewStateStore):
    """Начать подачу заявки на отсутствие"""
    view = await get_panel(callback, views)
    if view is None:
        return

    date_range = view.selection.absence_range()
    if date_range is not None:
        date_from, date_to = date_range
        from_selection = True
    else:
        # Без выбора: с первой доступной даты до конца показанного месяца
        floor = view.selection.floor()
        date_from = to_date_string(floor)
        last = month_end(view.grid.anchor)
        if last < floor:
            last = month_end(floor)
        date_to = to_date_string(last)
        from_selection = False

    await state.set_state(AbsenceForm.waiting_for_reason)
    await state.update_data(date_from=date_from, date_to=date_to, from_selection=from_selection)

    await callback.message.answer(
        "🌴 <b>Заявка на отсутствие</b>\n\n"
        f"Период: <b>{parse_date(date_from).strftime('%d.%m.%Y')} - "
        f"{parse_date(date_to).strftime('%d.%m.%Y')}</b>\n\n"
        "Выберите причину или напишите её сообщением:",
        reply_markup=get_absence_reason_keyboard()
    )
    await callback.answer()


@router.callback_query(F.data == "abs_cancel", AbsenceForm.waiting_for_reason)
async def process_absence_cancel(callback: CallbackQuery, state: FSMContext):
    """Отмена заявки"""
    await state.clear()
    await callback.message.edit_text("Заявка отменена.")
    await callback.answer()


@router.callback_query(F.data.startswith("abs_reason:"), AbsenceForm.waiting_for_reason)
async def process_absence_reason_button(
    callback: CallbackQuery,
    bot: Bot,
    state: FSMContext,
    db: Database,
    views: ViewStateStore,
    workflow: AbsenceRequestWorkflow
):
    """Причина из списка"""
    choice = callback.data.split(":", 1)[1]
    reason = None if choice == "skip" else ABSENCE_REASONS[int(choice)]
    await submit_absence(callback.message, bot, state, db, views, workflow, callback.from_user.id, reason)
    await callback.answer()


@router.message(AbsenceForm.waiting_for_reason)
async def process_absence_reason_text(
    message: Message,
    bot: Bot,
    state: FSMContext,
    db: Database,
    views: ViewStateStore,
    workflow: AbsenceRequestWorkflow
):
    """Причина текстом"""
    await submit_absence(message, bot, state, db, views, workflow, message.from_user.id, message.text)


async def submit_absence(
    message: Message,
    bot: Bot,
    state: FSMContext,
    db: Database,
    views: ViewStateStore,
    workflow: AbsenceRequestWorkflow,
    user_id: int,
    reason: Optional[str]
):
    """Отправка заявки на отсутствие"""
    trainer = await db.get_trainer_by_user_id(user_id)
    if not trainer:
        await state.clear()
        await message.answer("❌ Профиль тренера не найден. Создайте его через /start")
        return

    data = await state.get_data()
    view = views.get(user_id, TRAINER_PANEL)
    try:
        date_range = (data["date_from"], data["date_to"])
        if data.get("from_selection") and view is not None and view.selection is not None:
            # Подаётся диапазон, показанный тренеру, затем выбор сбрасывается
            request = await view.selection.add_absence(reason, date_range=date_range)
        else:
            request = await workflow.submit(trainer.id, *date_range, reason)
    except SchedulingError as e:
        await message.answer(f"❌ {e}\n\nИсправьте причину или отмените заявку.")
        return
    except Exception as e:
        logger.error(f"Ошибка подачи заявки тренера {trainer.id}: {e}", exc_info=True)
        await message.answer("❌ Не удалось отправить заявку. Попробуйте ещё раз.")
        return

    await state.clear()

    await message.answer(
        "✅ <b>Заявка отправлена!</b>\n\n"
        f"Период: {request.date_from} - {request.date_to}\n"
        "Даты отмечены ⏳ до решения администратора."
    )

    await notify_admins(
        bot,
        "🆕 <b>Заявка на отсутствие</b>\n\n"
        f"<b>Тренер:</b> {trainer.name}\n"
        f"<b>Период:</b> {request.date_from} - {request.date_to}\n"
        f"<b>Причина:</b> {request.reason or 'не указана'}\n\n"
        "Рассмотреть: /absences"
    )


@router.callback_query(F.data == "av_close")
async def process_panel_close(callback: CallbackQuery, views: ViewStateStore):
    """Закрыть панель"""
    views.close(callback.from_user.id, TRAINER_PANEL)
    await callback.message.edit_text("📅 Расписание закрыто. Открыть снова: /availability")
    await callback.answer()
