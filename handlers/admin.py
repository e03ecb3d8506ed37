"""Обработчики для администратора"""
import logging
from typing import Optional

from aiogram import Router, F, Bot
from aiogram.filters import Command
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

from database import Database
from database.models import AbsenceRequest, DayStatus, RequestState
from handlers.common import ADMIN_GRID, is_admin, safe_edit, safe_edit_by_id
from keyboards.inline import (
    LEGEND,
    STATUS_LABELS,
    STATUS_MARKS,
    get_absence_requests_keyboard,
    get_absence_review_keyboard,
    get_admin_grid_keyboard,
    get_admin_menu_keyboard,
    get_back_to_menu_keyboard,
    get_reject_reason_keyboard,
    get_trainers_list_keyboard,
)
from services.absence_workflow import AbsenceRequestWorkflow
from services.availability_status import resolve_window
from services.availability_view import AvailabilityView, WindowLoader
from services.calendar_grid import WEEKDAY_HEADERS, CalendarGrid, Period, parse_date
from services.errors import ActionInFlightError, InvalidTransitionError, SchedulingError
from services.live_sync import ViewStateStore
from states import AdminRejectAbsence

logger = logging.getLogger(__name__)

router = Router()

MAX_REQUESTS_IN_LIST = 20

STATUS_TEXT = {
    RequestState.PENDING: "⏳ ожидает",
    RequestState.APPROVED: "✅ одобрена",
    RequestState.REJECTED: "❌ отклонена",
}


def format_request(request: AbsenceRequest) -> str:
    """Карточка заявки"""
    text = (
        "🌴 <b>Заявка на отсутствие</b>\n\n"
        f"<b>Тренер:</b> {request.trainer_name or request.trainer_id}\n"
        f"<b>Период:</b> {parse_date(request.date_from).strftime('%d.%m.%Y')} - "
        f"{parse_date(request.date_to).strftime('%d.%m.%Y')}\n"
        f"<b>Причина:</b> {request.reason or 'не указана'}\n"
        f"<b>Статус:</b> {STATUS_TEXT[request.status]}"
    )
    if request.rejection_reason:
        text += f"\n<b>Причина отказа:</b> {request.rejection_reason}"
    return text


async def notify_trainer(bot: Bot, db: Database, request: AbsenceRequest):
    """Сообщить тренеру о решении по заявке"""
    trainer = await db.get_trainer_by_id(request.trainer_id)
    if not trainer:
        return

    if request.status is RequestState.APPROVED:
        text = (
            "✅ <b>Заявка на отсутствие одобрена!</b>\n\n"
            f"Период: {request.date_from} - {request.date_to}"
        )
    else:
        text = (
            "❌ <b>Заявка на отсутствие отклонена</b>\n\n"
            f"Период: {request.date_from} - {request.date_to}"
        )
        if request.rejection_reason:
            text += f"\nПричина: {request.rejection_reason}"

    try:
        await bot.send_message(trainer.user_id, text)
    except Exception as e:
        logger.warning(f"Не удалось уведомить тренера {trainer.id}: {e}")


# === Меню ===

@router.message(Command("admin"))
async def cmd_admin(message: Message, state: FSMContext):
    """Панель администратора"""
    if not is_admin(message.from_user.id):
        await message.answer("❌ У вас нет доступа к этой команде.")
        return

    await state.clear()

    await message.answer(
        "📊 <b>Панель администратора</b>\n\n"
        "Выберите действие:",
        reply_markup=get_admin_menu_keyboard()
    )


@router.callback_query(F.data == "admin_menu")
async def process_admin_menu(callback: CallbackQuery, state: FSMContext, views: ViewStateStore):
    """Возврат в меню"""
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    await state.clear()
    views.close(callback.from_user.id, ADMIN_GRID)

    await safe_edit(
        callback.message,
        "📊 <b>Панель администратора</b>\n\n"
        "Выберите действие:",
        get_admin_menu_keyboard()
    )
    await callback.answer()


# === Заявки на отсутствие ===

async def pending_requests_text(workflow: AbsenceRequestWorkflow):
    requests = await workflow.list_requests(status=RequestState.PENDING)
    if not requests:
        return "📋 <b>Заявки на отсутствие</b>\n\nНет заявок, ожидающих рассмотрения.", []

    text = (
        "📋 <b>Заявки на отсутствие</b>\n\n"
        f"Ожидают рассмотрения: {len(requests)}"
    )
    if len(requests) > MAX_REQUESTS_IN_LIST:
        text += f"\nПоказаны первые {MAX_REQUESTS_IN_LIST}"
    return text, requests[:MAX_REQUESTS_IN_LIST]


@router.message(Command("absences"))
async def cmd_absences(message: Message, state: FSMContext, workflow: AbsenceRequestWorkflow):
    """Список ожидающих заявок"""
    if not is_admin(message.from_user.id):
        await message.answer("❌ У вас нет доступа к этой команде.")
        return

    await state.clear()
    text, requests = await pending_requests_text(workflow)
    await message.answer(text, reply_markup=get_absence_requests_keyboard(requests))


@router.callback_query(F.data == "admin_absences")
async def process_admin_absences(callback: CallbackQuery, state: FSMContext, workflow: AbsenceRequestWorkflow):
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    await state.clear()
    text, requests = await pending_requests_text(workflow)
    await safe_edit(callback.message, text, get_absence_requests_keyboard(requests))
    await callback.answer()


@router.callback_query(F.data.startswith("abs_view:"))
async def process_absence_view(callback: CallbackQuery, state: FSMContext, db: Database):
    """Карточка заявки"""
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    await state.clear()
    request_id = int(callback.data.split(":", 1)[1])
    request = await db.get_absence_request(request_id)
    if not request:
        await callback.answer("❌ Заявка не найдена", show_alert=True)
        return

    if request.status is RequestState.PENDING:
        keyboard = get_absence_review_keyboard(request.id)
    else:
        keyboard = get_back_to_menu_keyboard()
    await safe_edit(callback.message, format_request(request), keyboard)
    await callback.answer()


async def finish_review(
    message: Message,
    bot: Bot,
    db: Database,
    workflow: AbsenceRequestWorkflow,
    request_id: int,
    approve: bool,
    rejection_reason: Optional[str] = None
) -> Optional[str]:
    """Одобрить или отклонить заявку. Возвращает текст ошибки для пользователя."""
    try:
        if approve:
            updated = await workflow.approve(request_id)
        else:
            updated = await workflow.reject(request_id, rejection_reason)
    except ActionInFlightError:
        return "⏳ Заявка уже обрабатывается"
    except InvalidTransitionError:
        return "ℹ️ Заявка уже рассмотрена"
    except SchedulingError as e:
        return f"❌ {e}"
    except Exception as e:
        logger.error(f"Ошибка рассмотрения заявки {request_id}: {e}", exc_info=True)
        return "❌ Не удалось сохранить решение. Попробуйте ещё раз."

    if updated is None:
        return "ℹ️ Заявка уже рассмотрена"

    await safe_edit(message, format_request(updated), get_back_to_menu_keyboard())
    await notify_trainer(bot, db, updated)
    return None


@router.callback_query(F.data.startswith("abs_approve:"))
async def process_absence_approve(
    callback: CallbackQuery,
    bot: Bot,
    db: Database,
    workflow: AbsenceRequestWorkflow
):
    """Одобрение заявки"""
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    request_id = int(callback.data.split(":", 1)[1])
    if workflow.is_in_flight(request_id):
        await callback.answer("⏳ Заявка уже обрабатывается")
        return

    error = await finish_review(callback.message, bot, db, workflow, request_id, approve=True)
    if error:
        await callback.answer(error, show_alert=True)
        return
    await callback.answer("✅ Заявка одобрена")


@router.callback_query(F.data.startswith("abs_reject:"))
async def process_absence_reject(callback: CallbackQuery, state: FSMContext, workflow: AbsenceRequestWorkflow):
    """Запрос причины отказа"""
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    request_id = int(callback.data.split(":", 1)[1])
    if workflow.is_in_flight(request_id):
        await callback.answer("⏳ Заявка уже обрабатывается")
        return

    await state.set_state(AdminRejectAbsence.waiting_for_reason)
    await state.update_data(
        request_id=request_id,
        chat_id=callback.message.chat.id,
        message_id=callback.message.message_id
    )

    await safe_edit(
        callback.message,
        "❌ <b>Отклонение заявки</b>\n\n"
        "Напишите причину отказа сообщением или отклоните без причины:",
        get_reject_reason_keyboard(request_id)
    )
    await callback.answer()


@router.callback_query(F.data.startswith("abs_reject_noreason:"))
async def process_absence_reject_no_reason(
    callback: CallbackQuery,
    bot: Bot,
    state: FSMContext,
    db: Database,
    workflow: AbsenceRequestWorkflow
):
    """Отклонение без причины"""
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    await state.clear()
    request_id = int(callback.data.split(":", 1)[1])
    error = await finish_review(callback.message, bot, db, workflow, request_id, approve=False)
    if error:
        await callback.answer(error, show_alert=True)
        return
    await callback.answer("Заявка отклонена")


@router.message(AdminRejectAbsence.waiting_for_reason)
async def process_absence_reject_reason(
    message: Message,
    bot: Bot,
    state: FSMContext,
    db: Database,
    workflow: AbsenceRequestWorkflow
):
    """Причина отказа текстом"""
    if not is_admin(message.from_user.id):
        return

    data = await state.get_data()
    request_id = data["request_id"]
    await state.clear()

    try:
        updated = await workflow.reject(request_id, message.text)
    except InvalidTransitionError:
        await message.answer("ℹ️ Заявка уже рассмотрена", reply_markup=get_back_to_menu_keyboard())
        return
    except SchedulingError as e:
        await message.answer(f"❌ {e}", reply_markup=get_back_to_menu_keyboard())
        return
    except Exception as e:
        logger.error(f"Ошибка отклонения заявки {request_id}: {e}", exc_info=True)
        await message.answer("❌ Не удалось сохранить решение. Попробуйте ещё раз.")
        return

    if updated is None:
        await message.answer("ℹ️ Заявка уже рассмотрена", reply_markup=get_back_to_menu_keyboard())
        return

    # Карточку заявки заменяем итогом, если она ещё доступна
    try:
        await safe_edit_by_id(bot, data["chat_id"], data["message_id"], format_request(updated), None)
    except Exception as e:
        logger.warning(f"Не удалось обновить карточку заявки {request_id}: {e}")

    await message.answer("❌ Заявка отклонена.", reply_markup=get_back_to_menu_keyboard())
    await notify_trainer(bot, db, updated)


# === Календари тренеров ===

async def trainers_list_text(db: Database):
    trainers = await db.get_all_trainers()
    if not trainers:
        return "📅 <b>Календари тренеров</b>\n\nТренеров пока нет.", trainers
    return (
        "📅 <b>Календари тренеров</b>\n\n"
        f"Всего тренеров: {len(trainers)}\n"
        "Выберите тренера:"
    ), trainers


@router.message(Command("trainers"))
async def cmd_trainers(message: Message, db: Database):
    if not is_admin(message.from_user.id):
        await message.answer("❌ У вас нет доступа к этой команде.")
        return

    text, trainers = await trainers_list_text(db)
    await message.answer(text, reply_markup=get_trainers_list_keyboard(trainers))


@router.callback_query(F.data == "admin_trainers")
async def process_admin_trainers(callback: CallbackQuery, db: Database, views: ViewStateStore):
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    views.close(callback.from_user.id, ADMIN_GRID)
    text, trainers = await trainers_list_text(db)
    await safe_edit(callback.message, text, get_trainers_list_keyboard(trainers))
    await callback.answer()


def grid_text(view: AvailabilityView, trainer_name: str) -> str:
    return (
        f"📅 <b>Календарь: {trainer_name}</b>\n\n"
        f"{LEGEND}\n\n"
        "Нажмите на дату ⏳, чтобы рассмотреть заявку."
    )


@router.callback_query(F.data.startswith("adm_grid:"))
async def process_admin_grid(
    callback: CallbackQuery,
    bot: Bot,
    db: Database,
    views: ViewStateStore,
    workflow: AbsenceRequestWorkflow
):
    """Календарь выбранного тренера"""
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    trainer = await db.get_trainer_by_id(callback.data.split(":", 1)[1])
    if not trainer:
        await callback.answer("❌ Тренер не найден", show_alert=True)
        return

    view = AvailabilityView(db, trainer.id, clock=workflow.clock, trainer_name=trainer.name)
    await view.refresh()
    chat_id = callback.message.chat.id
    message_id = callback.message.message_id

    async def rerender(updated: AvailabilityView):
        await safe_edit_by_id(
            bot, chat_id, message_id,
            grid_text(updated, trainer.name),
            get_admin_grid_keyboard(updated)
        )

    view.on_refresh = rerender
    views.open(callback.from_user.id, ADMIN_GRID, view, on_invalidate=view.handle_invalidate)

    await safe_edit(callback.message, grid_text(view, trainer.name), get_admin_grid_keyboard(view))
    await callback.answer()


async def get_grid(callback: CallbackQuery, views: ViewStateStore) -> Optional[AvailabilityView]:
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return None
    view = views.get(callback.from_user.id, ADMIN_GRID)
    if view is None:
        await callback.answer("Календарь устарел. Откройте его заново: /trainers", show_alert=True)
    return view


@router.callback_query(F.data.startswith("adm_nav:"))
async def process_admin_grid_navigation(callback: CallbackQuery, views: ViewStateStore):
    view = await get_grid(callback, views)
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
        await safe_edit(callback.message, grid_text(view, view.trainer_name), get_admin_grid_keyboard(view))
    await callback.answer()


@router.callback_query(F.data.startswith("adm_period:"))
async def process_admin_grid_period(callback: CallbackQuery, views: ViewStateStore):
    view = await get_grid(callback, views)
    if view is None:
        return

    view.grid.set_period(Period(callback.data.split(":", 1)[1]))
    if await view.refresh():
        await safe_edit(callback.message, grid_text(view, view.trainer_name), get_admin_grid_keyboard(view))
    await callback.answer()


@router.callback_query(F.data.startswith("adm_day:"))
async def process_admin_grid_day(
    callback: CallbackQuery,
    views: ViewStateStore,
    workflow: AbsenceRequestWorkflow
):
    """Нажатие на дату в календаре тренера"""
    view = await get_grid(callback, views)
    if view is None:
        return

    day = callback.data.split(":", 1)[1]
    status = dict(view.statuses()).get(day, DayStatus.NONE)

    if status in (DayStatus.PENDING_ABSENCE, DayStatus.APPROVED_ABSENCE):
        request = await workflow.find_for_cell(view.trainer_id, day, status)
        if request is None:
            await callback.answer(STATUS_LABELS[status])
            return
        if request.status is RequestState.PENDING:
            keyboard = get_absence_review_keyboard(request.id, back_callback=f"adm_grid:{view.trainer_id}")
            await safe_edit(callback.message, format_request(request), keyboard)
            await callback.answer()
            return
        await callback.answer(
            f"🚫 Отсутствие {request.date_from} - {request.date_to}\n"
            f"Причина: {request.reason or 'не указана'}",
            show_alert=True
        )
        return

    await callback.answer(f"{parse_date(day).strftime('%d.%m.%Y')}: {STATUS_LABELS[status]}")


# === Обзор недели ===

async def overview_text(db: Database, clock) -> str:
    """Таблица статусов всех тренеров на текущую неделю"""
    grid = CalendarGrid(Period.WEEK, clock=clock)
    first, last = grid.window()
    loader = WindowLoader(db)
    tables = await loader.load(first, last) or loader.tables
    trainers = await db.get_all_trainers()

    text = f"🗓 <b>Обзор недели {grid.title()}</b>\n\n"
    if not trainers:
        return text + "Тренеров пока нет."

    text += "<code>" + " ".join(f"{h:>2}" for h in WEEKDAY_HEADERS) + "</code>\n"
    for trainer in trainers:
        marks = [
            STATUS_MARKS[status] or "·"
            for _, status in resolve_window(trainer.id, grid.dates(), tables)
        ]
        text += f"{' '.join(marks)}  {trainer.name}\n"
    return text + f"\n{LEGEND}"


@router.message(Command("overview"))
async def cmd_overview(message: Message, db: Database, workflow: AbsenceRequestWorkflow):
    if not is_admin(message.from_user.id):
        await message.answer("❌ У вас нет доступа к этой команде.")
        return

    await message.answer(await overview_text(db, workflow.clock), reply_markup=get_back_to_menu_keyboard())


@router.callback_query(F.data == "admin_overview")
async def process_admin_overview(callback: CallbackQuery, db: Database, workflow: AbsenceRequestWorkflow):
    if not is_admin(callback.from_user.id):
        await callback.answer("❌ Недостаточно прав", show_alert=True)
        return

    await safe_edit(callback.message, await overview_text(db, workflow.clock), get_back_to_menu_keyboard())
    await callback.answer()
