"""Обработчики команды start и регистрации тренера"""
from aiogram import Router, F
from aiogram.filters import CommandStart
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

from database import Database
from handlers.common import is_admin
from keyboards.inline import get_role_keyboard
from states import TrainerRegistration

router = Router()


@router.message(CommandStart())
async def cmd_start(message: Message, db: Database, state: FSMContext):
    """Обработчик команды /start"""
    await state.clear()

    user_id = message.from_user.id
    username = message.from_user.username

    # Добавляем пользователя в БД
    await db.add_user(user_id, username)

    welcome_text = (
        "👋 Добро пожаловать в <b>расписание тренеров</b>!\n\n"
        "Здесь тренеры отмечают дни, когда могут работать, "
        "и подают заявки на отсутствие.\n\n"
    )

    # Если пользователь - администратор, добавляем информацию о командах
    if is_admin(user_id):
        welcome_text += (
            "👨‍💼 <b>Вы являетесь администратором!</b>\n\n"
            "📋 <b>Доступные команды:</b>\n"
            "/admin - Панель администратора\n"
            "/absences - Заявки на отсутствие\n"
            "/trainers - Календари тренеров\n"
            "/overview - Обзор недели\n\n"
            "━━━━━━━━━━━━━━━━━━━━\n\n"
        )

    trainer = await db.get_trainer_by_user_id(user_id)
    if trainer:
        welcome_text += f"Вы зарегистрированы как тренер <b>{trainer.name}</b>.\n/availability - Моё расписание"
        await message.answer(welcome_text)
        return

    welcome_text += "Если вы тренер, создайте профиль:"
    await message.answer(
        welcome_text,
        reply_markup=get_role_keyboard()
    )


@router.callback_query(F.data == "role_trainer")
async def process_trainer_role(callback: CallbackQuery, db: Database, state: FSMContext):
    """Обработчик выбора роли тренера"""
    user_id = callback.from_user.id

    # Проверяем, есть ли уже профиль
    existing_trainer = await db.get_trainer_by_user_id(user_id)
    if existing_trainer:
        await callback.message.edit_text(
            f"✅ Профиль тренера <b>{existing_trainer.name}</b> уже создан.\n\n"
            "Откройте расписание: /availability"
        )
        await callback.answer()
        return

    await db.update_user_role(user_id, "trainer")

    await callback.message.edit_text(
        "💪 Вы выбрали роль <b>тренера</b>.\n\n"
        "Введите ваше <b>имя</b> (как его увидит администратор):"
    )
    await state.set_state(TrainerRegistration.waiting_for_name)
    await callback.answer()


@router.message(TrainerRegistration.waiting_for_name)
async def process_trainer_name(message: Message, db: Database, state: FSMContext):
    """Обработчик ввода имени"""
    name = (message.text or "").strip()

    if len(name) < 2:
        await message.answer("❌ Имя слишком короткое. Введите корректное имя:")
        return

    if len(name) > 50:
        await message.answer("❌ Имя слишком длинное. Введите имя покороче (до 50 символов):")
        return

    await db.create_trainer(message.from_user.id, message.from_user.username, name)
    await state.clear()

    await message.answer(
        f"✅ <b>Профиль создан!</b>\n\n"
        f"Приятно познакомиться, <b>{name}</b>!\n"
        "Отметьте дни, когда вы можете работать: /availability"
    )


@router.callback_query(F.data == "noop")
async def process_noop(callback: CallbackQuery):
    """Нажатие на неактивную кнопку"""
    await callback.answer()
