"""Общие функции обработчиков"""
import logging
from typing import Optional

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import InlineKeyboardMarkup, Message

from config import ADMIN_IDS

logger = logging.getLogger(__name__)

TRAINER_PANEL = "trainer_panel"
ADMIN_GRID = "admin_grid"


def is_admin(user_id: int) -> bool:
    """Проверка, является ли пользователь администратором"""
    return user_id in ADMIN_IDS


async def safe_edit(message: Message, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None):
    """Изменить сообщение; "message is not modified" не считается ошибкой"""
    try:
        await message.edit_text(text, reply_markup=reply_markup)
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            raise


async def safe_edit_by_id(
    bot: Bot,
    chat_id: int,
    message_id: int,
    text: str,
    reply_markup: Optional[InlineKeyboardMarkup] = None
):
    """То же по ID сообщения (для обновлений живой синхронизации)"""
    try:
        await bot.edit_message_text(
            text=text,
            chat_id=chat_id,
            message_id=message_id,
            reply_markup=reply_markup
        )
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            raise


async def notify_admins(bot: Bot, text: str):
    """Уведомить всех администраторов"""
    for admin_id in ADMIN_IDS:
        try:
            await bot.send_message(admin_id, text)
        except Exception as e:
            logger.warning(f"Не удалось отправить уведомление админу {admin_id}: {e}")
