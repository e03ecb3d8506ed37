"""Конфигурация бота"""
import os
from typing import List
from dotenv import load_dotenv

load_dotenv()

# Токен бота
BOT_TOKEN = os.getenv("BOT_TOKEN")

# ID администраторов (может быть несколько через запятую)
def parse_admin_ids() -> List[int]:
    """Парсинг списка ID администраторов"""
    admin_ids_str = os.getenv("ADMIN_IDS", "")
    if not admin_ids_str:
        return []

    admin_ids = []
    for id_str in admin_ids_str.split(","):
        id_str = id_str.strip()
        if id_str.isdigit():
            admin_ids.append(int(id_str))
    return admin_ids

ADMIN_IDS = parse_admin_ids()

# Путь к базе данных
DATABASE_PATH = os.getenv("DATABASE_PATH", "trainer_availability.db")

# Редактировать можно только даты не раньше, чем через столько часов
EDITABLE_FLOOR_HOURS = int(os.getenv("EDITABLE_FLOOR_HOURS", "24"))

# Ограничения заявки на отсутствие
ABSENCE_MAX_DAYS = int(os.getenv("ABSENCE_MAX_DAYS", "93"))
ABSENCE_REASON_MAX_LENGTH = 1000

# Живая синхронизация представлений
LIVE_SYNC_DEBOUNCE_SECONDS = float(os.getenv("LIVE_SYNC_DEBOUNCE_SECONDS", "0.5"))
# 0 отключает опрос
LIVE_SYNC_POLL_INTERVAL = float(os.getenv("LIVE_SYNC_POLL_INTERVAL", "30"))

# Готовые причины отсутствия
ABSENCE_REASONS = [
    "Отпуск",
    "Больничный",
    "Обучение",
    "Другое",
]
