"""Главный файл бота"""
import asyncio
import logging
import sys

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.fsm.storage.memory import MemoryStorage

from config import BOT_TOKEN, ADMIN_IDS, DATABASE_PATH, LIVE_SYNC_POLL_INTERVAL
from database import Database
from handlers.common import notify_admins
from services.absence_workflow import AbsenceRequestWorkflow
from services.availability_editor import AvailabilityEditor
from services.bulk_edit import BulkEditOperations
from services.in_flight import InFlightRegistry
from services.live_sync import LiveSyncCoordinator, ViewStateStore

# Импортируем роутеры
from handlers import start, trainer, admin

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)
logger = logging.getLogger(__name__)


async def main():
    """Главная функция запуска бота"""

    if not BOT_TOKEN:
        logger.error("❌ BOT_TOKEN не установлен! Проверьте файл .env")
        return

    if not ADMIN_IDS:
        logger.warning("⚠️ ADMIN_IDS не установлен! Заявки на отсутствие некому рассматривать.")
    else:
        logger.info(f"✅ Администраторов: {len(ADMIN_IDS)}")

    bot = Bot(
        token=BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    dp = Dispatcher(storage=MemoryStorage())

    db = Database(DATABASE_PATH)
    await db.init_db()
    logger.info("✅ База данных инициализирована")

    # Ядро расписания
    live_sync = LiveSyncCoordinator()
    views = ViewStateStore(live_sync)
    # Общий реестр: одиночные и массовые правки одного тренера не пересекаются
    in_flight = InFlightRegistry()
    editor = AvailabilityEditor(db, live_sync, in_flight=in_flight)
    workflow = AbsenceRequestWorkflow(db, live_sync, in_flight=in_flight)
    bulk = BulkEditOperations(db, live_sync, in_flight=in_flight)

    @dp.update.outer_middleware()
    async def services_middleware(handler, event, data):
        """Передача базы данных и сервисов в handlers"""
        data['db'] = db
        data['live_sync'] = live_sync
        data['views'] = views
        data['editor'] = editor
        data['workflow'] = workflow
        data['bulk'] = bulk
        return await handler(event, data)

    dp.include_router(start.router)
    dp.include_router(trainer.router)
    dp.include_router(admin.router)
    logger.info("✅ Роутеры зарегистрированы")

    if LIVE_SYNC_POLL_INTERVAL > 0:
        live_sync.start_polling(
            db.get_topic_versions, LIVE_SYNC_POLL_INTERVAL, own_versions=db.local_versions
        )

    await notify_admins(
        bot,
        "🤖 <b>Бот запущен!</b>\n\n"
        "Расписание тренеров готово к работе."
    )

    logger.info("🚀 Бот запущен!")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        views.close_all()
        await live_sync.close()
        await bot.session.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("⏹ Бот остановлен пользователем")
    except Exception as e:
        logger.error(f"❌ Критическая ошибка: {e}", exc_info=True)
