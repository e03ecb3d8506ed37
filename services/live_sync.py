"""Живая синхронизация представлений тренера и администратора.

После успешного изменения ядро вызывает ``invalidate(topic)``, и все открытые
представления, подписанные на тему, перезапрашивают данные. Частые сигналы
по одной теме схлопываются в один вызов подписчиков.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Iterable, List, Optional, Set, Tuple, Union

from config import LIVE_SYNC_DEBOUNCE_SECONDS
from database import TOPIC_TRAINER_AVAILABILITY

logger = logging.getLogger(__name__)

Callback = Callable[[], Union[None, Awaitable[None]]]
VersionSource = Callable[[], Awaitable[Dict[str, Any]]]

LIVE_SYNC_TOPICS = (TOPIC_TRAINER_AVAILABILITY,)


class LiveSyncCoordinator:
    """Подписки на темы и сигналы об их изменении"""

    def __init__(self, debounce_seconds: float = LIVE_SYNC_DEBOUNCE_SECONDS):
        self.debounce_seconds = debounce_seconds
        self._subscribers: Dict[str, List[Callback]] = {}
        self._pending: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None
        self._versions: Optional[Dict[str, Any]] = None

    def subscribe(self, topic: str, callback: Callback) -> Callable[[], None]:
        """Подписаться на тему. Возвращает функцию отписки."""
        self._subscribers.setdefault(topic, []).append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(topic, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    def invalidate(self, topic: str):
        """Сигнал, что данные темы изменились"""
        if topic in self._pending:
            # Уже запланировано - повторный сигнал схлопывается
            return
        loop = asyncio.get_running_loop()
        self._pending[topic] = loop.call_later(self.debounce_seconds, self._dispatch, topic)

    def notify(self, topics: Iterable[str]):
        """Внешний сигнал об изменении нескольких тем"""
        for topic in topics:
            self.invalidate(topic)

    def refresh_all(self):
        """Обновить всех подписчиков всех тем"""
        self.notify(list(self._subscribers))

    def _dispatch(self, topic: str):
        self._pending.pop(topic, None)
        callbacks = list(self._subscribers.get(topic, []))
        logger.debug(f"Тема {topic} изменилась, подписчиков: {len(callbacks)}")
        for callback in callbacks:
            # Ошибка одного подписчика не должна мешать остальным
            try:
                result = callback()
            except Exception:
                logger.exception(f"Ошибка подписчика темы {topic}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Ошибка обновления представления", exc_info=exc)

    async def flush(self):
        """Немедленно разослать отложенные сигналы и дождаться подписчиков"""
        for topic, handle in list(self._pending.items()):
            handle.cancel()
            self._dispatch(topic)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # === Опрос версий (если push-сигналов нет) ===

    def start_polling(
        self,
        version_source: VersionSource,
        interval: float,
        own_versions: Optional[Dict[str, Any]] = None
    ):
        """Периодически сверять версии тем и инвалидировать изменившиеся.

        own_versions: версии, записанные этим процессом; о них подписчики
        уже узнали через invalidate.
        """
        if self._poll_task is not None:
            return
        self._poll_task = asyncio.create_task(self._poll(version_source, interval, own_versions))
        logger.info(f"Опрос версий тем запущен, интервал {interval} с")

    async def _poll(self, version_source: VersionSource, interval: float, own_versions: Optional[Dict[str, Any]]):
        while True:
            try:
                versions = await version_source()
            except Exception as e:
                logger.warning(f"Не удалось получить версии тем: {e}")
            else:
                self.apply_versions(versions, own_versions)
            await asyncio.sleep(interval)

    def apply_versions(self, versions: Dict[str, Any], own_versions: Optional[Dict[str, Any]] = None):
        """Сравнить версии с предыдущими; первый вызов только запоминает их.

        Тема, последнюю версию которой записал этот процесс, пропускается.
        """
        previous = self._versions
        self._versions = dict(versions)
        if previous is None:
            return
        own_versions = own_versions or {}
        changed = [
            topic for topic, version in versions.items()
            if previous.get(topic) != version and own_versions.get(topic) != version
        ]
        if changed:
            logger.info(f"Изменились темы: {', '.join(changed)}")
            self.notify(changed)

    async def close(self):
        """Остановить опрос и отменить отложенные сигналы"""
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
        for task in list(self._tasks):
            task.cancel()


class ViewStateStore:
    """Открытые представления, ключ (user_id, тема представления).

    Открытие представления подписывает его на тему синхронизации,
    закрытие - отписывает.
    """

    def __init__(self, live_sync: LiveSyncCoordinator):
        self.live_sync = live_sync
        self._views: Dict[Tuple[int, str], Any] = {}
        self._unsubscribe: Dict[Tuple[int, str], Callable[[], None]] = {}

    def open(
        self,
        user_id: int,
        topic: str,
        view: Any,
        on_invalidate: Optional[Callback] = None,
        sync_topic: str = TOPIC_TRAINER_AVAILABILITY
    ) -> Any:
        self.close(user_id, topic)
        key = (user_id, topic)
        self._views[key] = view
        if on_invalidate is not None:
            self._unsubscribe[key] = self.live_sync.subscribe(sync_topic, on_invalidate)
        return view

    def get(self, user_id: int, topic: str) -> Optional[Any]:
        return self._views.get((user_id, topic))

    def close(self, user_id: int, topic: str):
        key = (user_id, topic)
        self._views.pop(key, None)
        unsubscribe = self._unsubscribe.pop(key, None)
        if unsubscribe is not None:
            unsubscribe()

    def keys(self) -> List[Hashable]:
        return list(self._views)

    def close_all(self):
        for user_id, topic in list(self._views):
            self.close(user_id, topic)
