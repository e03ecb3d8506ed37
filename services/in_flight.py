"""Блокировка повторных действий над одной сущностью"""
from contextlib import contextmanager
from typing import Hashable, Set

from services.errors import ActionInFlightError


class InFlightRegistry:
    """Набор ключей, по которым сейчас выполняется изменение.

    Блокируется конкретный ключ (ID заявки, дата тренера), а не всё сразу.
    """

    def __init__(self):
        self._keys: Set[Hashable] = set()

    def is_in_flight(self, key: Hashable) -> bool:
        return key in self._keys

    @contextmanager
    def hold(self, *keys: Hashable):
        """Занять ключи на время операции; снимаются при любом исходе"""
        busy = [key for key in keys if key in self._keys]
        if busy:
            raise ActionInFlightError(busy[0])
        self._keys.update(keys)
        try:
            yield
        finally:
            self._keys.difference_update(keys)
