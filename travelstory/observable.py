import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StateCell(Generic[T]):
    """Holds a current value and notifies subscribers when it changes.

    Reads are synchronous (``cell.value``); new values arrive through
    ``set``/``update`` and are pushed to every subscriber in subscription
    order. A subscriber that raises is logged and does not stop the others.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T):
        self._value = value
        self._notify()

    def update(self, fn: Callable[[T], T]):
        self.set(fn(self._value))

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it"""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self):
        for callback in list(self._subscribers):
            try:
                callback(self._value)
            except Exception as e:
                logger.warning(f"State subscriber {callback!r} failed: {e}")
