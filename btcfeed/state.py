from __future__ import annotations

import asyncio
import logging
import threading
from typing import AsyncIterator, Callable, Generic, List, TypeVar

T = TypeVar("T")

log = logging.getLogger("state")


class Observable(Generic[T]):
    """
    Latest-value holder that consumers can read or subscribe to.

    - value: the current value (safe to read from any thread)
    - subscribe(): callback gets the current value right away, then every update
    - watch(): async iterator over updates; a slow consumer only sees the latest

    Subscribers are notified while the lock is held, so updates coming from one
    writer reach every subscriber in the order they were set. Callbacks should
    be quick and must not block on other threads.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value
            for callback in list(self._subscribers):
                self._notify(callback, value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register `callback`. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)
            self._notify(callback, self._value)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    async def watch(self) -> AsyncIterator[T]:
        loop = asyncio.get_running_loop()
        changed = asyncio.Event()
        latest: List[T] = []

        def deliver(value: T) -> None:
            latest[:] = [value]
            changed.set()

        def on_value(value: T) -> None:
            if _same_loop(loop):
                deliver(value)
            else:
                loop.call_soon_threadsafe(deliver, value)

        unsubscribe = self.subscribe(on_value)
        try:
            while True:
                await changed.wait()
                changed.clear()
                yield latest[0]
        finally:
            unsubscribe()

    def _notify(self, callback: Callable[[T], None], value: T) -> None:
        try:
            callback(value)
        except Exception:
            log.exception("Observable subscriber failed callback=%r", callback)


def _same_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
