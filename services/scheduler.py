from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    interval: float

    def start(self) -> None:
        ...

    def cancel(self) -> None:
        ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


class RepeatingTimer:
    """Invoke ``callback`` every ``interval`` seconds on a daemon thread.

    ``cancel`` returns immediately; a callback already running is left to finish.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], None],
        name: str = "persistence-timer",
    ) -> None:
        self.interval = interval
        self._callback = callback
        self._cancelled = Event()
        self._thread = Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        while not self._cancelled.wait(self.interval):
            try:
                self._callback()
            except Exception:  # noqa: BLE001 - keep ticking after a failed callback
                logger.exception("Scheduled callback raised; timer keeps running")
