"""
Trailing-edge debounce timer.

Every `schedule()` call restarts the countdown, so a burst of calls results
in a single invocation `delay` seconds after the last one. `flush()` runs a
pending invocation immediately on the calling thread and is what shutdown
uses so nothing scheduled is lost.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    def __init__(
        self,
        func: Callable[[], None],
        delay: float = 0.5,
        lock: threading.RLock | None = None,
        name: str = "debounce",
    ):
        """
        Args:
            func: Callable run when the timer fires
            delay: Seconds to wait after the last schedule() call
            lock: Lock shared with the owner of the state `func` touches.
                  It guards the timer only; `func` runs without it held
            name: Name used for the timer thread and in logs
        """
        self.func = func
        self.delay = delay
        self.name = name
        self._lock = lock or threading.RLock()
        self._timer: threading.Timer | None = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        """(Re)start the countdown."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            timer = threading.Timer(self.delay, self._fire, args=(self._generation,))
            timer.name = f"{self.name}-{self._generation}"
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A newer schedule() or a flush() superseded this timer.
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self.func()

    def flush(self) -> bool:
        """Run the pending invocation now. Returns False when nothing was pending."""
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._generation += 1
            logger.info(f"Debouncer '{self.name}': flushing pending call")
        self.func()
        return True
