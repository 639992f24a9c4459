"""
Periodic Triggers
Image Optimizer - Batch Queue System

ThreadingTrigger runs callbacks on background daemon threads.
ManualTrigger records registrations and fires only when told to, for hosts
that drive ticks from an external cron and for tests.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config.logging_config import get_logger

from .interfaces import PeriodicTrigger, TickCallback

logger = get_logger(__name__)


@dataclass
class _Registration:
    interval: float
    next_run: float
    stop_event: Optional[threading.Event] = None
    thread: Optional[threading.Thread] = None


class ThreadingTrigger(PeriodicTrigger):
    """
    One daemon thread per registered callback.

    Callback exceptions are logged and the schedule continues.
    """

    def __init__(self, clock: Callable[[], float] = time.time, join_timeout: float = 5.0):
        self.clock = clock
        self.join_timeout = join_timeout
        self._registrations: Dict[TickCallback, _Registration] = {}
        self._lock = threading.Lock()

    def register_recurring(self, interval_seconds: float, callback: TickCallback) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        with self._lock:
            if callback in self._registrations:
                return

            registration = _Registration(
                interval=interval_seconds,
                next_run=self.clock() + interval_seconds,
                stop_event=threading.Event(),
            )
            registration.thread = threading.Thread(
                target=self._run,
                args=(callback, registration),
                name=f"periodic-trigger-{getattr(callback, '__name__', 'callback')}",
                daemon=True
            )
            self._registrations[callback] = registration
            registration.thread.start()

        logger.debug(f"Registered recurring callback every {interval_seconds}s")

    def _run(self, callback: TickCallback, registration: _Registration):
        while not registration.stop_event.wait(registration.interval):
            registration.next_run = self.clock() + registration.interval
            try:
                callback()
            except Exception:
                logger.exception("Periodic callback raised")

    def deregister(self, callback: TickCallback) -> None:
        with self._lock:
            registration = self._registrations.pop(callback, None)
        if registration is None:
            return

        registration.stop_event.set()
        # Deregistering from inside the callback must not join its own thread
        if registration.thread is not threading.current_thread():
            registration.thread.join(timeout=self.join_timeout)
        logger.debug("Deregistered recurring callback")

    def next_scheduled(self, callback: TickCallback) -> Optional[float]:
        with self._lock:
            registration = self._registrations.get(callback)
        return registration.next_run if registration else None

    def shutdown(self):
        """Stop every registered callback"""
        with self._lock:
            callbacks = list(self._registrations.keys())
        for callback in callbacks:
            self.deregister(callback)


class ManualTrigger(PeriodicTrigger):
    """
    Keeps a schedule without running anything on its own.

    Usage:
        trigger = ManualTrigger()
        processor = create_batch_processor(trigger=trigger)
        ...
        trigger.fire()   # e.g. from an OS cron entry
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._registrations: Dict[TickCallback, _Registration] = {}

    @property
    def registered(self) -> List[TickCallback]:
        return list(self._registrations.keys())

    def is_registered(self, callback: TickCallback) -> bool:
        return callback in self._registrations

    def register_recurring(self, interval_seconds: float, callback: TickCallback) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if callback in self._registrations:
            return
        self._registrations[callback] = _Registration(
            interval=interval_seconds,
            next_run=self.clock() + interval_seconds,
        )

    def deregister(self, callback: TickCallback) -> None:
        self._registrations.pop(callback, None)

    def next_scheduled(self, callback: TickCallback) -> Optional[float]:
        registration = self._registrations.get(callback)
        return registration.next_run if registration else None

    def fire(self) -> int:
        """Invoke every registered callback once, regardless of schedule"""
        return self._fire(due_only=False)

    def fire_due(self) -> int:
        """Invoke callbacks whose next run time has passed"""
        return self._fire(due_only=True)

    def _fire(self, due_only: bool) -> int:
        now = self.clock()
        fired = 0
        for callback, registration in list(self._registrations.items()):
            if due_only and registration.next_run > now:
                continue
            registration.next_run = now + registration.interval
            callback()
            fired += 1
        return fired
