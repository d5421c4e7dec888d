"""State-change notifications from the pipeline to the presentation layer."""
from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional
import logging

from .models import PipelineEvent

logger = logging.getLogger(__name__)

Listener = Callable[[PipelineEvent], None]


class EventBus:
    """Fan-out of pipeline events to subscribed listeners.

    A listener that raises is logged and never affects the pipeline or the
    other listeners.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, event: PipelineEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener failed on {event.kind.value}: {e}")


class DebouncedListener:
    """Forward at most one event per ``interval`` seconds.

    Final events (scan done, copy done) always pass through. The newest
    suppressed event is kept and delivered by ``flush()`` or with the next
    event once the interval has elapsed.
    """

    def __init__(self, listener: Listener, interval: float = 0.1, clock: Callable[[], float] = time.monotonic) -> None:
        self.listener = listener
        self.interval = interval
        self.clock = clock
        self._last_sent: Optional[float] = None
        self._pending: Optional[PipelineEvent] = None
        self._lock = threading.Lock()

    def __call__(self, event: PipelineEvent) -> None:
        with self._lock:
            now = self.clock()
            due = self._last_sent is None or now - self._last_sent >= self.interval
            if not (event.final or due):
                self._pending = event
                return
            self._pending = None
            self._last_sent = now
        self.listener(event)

    def flush(self) -> None:
        with self._lock:
            event, self._pending = self._pending, None
            if event is None:
                return
            self._last_sent = self.clock()
        self.listener(event)


__all__ = ["EventBus", "DebouncedListener", "Listener"]
