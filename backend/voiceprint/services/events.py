"""In-process publish/subscribe bus for voice-profile events.

Keeps the analysis and profile views consistent without polling. The bus is
an ordinary object built by the application's composition root and passed to
producers and consumers; there is no module-level instance.

Two delivery modes:

* immediate: handlers run synchronously inside ``emit``;
* queued (default): events are buffered on the running asyncio loop and
  flushed once the debounce window (300 ms) after the first queued event
  elapses. A flush delivers one event per ``(type, payload)`` content key, so
  a burst of identical events reaches each subscriber once.

A handler that raises is logged and skipped; the remaining handlers still run.
Coroutine handlers are scheduled as tasks and their failures logged the same
way.
"""

import asyncio
import inspect
import json
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel

from ..log import get_logger
from ..models.events import EVENT_PAYLOADS

logger = get_logger(__name__)

Handler = Callable[[str, BaseModel], Any]


def event_key(event_type: str, payload: BaseModel) -> str:
    """Content key used to collapse duplicate queued events."""
    return f"{event_type}:{json.dumps(payload.model_dump(mode='json'), sort_keys=True)}"


class EventBus:
    """Typed event bus owned by a single asyncio loop."""

    def __init__(self, debounce_ms: int = 300):
        self.debounce_seconds = debounce_ms / 1000
        self._listeners: Dict[str, List[Handler]] = {}
        self._queue: List[Tuple[str, BaseModel]] = []
        self._flush_handle: Optional[asyncio.TimerHandle] = None
        self._handler_tasks: Set[asyncio.Future] = set()

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` and return a callable that unregisters it."""
        if event_type not in EVENT_PAYLOADS:
            raise ValueError(f"Unknown event type: {event_type}")

        handlers = self._listeners.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

        def unsubscribe() -> None:
            current = self._listeners.get(event_type)
            if current and handler in current:
                current.remove(handler)
                if not current:
                    del self._listeners[event_type]

        return unsubscribe

    def emit(self, event_type: str, payload: BaseModel, immediate: bool = False) -> None:
        """Publish ``payload``; it must be the model registered for ``event_type``."""
        expected = EVENT_PAYLOADS.get(event_type)
        if expected is None:
            raise ValueError(f"Unknown event type: {event_type}")
        if not isinstance(payload, expected):
            raise TypeError(
                f"{event_type} expects {expected.__name__}, got {type(payload).__name__}"
            )

        logger.debug("event_emitted", event_type=event_type, immediate=immediate)

        if immediate:
            self._deliver(event_type, payload)
            return

        self._queue.append((event_type, payload))
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        if self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: events wait for an explicit flush()
            logger.debug("event_flush_deferred", queued=len(self._queue))
            return
        self._flush_handle = loop.call_later(self.debounce_seconds, self.flush)

    def flush(self) -> int:
        """Deliver queued events now, one per content key. Returns the count."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

        events, self._queue = self._queue, []
        unique: Dict[str, Tuple[str, BaseModel]] = {}
        for event_type, payload in events:
            unique[event_key(event_type, payload)] = (event_type, payload)

        if len(unique) < len(events):
            logger.debug("events_collapsed", queued=len(events), delivered=len(unique))

        for event_type, payload in unique.values():
            self._deliver(event_type, payload)
        return len(unique)

    def _deliver(self, event_type: str, payload: BaseModel) -> None:
        for handler in list(self._listeners.get(event_type, [])):
            try:
                result = handler(event_type, payload)
            except Exception:
                logger.exception("event_handler_failed", event_type=event_type)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._handler_tasks.add(task)
                task.add_done_callback(
                    lambda t, et=event_type: self._on_handler_done(t, et)
                )

    def _on_handler_done(self, task: asyncio.Future, event_type: str) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "event_handler_failed",
                event_type=event_type,
                error=str(exc),
                exc_info=exc,
            )

    async def drain(self) -> None:
        """Flush the queue and wait for coroutine handlers to finish."""
        self.flush()
        if self._handler_tasks:
            await asyncio.gather(*list(self._handler_tasks), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def listener_counts(self) -> Dict[str, int]:
        return {event_type: len(handlers) for event_type, handlers in self._listeners.items()}

    def clear(self) -> None:
        """Drop all listeners and queued events."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._listeners.clear()
        self._queue = []
