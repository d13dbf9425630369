"""
Observer hook for link events.

Handlers run synchronously on the thread that emits the event (for the link
clients: their read thread). A handler that needs another thread must
re-dispatch the work itself, e.g. by putting it on its own queue.
"""

import logging
import threading
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class EventHook:
    """Subscription list for one kind of event"""

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[Callable[..., Any]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[..., Any]) -> Callable[[], None]:
        """
        Register a handler.

        Returns:
            A function that removes the handler again
        """
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe():
            self.unsubscribe(handler)

        return unsubscribe

    def unsubscribe(self, handler: Callable[..., Any]):
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def emit(self, *args: Any):
        """Call every handler; a failing handler does not stop the others."""
        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"{self.name} handler error: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
