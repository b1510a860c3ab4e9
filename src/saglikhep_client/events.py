# src/saglikhep_client/events.py

import logging
import threading
from typing import Callable, Dict

logger = logging.getLogger(__name__)

SessionListener = Callable[[], None]


class SessionEvents:
    """
    Zero-payload "session changed" broadcast channel.

    Any number of listeners may subscribe. Invocation order is not guaranteed,
    and a failing listener does not stop the others from being notified.
    """

    def __init__(self, name: str = "session"):
        self.name = name
        self._listeners: Dict[int, SessionListener] = {}
        self._next_id = 0
        self._lock = threading.Lock()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Registers listener and returns a callable that removes it again."""
        with self._lock:
            token = self._next_id
            self._next_id += 1
            self._listeners[token] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe

    def publish(self) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        logger.debug("SessionEvents: publish - '%s' changed, notifying %d listener(s)", self.name, len(listeners))
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("SessionEvents: listener %r failed", listener)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


# Process-wide default channel; components accept an injected one for tests.
session_events = SessionEvents()
