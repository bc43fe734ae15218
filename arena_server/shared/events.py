"""
Event hub connecting the game simulation and the agent transport

Handlers run synchronously on the thread that publishes the event. They must
be thread-safe and return quickly, since a slow handler stalls the tick loop
or the transport's receive loop that produced the event.
"""

import enum
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class EventKind(enum.Enum):
    AFTER_GAME_TICK = "after_game_tick"
    AFTER_NEW_PLAYER_JOIN = "after_new_player_join"
    AFTER_MESSAGE_RECEIVE = "after_message_receive"


class EventHub:
    """Publish/subscribe registry keyed by event kind"""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._handlers: Dict[EventKind, List[Handler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._logger = log or logger

    def subscribe(self, kind: EventKind, handler: Handler):
        """Register a handler for an event kind"""
        with self._lock:
            self._handlers[kind].append(handler)
        self._logger.debug(f"Subscribed {getattr(handler, '__qualname__', handler)} to {kind.value}")

    def unsubscribe(self, kind: EventKind, handler: Handler) -> bool:
        with self._lock:
            handlers = self._handlers.get(kind, [])
            if handler in handlers:
                handlers.remove(handler)
                return True
        return False

    def subscriber_count(self, kind: EventKind) -> int:
        with self._lock:
            return len(self._handlers.get(kind, []))

    def publish(self, kind: EventKind, payload: Any = None) -> int:
        """Invoke every handler for ``kind`` on the calling thread.

        Returns the number of handlers invoked. A failing handler is logged and
        does not prevent delivery to the remaining handlers.
        """
        with self._lock:
            handlers = list(self._handlers.get(kind, []))

        for handler in handlers:
            try:
                handler(payload)
            except Exception as e:
                self._logger.error(f"Error in {kind.value} handler: {e}", exc_info=True)

        return len(handlers)
