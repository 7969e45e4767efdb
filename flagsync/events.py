"""Minimal callback-based event emitter shared by all components."""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Named-event fan-out to registered callbacks.

    Listeners run synchronously in registration order. An ``error`` event
    with nobody listening is logged rather than raised, so a host that never
    subscribes is not taken down by a background failure.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Listener:
        """Register a listener for an event.

        Returns:
            The listener, so it can be passed to ``off`` later.
        """
        self._listeners.setdefault(event, []).append(listener)
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """Register a listener that is removed after its first call."""

        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return listener(*args)

        return self.on(event, wrapper)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of an event.

        Returns:
            True if at least one listener was called.
        """
        listeners = list(self._listeners.get(event, ()))
        if not listeners:
            if event == "error":
                err = args[0] if args else None
                logger.error(f"Unhandled error event from {type(self).__name__}: {err}")
            return False

        for listener in listeners:
            listener(*args)
        return True

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)
