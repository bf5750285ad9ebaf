"""Change notification bus for the session and reading cache."""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class NotificationBus:
    """Ordered list of zero-argument listeners.

    Listeners run synchronously in subscription order. A listener that
    raises is logged and skipped so the remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Callable invoked after every mutation

        Returns:
            Function that removes the listener again (safe to call twice)
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self) -> int:
        """Invoke every current listener.

        Returns:
            Number of listeners that raised
        """
        failures = 0
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                failures += 1
                logger.warning(f"Listener {listener!r} failed: {e}")
        return failures

    def __len__(self) -> int:
        return len(self._listeners)
