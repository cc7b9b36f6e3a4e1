from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger("shopchat.observers")


class Listeners(Generic[T]):
    """Ordered set of synchronous callbacks sharing one payload type."""

    def __init__(self, topic: str) -> None:
        self.topic = topic
        self._listeners: list[Callable[[T], None]] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, listener: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "listener_error",
                    extra={"event": "listener_error", "topic": self.topic, "exception": exc},
                )


__all__ = ["Listeners"]
