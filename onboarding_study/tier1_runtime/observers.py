"""
onboarding_study.tier1_runtime.observers
──────────────────────────────────────────
Topic-based notification bus between the host and the study controller.

Contract: subscribing a handler that is already subscribed to a topic is a
no-op, and so is unsubscribing one that is not. A handler is called as
handler(subject, topic, data) and may be a plain function or a coroutine
function; coroutines are awaited in subscription order.
"""
from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Protocol, Union, runtime_checkable

from onboarding_study.tier0_core.logging import get_logger

log = get_logger(__name__)

BROWSER_READY = "browser-delayed-startup-finished"
SESSION_RESTORED = "sessionstore-windows-restored"
LOGIN = "fxaccounts:onlogin"
LOGOUT = "fxaccounts:onlogout"

Handler = Callable[[Any, str, Any], Union[None, Awaitable[None]]]


@runtime_checkable
class NotificationBus(Protocol):
    def subscribe(self, topic: str, handler: Handler) -> None: ...

    def unsubscribe(self, topic: str, handler: Handler) -> None: ...

    def is_subscribed(self, topic: str, handler: Handler) -> bool: ...

    async def notify(self, topic: str, subject: Any = None, data: Any = None) -> None: ...


class InMemoryNotificationBus:
    """In-process bus for the kernel host and tests."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = {}
        self.notified: list[str] = []

    def subscribe(self, topic: str, handler: Handler) -> None:
        handlers = self._subscribers.setdefault(topic, [])
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        handlers = self._subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def is_subscribed(self, topic: str, handler: Handler) -> bool:
        return handler in self._subscribers.get(topic, [])

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def notify(self, topic: str, subject: Any = None, data: Any = None) -> None:
        self.notified.append(topic)
        # Snapshot: handlers commonly unsubscribe themselves on first delivery.
        for handler in list(self._subscribers.get(topic, [])):
            result = handler(subject, topic, data)
            if inspect.isawaitable(result):
                await result
        log.debug("bus.notified", topic=topic)


__all__ = [
    "BROWSER_READY",
    "SESSION_RESTORED",
    "LOGIN",
    "LOGOUT",
    "Handler",
    "NotificationBus",
    "InMemoryNotificationBus",
]
