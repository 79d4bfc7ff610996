"""Application foreground/background lifecycle notifications."""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol


class AppLifecycle(StrEnum):
    """Whether the client application is in the foreground."""

    ACTIVE = "active"
    BACKGROUND = "background"


LifecycleListener = Callable[[AppLifecycle], None]


class LifecycleObserver(Protocol):
    """Interface for subscribing to lifecycle changes."""

    def subscribe(self, listener: LifecycleListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""


@dataclass
class LocalLifecycleObserver(LifecycleObserver):
    """In-process observer fed by whoever knows the client's state."""

    state: AppLifecycle = AppLifecycle.ACTIVE
    _listeners: list[LifecycleListener] = field(default_factory=list, init=False)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: LifecycleListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, state: AppLifecycle) -> None:
        """Record a lifecycle change and tell every listener."""
        self.state = state
        for listener in list(self._listeners):
            listener(state)
