"""Publish/subscribe primitives and owned-resource lifetimes."""

import logging
from typing import Any, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
D = TypeVar("D")


class Subscription:
    """Handle returned by `EventEmitter.event`; disposing it unsubscribes."""

    def __init__(self, emitter: "EventEmitter", listener: Callable[[Any], Any]):
        self._emitter: Optional[EventEmitter] = emitter
        self._listener = listener

    def dispose(self) -> None:
        if self._emitter is not None:
            self._emitter._remove(self._listener)
            self._emitter = None


class EventEmitter(Generic[T]):
    """Fan a payload out to every subscribed listener.

    The emitter owns its listener list. A listener that raises is logged and
    delivery continues with the next one, so no subscriber can stall emission.
    """

    def __init__(self, name: str = "event"):
        self.name = name
        self._listeners: List[Callable[[T], Any]] = []
        self._disposed = False

    def event(self, listener: Callable[[T], Any]) -> Subscription:
        """Subscribe `listener` and return the subscription handle."""
        if self._disposed:
            raise RuntimeError(f"Cannot subscribe to disposed emitter {self.name!r}")
        self._listeners.append(listener)
        return Subscription(self, listener)

    def fire(self, payload: T) -> None:
        # Snapshot so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(payload)
            except Exception:
                logger.exception(f"Listener for {self.name!r} failed")

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _remove(self, listener: Callable[[T], Any]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def dispose(self) -> None:
        self._listeners.clear()
        self._disposed = True


class Disposable:
    """Base for components that own subscriptions and child resources.

    Everything passed to `_register` is disposed in reverse registration
    order, so inner resources go before the component holding them.
    """

    def __init__(self):
        self._resources: List[Any] = []
        self._is_disposed = False

    def _register(self, resource: D) -> D:
        if self._is_disposed:
            resource.dispose()
        else:
            self._resources.append(resource)
        return resource

    @property
    def is_disposed(self) -> bool:
        return self._is_disposed

    def dispose(self) -> None:
        if self._is_disposed:
            return
        self._is_disposed = True
        while self._resources:
            resource = self._resources.pop()
            try:
                resource.dispose()
            except Exception:
                logger.exception(f"Failed to dispose {resource!r}")
