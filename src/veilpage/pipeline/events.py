"""Multi-subscriber event channels used by the orchestrator."""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, List, Tuple, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


class EventChannel(Generic[F]):
    """Ordered list of callbacks.

    Emission iterates over a snapshot taken at emit time, so callbacks may
    subscribe or unsubscribe while an event is being delivered.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Tuple[F, ...] = ()

    def subscribe(self, callback: F) -> Callable[[], None]:
        with self._lock:
            self._subscribers = self._subscribers + (callback,)

        def unsubscribe() -> None:
            with self._lock:
                subs: List[F] = list(self._subscribers)
                if callback in subs:
                    subs.remove(callback)
                self._subscribers = tuple(subs)

        return unsubscribe

    def emit(self, *args: Any) -> None:
        for callback in self._subscribers:
            callback(*args)

    def __len__(self) -> int:
        return len(self._subscribers)


__all__ = ["EventChannel"]
