# hydrolink/runtime/events.py
from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")


class Observers(Generic[T]):
    """
    Listener registry for one event kind.

    Listeners are called in registration order on the emitting thread; a
    failing listener is logged and does not stop the others.
    """

    def __init__(self, name: str, *, logger: Optional[logging.Logger] = None):
        self.name = name
        self._log = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._cbs: List[Callable[[T], None]] = []

    def subscribe(self, cb: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._cbs.append(cb)

        def _unsubscribe() -> None:
            with self._lock:
                if cb in self._cbs:
                    self._cbs.remove(cb)

        return _unsubscribe

    def emit(self, value: T) -> None:
        with self._lock:
            cbs = list(self._cbs)

        for cb in cbs:
            try:
                cb(value)
            except Exception:
                self._log.exception("%s_CALLBACK_ERROR", self.name.upper())

    def clear(self) -> None:
        with self._lock:
            self._cbs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cbs)
