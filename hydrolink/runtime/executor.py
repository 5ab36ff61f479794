# hydrolink/runtime/executor.py
from __future__ import annotations

import concurrent.futures
import logging
import threading
from concurrent.futures import Future
from queue import Queue
from typing import Any, Callable, Optional, Tuple


class ExecutorClosedError(RuntimeError):
    pass


_Job = Tuple[Future, Callable[..., Any], tuple, dict]


class SerialExecutor:
    """
    One worker thread running submitted callables strictly in FIFO order.

    Used as the single owner of mutable state: callers submit work instead of
    touching fields. Work submitted from the worker thread itself via call()
    runs inline, so owned code can compose without deadlocking.
    """

    def __init__(self, name: str, *, logger: Optional[logging.Logger] = None):
        self.name = name
        self._log = logger or logging.getLogger(__name__)

        self._queue: Queue[Optional[_Job]] = Queue()
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

        self._thread = threading.Thread(target=self._worker, name=name, daemon=True)
        self._thread.start()

    # ---------------- Public API ----------------
    @property
    def closed(self) -> bool:
        return self._stop_event.is_set()

    @property
    def in_worker(self) -> bool:
        return threading.current_thread() is self._thread

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        fut: Future = Future()
        with self._lock:
            if self._stop_event.is_set():
                fut.set_exception(ExecutorClosedError(f"{self.name} executor is closed"))
                return fut
            self._queue.put((fut, fn, args, kwargs))
        return fut

    def call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run fn on the worker and wait for its result (inline when already on it)."""
        if self.in_worker:
            return fn(*args, **kwargs)
        return self.submit(fn, *args, **kwargs).result()

    def post(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Fire-and-forget submit; failures are logged, never raised."""
        fut = self.submit(fn, *args, **kwargs)

        def _log_failure(f: Future) -> None:
            exc = f.exception()
            if isinstance(exc, ExecutorClosedError):
                self._log.debug("EXECUTOR_POST_AFTER_CLOSE name=%s", self.name)
            elif exc is not None:
                self._log.error(
                    "EXECUTOR_JOB_FAILED name=%s fn=%s",
                    self.name,
                    getattr(fn, "__name__", repr(fn)),
                    exc_info=(type(exc), exc, exc.__traceback__),
                )

        fut.add_done_callback(_log_failure)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until everything submitted so far has run."""
        if self.in_worker:
            return True
        fut = self.submit(lambda: None)
        try:
            fut.result(timeout=timeout)
        except ExecutorClosedError:
            self._thread.join(timeout=timeout)
            return not self._thread.is_alive()
        except concurrent.futures.TimeoutError:
            return False
        return True

    def close(self, timeout: Optional[float] = None) -> None:
        """Run what is already queued, then stop the worker thread (idempotent)."""
        with self._lock:
            if self._stop_event.is_set():
                return
            self._stop_event.set()
            self._queue.put(None)

        if not self.in_worker:
            self._thread.join(timeout=timeout)

    # ---------------- Internal ----------------
    def _worker(self) -> None:
        while True:
            job = self._queue.get()
            if job is None:
                break

            fut, fn, args, kwargs = job
            if not fut.set_running_or_notify_cancel():
                continue

            try:
                result = fn(*args, **kwargs)
            except BaseException as e:
                fut.set_exception(e)
            else:
                fut.set_result(result)
