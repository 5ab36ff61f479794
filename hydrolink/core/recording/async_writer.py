# hydrolink/core/recording/async_writer.py
from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Callable, Dict, List, Optional


def append_jsonl(path: Path, batch: List[Dict[str, Any]]) -> None:
    """Append one compact JSON object per line."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        for row in batch:
            f.write(json.dumps(row, ensure_ascii=False, separators=(",", ":")) + "\n")


class AsyncWriter:
    """
    Threaded, batched appender for one record file.

    Records are queued by write() and appended by a worker thread every
    `flush_interval` seconds; close() flushes whatever is still queued.
    """

    def __init__(
        self,
        path: Path,
        write_func: Callable[[Path, List[Any]], None] = append_jsonl,
        flush_interval: float = 0.5,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self._path = path
        self._write_func = write_func
        self._flush_interval = float(flush_interval)

        self._log = logger or logging.getLogger(__name__)

        self._queue: Queue[Any] = Queue()
        self._stop_event = threading.Event()

        self._thread = threading.Thread(target=self._worker, name=f"writer-{path.stem}", daemon=True)
        self._thread.start()

    @property
    def path(self) -> Path:
        return self._path

    # ---------------- Public API ----------------
    def write(self, item: Any) -> None:
        """Queue an item for writing (no-op after close())."""
        if self._stop_event.is_set():
            return
        self._queue.put(item)

    def close(self) -> None:
        """Flush remaining records and stop the writer thread."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        self._thread.join(timeout=None)

    # ---------------- Internal ----------------
    def _worker(self) -> None:
        batch: List[Any] = []
        last_flush = time.monotonic()

        while not self._stop_event.is_set() or not self._queue.empty():
            try:
                batch.append(self._queue.get(timeout=0.1))
            except Empty:
                pass

            now = time.monotonic()
            if batch and (now - last_flush >= self._flush_interval or self._stop_event.is_set()):
                self._flush_safe(batch)
                batch.clear()
                last_flush = now

        if batch:
            self._flush_safe(batch)

    def _flush_safe(self, batch: List[Any]) -> None:
        try:
            self._write_func(self._path, batch)
        except Exception:
            # drop this batch, keep the worker alive
            self._log.exception("ASYNC_WRITER_FLUSH_FAILED path=%s batch_len=%d", self._path, len(batch))
