# hydrolink/core/storage.py
from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from hydrolink.model.alert import AlertRecord
from hydrolink.model.device import DosingEvent
from hydrolink.model.sensor import SensorKind, StoredReading
from .recording.async_writer import AsyncWriter
from .settings_store import StoragePaths, load_settings_json, storage_paths, write_settings_json


class FileStorage:
    """
    File-backed storage under one data directory.

    Layout:
      readings.jsonl  one StoredReading per line
      alerts.jsonl    one AlertRecord per line
      dosing.jsonl    one DosingEvent per line
      settings.json   default device id and alert thresholds

    Record files are appended asynchronously. The latest value per
    (device, kind) is cached in memory and seeded from readings.jsonl on open.
    """

    def __init__(
        self,
        data_dir: str | Path,
        *,
        flush_interval: float = 0.5,
        logger: Optional[logging.Logger] = None,
    ):
        self._log = logger or logging.getLogger(__name__)
        self.paths: StoragePaths = storage_paths(data_dir)
        self.paths.root.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._latest: Dict[Tuple[str, SensorKind], StoredReading] = {}
        self._load_latest()

        self._readings = AsyncWriter(self.paths.readings_jsonl, flush_interval=flush_interval, logger=self._log)
        self._alerts = AsyncWriter(self.paths.alerts_jsonl, flush_interval=flush_interval, logger=self._log)
        self._dosing = AsyncWriter(self.paths.dosing_jsonl, flush_interval=flush_interval, logger=self._log)
        self._closed = False

        self._log.info("STORAGE_OPEN root=%s cached=%d", self.paths.root, len(self._latest))

    # ---------------- settings ----------------
    def get_default_device_id(self) -> Optional[str]:
        value = load_settings_json(self.paths.settings_json).get("default_device_id")
        return str(value) if value else None

    def set_default_device_id(self, device_id: Optional[str]) -> None:
        with self._lock:
            data = load_settings_json(self.paths.settings_json)
            data["default_device_id"] = device_id
            write_settings_json(self.paths.settings_json, data)
        self._log.info("DEFAULT_DEVICE_SET device_id=%s", device_id)

    def get_thresholds(self) -> Optional[Mapping[str, float]]:
        value = load_settings_json(self.paths.settings_json).get("thresholds")
        return value if isinstance(value, dict) else None

    def set_thresholds(self, thresholds: Mapping[str, float]) -> None:
        with self._lock:
            data = load_settings_json(self.paths.settings_json)
            data["thresholds"] = {str(k): float(v) for k, v in thresholds.items()}
            write_settings_json(self.paths.settings_json, data)

    # ---------------- records ----------------
    def save_readings(self, readings: Sequence[StoredReading]) -> None:
        with self._lock:
            for r in readings:
                self._latest[(r.device_id, r.kind)] = r
        for r in readings:
            self._readings.write(r.as_dict())

    def save_alert(self, alert: AlertRecord) -> None:
        self._alerts.write(alert.as_dict())

    def save_dosing_event(self, event: DosingEvent) -> None:
        self._dosing.write(event.as_dict())

    def get_latest_reading(self, device_id: str, kind: SensorKind) -> Optional[StoredReading]:
        with self._lock:
            return self._latest.get((device_id, SensorKind(kind)))

    # ---------------- lifecycle ----------------
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for writer in (self._readings, self._alerts, self._dosing):
            writer.close()
        self._log.info("STORAGE_CLOSED root=%s", self.paths.root)

    def __enter__(self) -> "FileStorage":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- internal ----------------
    def _load_latest(self) -> None:
        path = self.paths.readings_jsonl
        if not path.exists():
            return

        bad = 0
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    reading = _reading_from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError):
                    bad += 1
                    continue
                self._latest[(reading.device_id, reading.kind)] = reading

        if bad:
            self._log.warning("READINGS_FILE_SKIPPED_LINES path=%s count=%d", path, bad)


def _reading_from_dict(d: Dict[str, Any]) -> StoredReading:
    return StoredReading(
        device_id=str(d["device_id"]),
        kind=SensorKind(d["kind"]),
        value=float(d["value"]),
        timestamp=datetime.fromisoformat(d["timestamp"]),
        source=str(d.get("source") or "ble"),
    )
