# hydrolink/alerts/evaluator.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from hydrolink.interfaces.storage import Storage
from hydrolink.model.alert import AlertRecord, Severity, ThresholdSettings
from hydrolink.model.sensor import SensorKind, StoredReading


@dataclass(frozen=True)
class ThresholdCheck:
    description: str
    min_field: str
    max_field: Optional[str]


CHECKS: Dict[SensorKind, ThresholdCheck] = {
    SensorKind.PH: ThresholdCheck("pH out of range", "ph_min", "ph_max"),
    SensorKind.TDS: ThresholdCheck("TDS out of range", "tds_min", "tds_max"),
    SensorKind.WATER_TEMPERATURE: ThresholdCheck("Water temperature out of range", "water_temp_min", "water_temp_max"),
    SensorKind.WATER_LEVEL: ThresholdCheck("Water level low", "water_level_min", None),
}


def check_reading(reading: StoredReading, thresholds: ThresholdSettings) -> Optional[AlertRecord]:
    """Return an alert when the reading is outside its configured bounds, else None."""
    check = CHECKS.get(reading.kind)
    if check is None:
        return None

    min_value = getattr(thresholds, check.min_field)
    max_value = getattr(thresholds, check.max_field) if check.max_field else None

    value = float(reading.value)
    if value >= min_value and (max_value is None or value <= max_value):
        return None

    return AlertRecord(
        device_id=reading.device_id,
        kind=reading.kind,
        value=value,
        min_value=min_value,
        max_value=max_value,
        message=f"{check.description}: {value:.2f}",
        severity=Severity.WARNING,
    )


class AlertEvaluator:
    """
    Compares readings against thresholds and hands every breach to storage.

    Thresholds come from storage on each evaluation (defaults fill the gaps),
    unless a fixed ThresholdSettings is injected. Repeated breaches are not
    de-duplicated.
    """

    def __init__(
        self,
        storage: Optional[Storage] = None,
        *,
        thresholds: Optional[ThresholdSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._storage = storage
        self._fixed = thresholds
        self._log = logger or logging.getLogger(__name__)

    def thresholds(self) -> ThresholdSettings:
        if self._fixed is not None:
            return self._fixed
        if self._storage is None:
            return ThresholdSettings()
        try:
            return ThresholdSettings.from_mapping(self._storage.get_thresholds())
        except Exception:
            self._log.exception("THRESHOLDS_LOAD_FAILED using defaults")
            return ThresholdSettings()

    def evaluate(self, readings: Sequence[StoredReading]) -> List[AlertRecord]:
        if not readings:
            return []

        limits = self.thresholds()
        alerts: List[AlertRecord] = []

        for reading in readings:
            alert = check_reading(reading, limits)
            if alert is None:
                continue

            alerts.append(alert)
            self._log.warning(
                "ALERT device_id=%s kind=%s value=%.2f msg=%s",
                alert.device_id,
                alert.kind.value,
                alert.value,
                alert.message,
            )

            if self._storage is not None:
                try:
                    self._storage.save_alert(alert)
                except Exception:
                    self._log.exception("ALERT_PERSIST_FAILED kind=%s", alert.kind.value)

        return alerts
