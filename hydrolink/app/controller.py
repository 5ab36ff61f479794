# hydrolink/app/controller.py
from __future__ import annotations

import logging
import threading
from typing import Optional

from hydrolink.alerts.evaluator import AlertEvaluator
from hydrolink.api.client import SensorApiClient
from hydrolink.app.config import HydroLinkConfig
from hydrolink.core.storage import FileStorage
from hydrolink.interfaces.sensor_api import SensorApi
from hydrolink.polling.container import PollingStateContainer
from hydrolink.runtime.session import ConnectionSession
from hydrolink.transport.base import RadioTransport
from hydrolink.transport.bleak_transport import BleakTransport


class HydroLinkController:
    """
    App-level wiring: one storage, one alert evaluator shared by the BLE
    session and the polling container.

    Collaborators not passed in are built from the config; only those are
    closed by stop(). The BLE transport and session are built on first use,
    so HTTP-only commands never start the radio threads.
    """

    def __init__(
        self,
        config: HydroLinkConfig,
        *,
        transport: Optional[RadioTransport] = None,
        storage: Optional[FileStorage] = None,
        api: Optional[SensorApi] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config
        self._log = logger or logging.getLogger(__name__)

        self._owns_storage = storage is None
        self._storage = storage or FileStorage(config.storage.data_dir, logger=self._log)

        self._owns_api = api is None
        self._api: SensorApi = api or SensorApiClient(config.api.base_url, timeout_s=config.api.timeout_s, logger=self._log)

        self._alerts = AlertEvaluator(self._storage, logger=self._log)
        self._polling = PollingStateContainer(
            self._api,
            interval_ms=config.polling.interval_ms,
            alerts=self._alerts,
            logger=self._log,
        )

        self._transport = transport
        self._session: Optional[ConnectionSession] = None
        self._session_lock = threading.Lock()
        self._started = False

    @property
    def config(self) -> HydroLinkConfig:
        return self._config

    @property
    def session(self) -> ConnectionSession:
        with self._session_lock:
            if self._session is None:
                self._session = self._build_session()
            return self._session

    @property
    def has_session(self) -> bool:
        return self._session is not None

    @property
    def polling(self) -> PollingStateContainer:
        return self._polling

    @property
    def storage(self) -> FileStorage:
        return self._storage

    @property
    def api(self) -> SensorApi:
        return self._api

    def _build_session(self) -> ConnectionSession:
        cfg = self._config
        transport = self._transport
        if transport is None:
            transport = BleakTransport(connect_timeout_s=cfg.device.connect_timeout_s, logger=self._log)
        self._log.debug("BLE_SESSION_CREATED transport=%s", type(transport).__name__)
        return ConnectionSession(
            transport,
            storage=self._storage,
            alerts=self._alerts,
            profile=cfg.device.gatt_profile(),
            scan_timeout_s=cfg.device.scan_timeout_s,
            pump_flow_rate_ml_per_min=cfg.device.pump_flow_rate_ml_per_min,
            logger=self._log,
        )

    def start(self, *, ble: bool = True) -> None:
        if self._started:
            return
        self._started = True
        if not ble:
            return
        try:
            self.session.initialize()
        except Exception:
            try:
                self.stop()
            except Exception:
                self._log.exception("CONTROLLER_STOP_AFTER_START_FAIL")
            raise

    def stop(self) -> None:
        self._polling.close()
        with self._session_lock:
            session = self._session
        if session is not None:
            session.close()

        if self._owns_api and isinstance(self._api, SensorApiClient):
            self._api.close()
        if self._owns_storage:
            self._storage.close()
        self._started = False

    def __enter__(self) -> "HydroLinkController":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
