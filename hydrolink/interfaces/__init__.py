from .storage import Storage
from .sensor_api import SensorApi

__all__ = ["Storage", "SensorApi"]
