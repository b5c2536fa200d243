import logging
import os
from typing import Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel

DEFAULT_ALERT_MESSAGE = "Alert! Alert! Alert. New Earthquake detected."

# =========================
# Env helpers
# =========================

def _getenv_str(key: str, default: Optional[str] = None) -> Optional[str]:
    val = os.getenv(key)
    if val is None or not val.strip():
        return default
    return val.strip()

def _getenv_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except Exception:
        return default

def _getenv_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except Exception:
        return default


class Settings(BaseModel):
    aws_region: str = "ap-south-1"
    bucket_name: str = "earthquake-sensor"
    detections_prefix: str = "detections/"
    direct_suffix: str = ".json"
    alert_phone_number: Optional[str] = None
    alert_message: str = DEFAULT_ALERT_MESSAGE
    fetch_concurrency: int = 16
    fetch_timeout_secs: float = 10.0
    sweep_poll_secs: int = 0
    map_center_lat: float = 20.0
    map_center_lon: float = 0.0
    map_zoom: int = 2
    local_store_dir: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the process environment (and `.env`, if present).
        Bad numbers fall back to their defaults so a typo never blocks startup.
        """
        load_dotenv(find_dotenv(usecwd=True))
        return cls(
            aws_region=_getenv_str("AWS_REGION", "ap-south-1"),
            bucket_name=_getenv_str("BUCKET_NAME", "earthquake-sensor"),
            detections_prefix=_getenv_str("DETECTIONS_PREFIX", "detections/"),
            direct_suffix=_getenv_str("DIRECT_SUFFIX", ".json"),
            alert_phone_number=_getenv_str("ALERT_PHONE_NUMBER"),
            alert_message=_getenv_str("ALERT_MESSAGE", DEFAULT_ALERT_MESSAGE),
            fetch_concurrency=max(1, _getenv_int("FETCH_CONCURRENCY", 16)),
            fetch_timeout_secs=_getenv_float("FETCH_TIMEOUT_SECS", 10.0),
            sweep_poll_secs=max(0, _getenv_int("SWEEP_POLL_SECS", 0)),
            map_center_lat=_getenv_float("MAP_CENTER_LAT", 20.0),
            map_center_lon=_getenv_float("MAP_CENTER_LON", 0.0),
            map_zoom=_getenv_int("MAP_ZOOM", 2),
            local_store_dir=_getenv_str("LOCAL_STORE_DIR"),
            log_level=_getenv_str("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
