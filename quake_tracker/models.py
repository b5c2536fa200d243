import math
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# =========================
# Normalizers
# =========================

def _as_number(v: Any) -> Optional[float]:
    # only real JSON numbers count; "35.6", true and NaN do not
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    f = float(v)
    return f if math.isfinite(f) else None

def _as_text(v: Any) -> Optional[str]:
    if v is None or isinstance(v, (dict, list)):
        return None
    s = str(v).strip()
    return s or None

def _as_timestamp(v: Any) -> Optional[datetime]:
    """
    Numbers are epoch milliseconds; strings are ISO-8601 first, RFC 2822 second.
    Anything unparseable becomes None so it renders as a placeholder.
    """
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    if isinstance(v, (int, float)):
        try:
            return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(v, str) and v.strip():
        s = v.strip()
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            try:
                dt = parsedate_to_datetime(s)
            except (TypeError, ValueError, IndexError):
                return None
        if dt is None:
            return None
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    return None


# =========================
# Records
# =========================

class Prediction(BaseModel):
    model_config = ConfigDict(extra="allow")

    confidence: Optional[float] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, v):
        return _as_number(v)


class DetectionRecord(BaseModel):
    """One sensor detection from the `detections/` folder. Every field is optional."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location: Optional[str] = None
    hazard_type: Optional[str] = Field(default=None, alias="hazardType")
    timestamp: Optional[datetime] = None
    predictions: List[Prediction] = Field(default_factory=list)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coords(cls, v):
        return _as_number(v)

    @field_validator("location", "hazard_type", mode="before")
    @classmethod
    def _text(cls, v):
        return _as_text(v)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _timestamp(cls, v):
        return _as_timestamp(v)

    @field_validator("predictions", mode="before")
    @classmethod
    def _predictions(cls, v):
        if not isinstance(v, list):
            return []
        # keep positions so predictions[0] still means "the first one"
        return [p if isinstance(p, dict) else {} for p in v]

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def first_confidence(self) -> Optional[float]:
        return self.predictions[0].confidence if self.predictions else None


class DirectDetectionRecord(BaseModel):
    """Raw ESP32 reading found anywhere in the bucket; display-only."""
    model_config = ConfigDict(extra="allow")

    af: Any = None
    iif: Any = None
    data_from: Any = None
