from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from html import escape
from typing import Any, Iterable, List, Optional, Tuple

import folium

from .models import DetectionRecord, DirectDetectionRecord

PLACEHOLDER = "N/A"
UNKNOWN_LOCATION = "Unknown"

OSM_TILES = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
OSM_ATTR = "&copy; OpenStreetMap contributors"


# =========================
# View types
# =========================

@dataclass(frozen=True)
class MapMarker:
    position: Tuple[float, float]
    location: str
    hazard: str
    confidence: str

    @property
    def popup(self) -> str:
        return (
            f"<strong>Location:</strong> {escape(self.location)} <br>"
            f"<strong>Hazard:</strong> {escape(self.hazard)} <br>"
            f"<strong>Confidence:</strong> {escape(self.confidence)}"
        )

    def as_dict(self) -> dict:
        return {"position": list(self.position), "popup": self.popup}


@dataclass(frozen=True)
class AlertCard:
    location: str
    hazard: str
    time: str


@dataclass(frozen=True)
class DirectCard:
    af: str
    iif: str
    data_from: str


@dataclass(frozen=True)
class DashboardView:
    markers: Tuple[MapMarker, ...]
    alerts: Tuple[AlertCard, ...]
    direct: Tuple[DirectCard, ...]

    def as_dict(self) -> dict:
        return {
            "markers": [m.as_dict() for m in self.markers],
            "alerts": [asdict(c) for c in self.alerts],
            "direct": [asdict(c) for c in self.direct],
        }


# =========================
# Formatting
# =========================

def format_timestamp(ts: Optional[datetime]) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC") if ts else PLACEHOLDER

def format_confidence(conf: Optional[float]) -> str:
    return f"{conf:.2f}" if conf is not None else PLACEHOLDER

def _display(v: Any) -> str:
    return PLACEHOLDER if v is None else str(v)


# =========================
# Projection (pure)
# =========================

def project_markers(records: Iterable[DetectionRecord]) -> List[MapMarker]:
    # records without both coordinates stay off the map but still get a card
    return [
        MapMarker(
            position=(r.latitude, r.longitude),
            location=r.location or UNKNOWN_LOCATION,
            hazard=r.hazard_type or PLACEHOLDER,
            confidence=format_confidence(r.first_confidence),
        )
        for r in records
        if r.has_coordinates
    ]

def project_alert_cards(records: Iterable[DetectionRecord]) -> List[AlertCard]:
    return [
        AlertCard(
            location=r.location or UNKNOWN_LOCATION,
            hazard=r.hazard_type or PLACEHOLDER,
            time=format_timestamp(r.timestamp),
        )
        for r in records
    ]

def project_direct_cards(records: Iterable[DirectDetectionRecord]) -> List[DirectCard]:
    return [DirectCard(af=_display(r.af), iif=_display(r.iif), data_from=_display(r.data_from)) for r in records]

def build_view(detections: Iterable[DetectionRecord], direct: Iterable[DirectDetectionRecord]) -> DashboardView:
    detections = list(detections)
    return DashboardView(
        markers=tuple(project_markers(detections)),
        alerts=tuple(project_alert_cards(detections)),
        direct=tuple(project_direct_cards(direct)),
    )


# =========================
# HTML
# =========================

def build_map(view: DashboardView, center: Tuple[float, float] = (20.0, 0.0), zoom: int = 2) -> folium.Map:
    m = folium.Map(location=list(center), zoom_start=zoom, tiles=None)
    folium.TileLayer(tiles=OSM_TILES, attr=OSM_ATTR, name="OpenStreetMap").add_to(m)
    for marker in view.markers:
        folium.Marker(
            location=list(marker.position),
            popup=folium.Popup(marker.popup, max_width=300),
        ).add_to(m)
    return m

def render_map_html(view: DashboardView, center: Tuple[float, float] = (20.0, 0.0), zoom: int = 2) -> str:
    return build_map(view, center, zoom)._repr_html_()

def _alert_card_html(c: AlertCard) -> str:
    return (
        '<div class="card alert-card">'
        f"<p><strong>Location:</strong> {escape(c.location)}</p>"
        f"<p><strong>Hazard:</strong> {escape(c.hazard)}</p>"
        f"<p><strong>Time:</strong> {escape(c.time)}</p>"
        "</div>"
    )

def _direct_card_html(c: DirectCard) -> str:
    return (
        '<div class="card direct-data-card">'
        f"<p><strong>AF:</strong> {escape(c.af)}</p>"
        f"<p><strong>IIF:</strong> {escape(c.iif)}</p>"
        f"<p><strong>Data From:</strong> {escape(c.data_from)}</p>"
        "</div>"
    )

def render_page(view: DashboardView, center: Tuple[float, float] = (20.0, 0.0), zoom: int = 2) -> str:
    """Whole dashboard: map, alert cards, and the ESP32 section when it has data."""
    alerts = "".join(_alert_card_html(c) for c in view.alerts)
    direct = ""
    if view.direct:
        direct = (
            '<div class="direct-data">'
            '<h2 class="direct-data-title">ESP32 Threat Data</h2>'
            '<div class="direct-data-grid">'
            + "".join(_direct_card_html(c) for c in view.direct)
            + "</div></div>"
        )
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        "<title>Live Earthquake Tracker</title></head><body>"
        '<div class="container">'
        '<h1 class="title">Live Earthquake Tracker</h1>'
        '<div class="content">'
        f'<div class="map">{render_map_html(view, center, zoom)}</div>'
        '<div class="alerts"><h2 class="alerts-title">Alerts</h2>'
        f"{alerts}</div>"
        f"{direct}"
        "</div></div></body></html>"
    )
