"""Tests for the map/card projection and page rendering."""

from datetime import datetime, timedelta, timezone

from quake_tracker.models import DetectionRecord, DirectDetectionRecord
from quake_tracker.render import (
    build_map,
    build_view,
    format_confidence,
    format_timestamp,
    project_alert_cards,
    project_markers,
    render_page,
)


def _det(**kw):
    return DetectionRecord.model_validate(kw)


class TestProjection:
    def test_marker_requires_both_coordinates(self):
        records = [
            _det(location="A", latitude=1.0, longitude=2.0),
            _det(location="B", latitude=1.0),
            _det(location="C", longitude=2.0),
            _det(location="D", latitude="1", longitude=2.0),
        ]

        markers = project_markers(records)
        cards = project_alert_cards(records)

        assert [m.location for m in markers] == ["A"]
        assert [c.location for c in cards] == ["A", "B", "C", "D"]

    def test_placeholders(self):
        view = build_view([_det(latitude=0.0, longitude=0.0)], [DirectDetectionRecord()])

        card = view.alerts[0]
        assert (card.location, card.hazard, card.time) == ("Unknown", "N/A", "N/A")
        assert view.markers[0].confidence == "N/A"
        direct = view.direct[0]
        assert (direct.af, direct.iif, direct.data_from) == ("N/A", "N/A", "N/A")

    def test_popup_content(self):
        rec = _det(location="Tokyo", latitude=35.6, longitude=139.7, hazardType="quake",
                   predictions=[{"confidence": 0.876}])

        marker = project_markers([rec])[0]

        assert marker.position == (35.6, 139.7)
        assert "Tokyo" in marker.popup
        assert "quake" in marker.popup
        assert "0.88" in marker.popup

    def test_projection_does_not_mutate(self):
        records = (_det(location="A"),)
        build_view(records, ())
        assert records[0].location == "A"
        assert records[0].hazard_type is None

    def test_as_dict(self):
        view = build_view([_det(location="A", latitude=1.0, longitude=2.0)], [])
        out = view.as_dict()
        assert out["markers"][0]["position"] == [1.0, 2.0]
        assert out["alerts"] == [{"location": "A", "hazard": "N/A", "time": "N/A"}]
        assert out["direct"] == []


class TestFormatting:
    def test_timestamp_is_shown_in_utc(self):
        ts = datetime(2024, 3, 1, 19, 0, tzinfo=timezone(timedelta(hours=9)))
        assert format_timestamp(ts) == "2024-03-01 10:00:00 UTC"

    def test_confidence(self):
        assert format_confidence(0.0) == "0.00"
        assert format_confidence(None) == "N/A"


class TestPage:
    def test_page_sections(self):
        view = build_view([_det(location="Tokyo", latitude=35.6, longitude=139.7)],
                          [DirectDetectionRecord(af=1, iif=2, data_from="esp32-7")])

        html = render_page(view)

        assert "Live Earthquake Tracker" in html
        assert "Alerts" in html
        assert "Tokyo" in html
        assert "ESP32 Threat Data" in html
        assert "esp32-7" in html

    def test_direct_section_hidden_when_empty(self):
        html = render_page(build_view([], []))
        assert "ESP32 Threat Data" not in html

    def test_text_is_escaped(self):
        html = render_page(build_view([_det(location="<script>x</script>")], []))
        assert "<script>x</script>" not in html
        assert "&lt;script&gt;" in html

    def test_map_has_one_marker_per_located_record(self):
        view = build_view([_det(latitude=1.0, longitude=2.0), _det(location="nowhere")], [])
        m = build_map(view, center=(20.0, 0.0), zoom=2)
        markers = [c for c in m._children.values() if type(c).__name__ == "Marker"]
        assert len(markers) == 1
