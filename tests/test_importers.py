import polyline
import pytest

from territory_conquest.errors import InvalidDuration, InvalidPath
from territory_conquest.importers import (
    load_activity_file,
    parse_gpx,
    parse_polyline,
    parse_tcx,
)

from conftest import GPX_START as START, gpx_document, iso, make_square


def tcx_document(points):
    rows = ["<Trackpoint><Time>" + iso(0) + "</Time></Trackpoint>"]
    for idx, point in enumerate(points):
        rows.append(
            "<Trackpoint>"
            f"<Time>{iso(idx * 30)}</Time>"
            "<Position>"
            f"<LatitudeDegrees>{point.lat}</LatitudeDegrees>"
            f"<LongitudeDegrees>{point.lng}</LongitudeDegrees>"
            "</Position></Trackpoint>"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<TrainingCenterDatabase xmlns="http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2">'
        "<Activities><Activity Sport=\"Running\"><Lap><Track>"
        + "".join(rows)
        + "</Track></Lap></Activity></Activities></TrainingCenterDatabase>"
    )


def test_parse_gpx_reads_points_and_duration():
    points = make_square(110.0)
    request = parse_gpx(gpx_document(points))
    assert request.source == "import"
    assert len(request.path) == 5
    assert request.path[1].lat == pytest.approx(points[1].lat)
    assert request.path[1].lng == pytest.approx(points[1].lng)
    assert request.path[0].timestamp == START * 1000
    assert request.duration_seconds == 120.0


def test_parse_gpx_without_times_has_no_duration():
    with pytest.raises(InvalidDuration):
        parse_gpx(gpx_document(make_square(110.0), with_time=False))


def test_parse_gpx_rejects_garbage():
    with pytest.raises(InvalidPath):
        parse_gpx("<gpx><trk>")
    with pytest.raises(InvalidPath):
        parse_gpx('<gpx xmlns="http://www.topografix.com/GPX/1/1"></gpx>')


def test_parse_gpx_rejects_entity_expansion():
    bomb = (
        '<?xml version="1.0"?><!DOCTYPE gpx [<!ENTITY a "aaaa">]>'
        "<gpx><trk><trkseg><trkpt lat=\"1\" lon=\"1\">&a;</trkpt></trkseg></trk></gpx>"
    )
    with pytest.raises(InvalidPath):
        parse_gpx(bomb)


def test_parse_tcx_skips_points_without_position():
    request = parse_tcx(tcx_document(make_square(110.0)))
    assert len(request.path) == 5
    assert request.duration_seconds == 120.0


def test_parse_polyline_round_trip():
    points = make_square(110.0)
    encoded = polyline.encode([(p.lat, p.lng) for p in points])
    request = parse_polyline(encoded, 600)
    assert len(request.path) == 5
    assert request.duration_seconds == 600.0
    assert request.path[2].lat == pytest.approx(points[2].lat, abs=1e-5)


def test_parse_polyline_rejects_empty():
    with pytest.raises(InvalidPath):
        parse_polyline("", 600)


def test_load_activity_file_dispatches_on_suffix(tmp_path):
    gpx_file = tmp_path / "morning.GPX"
    gpx_file.write_text(gpx_document(make_square(110.0)), encoding="utf-8")
    assert len(load_activity_file(gpx_file).path) == 5

    tcx_file = tmp_path / "evening.tcx"
    tcx_file.write_text(tcx_document(make_square(110.0)), encoding="utf-8")
    assert len(load_activity_file(tcx_file).path) == 5

    fit_file = tmp_path / "ride.fit"
    fit_file.write_bytes(b"\x0e\x10")
    with pytest.raises(InvalidPath):
        load_activity_file(fit_file)
