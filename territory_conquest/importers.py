"""Build import claims from GPS files recorded outside the live tracker."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from defusedxml import ElementTree as ET
from defusedxml.common import DefusedXmlException
from polyline import decode as polyline_decode

from .errors import InvalidDuration, InvalidPath
from .models import ClaimRequest, Coordinate
from .utils import parse_iso8601

LOGGER = logging.getLogger(__name__)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _iter_named(root, name: str) -> Iterable:
    for element in root.iter():
        if _local_name(element.tag) == name:
            yield element


def _child_text(element, name: str) -> Optional[str]:
    for child in element:
        if _local_name(child.tag) == name:
            return (child.text or "").strip() or None
    return None


def _parse_document(content: str | bytes):
    try:
        return ET.fromstring(content)
    except (ET.ParseError, DefusedXmlException) as exc:
        raise InvalidPath("Unreadable GPS file") from exc


def _build_point(lat: str | None, lng: str | None, time_text: str | None) -> Coordinate:
    if lat is None or lng is None:
        raise InvalidPath("Track point without coordinates")
    when = parse_iso8601(time_text) if time_text else None
    try:
        return Coordinate(
            lat=float(lat),
            lng=float(lng),
            timestamp=int(when.timestamp() * 1000) if when else None,
        )
    except ValueError as exc:
        raise InvalidPath(f"Invalid track point: {exc}") from exc


def _duration_from_timestamps(points: List[Coordinate]) -> float:
    stamps = [pt.timestamp for pt in points if pt.timestamp is not None]
    if len(stamps) < 2:
        raise InvalidDuration("The file has no usable timestamps")
    return (max(stamps) - min(stamps)) / 1000.0


def parse_gpx(content: str | bytes) -> ClaimRequest:
    """Parse GPX 1.0/1.1 track points (``trkpt``) into an import claim."""

    root = _parse_document(content)
    points = [
        _build_point(pt.get("lat"), pt.get("lon"), _child_text(pt, "time"))
        for pt in _iter_named(root, "trkpt")
    ]
    if not points:
        raise InvalidPath("The GPX file contains no track points")
    return ClaimRequest(
        path=points, duration_seconds=_duration_from_timestamps(points), source="import"
    )


def parse_tcx(content: str | bytes) -> ClaimRequest:
    """Parse TCX ``Trackpoint`` elements that carry a position."""

    root = _parse_document(content)
    points: List[Coordinate] = []
    for trackpoint in _iter_named(root, "Trackpoint"):
        position = next(
            (child for child in trackpoint if _local_name(child.tag) == "Position"), None
        )
        if position is None:
            continue
        points.append(
            _build_point(
                _child_text(position, "LatitudeDegrees"),
                _child_text(position, "LongitudeDegrees"),
                _child_text(trackpoint, "Time"),
            )
        )
    if not points:
        raise InvalidPath("The TCX file contains no positioned track points")
    return ClaimRequest(
        path=points, duration_seconds=_duration_from_timestamps(points), source="import"
    )


def parse_polyline(encoded: str, duration_seconds: float) -> ClaimRequest:
    """Decode a Google encoded polyline (as exported by Strava) into a claim."""

    if not encoded:
        raise InvalidPath("Empty polyline")
    try:
        decoded = polyline_decode(encoded)
    except (ValueError, TypeError, IndexError) as exc:
        raise InvalidPath("Unable to decode polyline") from exc
    return ClaimRequest(
        path=[Coordinate(lat=float(lat), lng=float(lng)) for lat, lng in decoded],
        duration_seconds=float(duration_seconds),
        source="import",
    )


def load_activity_file(path: str | Path) -> ClaimRequest:
    """Dispatch on file extension (``.gpx`` or ``.tcx``)."""

    file_path = Path(path)
    suffix = file_path.suffix.lower()
    content = file_path.read_bytes()
    if suffix == ".gpx":
        request = parse_gpx(content)
    elif suffix == ".tcx":
        request = parse_tcx(content)
    else:
        raise InvalidPath(f"Unsupported file type: {suffix or 'none'}; use GPX or TCX")
    LOGGER.info(
        "Parsed %d points over %.0fs from %s",
        len(request.path),
        request.duration_seconds,
        file_path.name,
    )
    return request
