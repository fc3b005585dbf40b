"""Codec between stored coordinate representations and ``GeoPoint``.

Property rows carry coordinates as free text. Three encodings are in use:

- WKT ``POINT(lng lat)`` (optionally EWKT with ``SRID=4326;``), written by
  the sync jobs and understood by PostGIS
- JSON objects ``{"lat": .., "lng": ..}`` from older imports
- ``"lat,lng"`` pairs produced by the GeoJSON export

``encode`` always writes WKT.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from estate_geo.core.exceptions import DecodeError
from estate_geo.domain.value_objects import LAT_MAX, LAT_MIN, LNG_MAX, LNG_MIN, GeoPoint

WGS84_SRID = 4326

_NUM = r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?"
_WKT_POINT = re.compile(
    rf"^\s*(?:SRID=(?P<srid>\d+)\s*;\s*)?POINT\s*\(\s*(?P<lng>{_NUM})\s+(?P<lat>{_NUM})\s*\)\s*$",
    re.IGNORECASE,
)
_LAT_LNG_PAIR = re.compile(rf"^\s*(?P<lat>{_NUM})\s*,\s*(?P<lng>{_NUM})\s*$")


def _number(value: Any, raw: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise DecodeError(DecodeError.MALFORMED, raw)
    number = float(value)
    if not math.isfinite(number):
        raise DecodeError(DecodeError.MALFORMED, raw)
    return number


def _point(lat: float, lng: float, raw: Any) -> GeoPoint:
    if not (LAT_MIN <= lat <= LAT_MAX and LNG_MIN <= lng <= LNG_MAX):
        raise DecodeError(DecodeError.OUT_OF_RANGE, raw)
    return GeoPoint(lat=lat, lng=lng)


def _from_mapping(obj: Mapping[str, Any], raw: Any) -> GeoPoint:
    if "lat" not in obj or "lng" not in obj:
        raise DecodeError(DecodeError.MALFORMED, raw)
    return _point(_number(obj["lat"], raw), _number(obj["lng"], raw), raw)


def _from_match(match: re.Match[str], raw: Any) -> GeoPoint:
    lat = _number(float(match.group("lat")), raw)
    lng = _number(float(match.group("lng")), raw)
    return _point(lat, lng, raw)


def _from_text(text: str, raw: Any) -> GeoPoint:
    match = _WKT_POINT.match(text)
    if match:
        srid = match.group("srid")
        if srid is not None and int(srid) != WGS84_SRID:
            raise DecodeError(DecodeError.MALFORMED, raw)
        return _from_match(match, raw)

    stripped = text.strip()
    if stripped.startswith("{"):
        try:
            obj = json.loads(stripped)
        except ValueError as exc:
            raise DecodeError(DecodeError.MALFORMED, raw) from exc
        if not isinstance(obj, dict):
            raise DecodeError(DecodeError.MALFORMED, raw)
        return _from_mapping(obj, raw)

    match = _LAT_LNG_PAIR.match(text)
    if match:
        return _from_match(match, raw)

    raise DecodeError(DecodeError.MALFORMED, raw)


def decode(raw: Any) -> GeoPoint:
    """Parse ``raw`` into a ``GeoPoint`` or raise ``DecodeError``."""

    if isinstance(raw, GeoPoint):
        return raw
    if isinstance(raw, str):
        return _from_text(raw, raw)
    if isinstance(raw, Mapping):
        return _from_mapping(raw, raw)
    raise DecodeError(DecodeError.MALFORMED, raw)


def try_decode(raw: Any) -> GeoPoint | None:
    try:
        return decode(raw)
    except DecodeError:
        return None


def encode(point: GeoPoint) -> str:
    # repr() is the shortest string that round-trips a float exactly.
    return f"POINT({point.lng!r} {point.lat!r})"


__all__ = ["WGS84_SRID", "decode", "try_decode", "encode"]
