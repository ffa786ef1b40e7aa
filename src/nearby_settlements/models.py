"""Data models for border filtering and settlement matching."""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from typing import Optional

from nearby_settlements.geo import normalize_longitude

SETTLEMENT_KINDS = ("city", "town", "village")
UNKNOWN_KIND = "unknown"


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate. Longitude may be raw until ``normalized()``."""

    latitude: float             # [-90, 90]
    longitude: float

    def normalized(self) -> GeoPoint:
        return GeoPoint(self.latitude, normalize_longitude(self.longitude))


@dataclass
class CandidateRecord:
    """One row of the input grid."""

    longitude: float
    latitude: float
    name: str
    population: int = 0

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)


@dataclass
class RawSettlementRecord:
    """A populated place as returned by the lookup service, tags unparsed."""

    latitude: float
    longitude: float
    name: Optional[str] = None
    place: Optional[str] = None         # OSM "place" tag
    population: Optional[str] = None    # OSM "population" tag, free text
    osm_id: Optional[int] = None


@dataclass
class Settlement:
    """A settlement accepted for an origin point."""

    name: str
    kind: str                   # "city", "town", "village" or "unknown"
    location: GeoPoint
    population: int = 0
    distance_km: float = 0.0

    @property
    def latitude(self) -> float:
        return self.location.latitude

    @property
    def longitude(self) -> float:
        return self.location.longitude


@dataclass
class MatchResult:
    """Origin point together with the settlements found around it."""

    origin: CandidateRecord
    matches: list[Settlement] = field(default_factory=list)


@dataclass
class ReportRow:
    """One flattened origin → settlement pair."""

    origin_longitude: float
    origin_latitude: float
    origin_name: str
    origin_population: int
    match_name: str
    match_longitude: float
    match_latitude: float
    match_kind: str
    match_population: int
    distance_km: float          # rounded to 2 decimals

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


REPORT_COLUMNS = [
    "origin_longitude",
    "origin_latitude",
    "origin_name",
    "origin_population",
    "match_name",
    "match_longitude",
    "match_latitude",
    "match_kind",
    "match_population",
    "distance_km",
]
