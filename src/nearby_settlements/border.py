"""National border index backed by shapely prepared geometries.

The border is loaded once per run and never mutated. Each polygon part is
prepared individually and registered in an STRtree, so a predicate call only
touches the parts whose envelope overlaps the query geometry.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import httpx
from shapely.errors import ShapelyError
from shapely.geometry import Point, shape
from shapely.geometry.base import BaseGeometry
from shapely.prepared import prep
from shapely.strtree import STRtree

from nearby_settlements.geo import normalize_longitude
from nearby_settlements.models import GeoPoint

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30


class BorderLoadError(Exception):
    """Raised when the border geometry is missing, unreadable or empty."""


class BorderIndex:
    """Answers containment and intersection queries against a border."""

    def __init__(self, geometry: BaseGeometry | None):
        if geometry is None or geometry.is_empty:
            raise BorderLoadError("Border geometry is empty")

        if not geometry.is_valid:
            logger.warning("Border geometry is invalid, repairing with buffer(0)")
            geometry = geometry.buffer(0)
            if geometry.is_empty:
                raise BorderLoadError("Border geometry is empty after repair")

        self._geometry = geometry
        self._parts = [g for g in getattr(geometry, "geoms", [geometry]) if not g.is_empty]
        self._prepared = [prep(part) for part in self._parts]
        self._tree = STRtree(self._parts)

        logger.info(
            "Border index built | type=%s | parts=%d | bounds=[%.4f, %.4f, %.4f, %.4f]",
            geometry.geom_type, len(self._parts), *geometry.bounds,
        )

    @property
    def geometry(self) -> BaseGeometry:
        return self._geometry

    @property
    def part_count(self) -> int:
        return len(self._parts)

    def intersects(self, geometry: BaseGeometry) -> bool:
        """True if ``geometry`` touches or overlaps any border part."""
        for idx in self._tree.query(geometry):
            if self._prepared[idx].intersects(geometry):
                return True
        return False

    def contains(self, point: GeoPoint) -> bool:
        """True if ``point`` lies strictly inside a border part."""
        pt = Point(normalize_longitude(point.longitude), point.latitude)
        for idx in self._tree.query(pt):
            if self._prepared[idx].contains(pt):
                return True
        return False

    @classmethod
    def from_geojson(cls, data: dict) -> BorderIndex:
        """Build from a GeoJSON FeatureCollection, Feature or bare geometry.

        For a FeatureCollection only the first feature is used.
        """
        if not isinstance(data, dict):
            raise BorderLoadError("GeoJSON document is not an object")

        kind = data.get("type")
        if kind == "FeatureCollection":
            features = data.get("features") or []
            if not isinstance(features, list) or not features:
                raise BorderLoadError("FeatureCollection has no features")
            if not isinstance(features[0], dict):
                raise BorderLoadError("First feature is not a GeoJSON object")
            geometry_data = features[0].get("geometry")
        elif kind == "Feature":
            geometry_data = data.get("geometry")
        else:
            geometry_data = data

        if not geometry_data:
            raise BorderLoadError("Feature has no geometry")

        try:
            geometry = shape(geometry_data)
        except (KeyError, TypeError, ValueError, AttributeError, ShapelyError) as exc:
            raise BorderLoadError(f"Unreadable border geometry: {exc}") from exc

        return cls(geometry)


def load_border(source: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> BorderIndex:
    """Load a border from a local GeoJSON file or an http(s) URL.

    Raises:
        BorderLoadError: on any read, download or parse failure.
    """
    logger.info("Loading border from %s", source)

    if source.startswith(("http://", "https://")):
        try:
            resp = httpx.get(source, timeout=timeout, follow_redirects=True)
            resp.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            raise BorderLoadError(f"Failed to download border: {exc}") from exc
        text = resp.text
    else:
        try:
            text = Path(source).read_text(encoding="utf-8")
        except OSError as exc:
            raise BorderLoadError(f"Failed to read border file: {exc}") from exc

    if not text.strip():
        raise BorderLoadError("Border source returned an empty document")

    try:
        data = json.loads(text)
    except ValueError as exc:
        raise BorderLoadError(f"Border source is not valid JSON: {exc}") from exc

    return BorderIndex.from_geojson(data)
