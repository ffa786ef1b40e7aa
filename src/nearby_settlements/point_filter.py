"""Keep only the grid points that fall inside the national border."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from shapely.geometry import Point

from nearby_settlements.border import BorderIndex
from nearby_settlements.geo import normalize_longitude
from nearby_settlements.models import CandidateRecord, GeoPoint

logger = logging.getLogger(__name__)

# Roughly 10 m; absorbs coordinate precision mismatches with the border rings.
DEFAULT_BUFFER_DEG = 0.0001


@dataclass(frozen=True)
class MeridianRetryPolicy:
    """Retry a failed membership test with the point nudged east and west.

    Some border datasets split their rings at ±180° and leave a thin seam
    between the halves. Points within ``threshold_deg`` of the antimeridian
    get two more attempts, shifted by ``+shift_deg`` and ``-shift_deg``.
    """

    threshold_deg: float = 170.0
    shift_deg: float = 0.0001

    def applies(self, longitude: float) -> bool:
        return abs(longitude) > self.threshold_deg

    def shifted(self, longitude: float) -> tuple[float, float]:
        # Left un-normalized: the seam sits right at ±180.
        return longitude + self.shift_deg, longitude - self.shift_deg


DEFAULT_RETRY_POLICY = MeridianRetryPolicy()


class PointFilter:
    """Decides border membership for raw candidate points."""

    def __init__(
        self,
        border: BorderIndex,
        buffer_deg: float = DEFAULT_BUFFER_DEG,
        retry_policy: Optional[MeridianRetryPolicy] = DEFAULT_RETRY_POLICY,
    ):
        self.border = border
        self.buffer_deg = buffer_deg
        self.retry_policy = retry_policy

    def _buffer_intersects(self, latitude: float, longitude: float) -> bool:
        return self.border.intersects(Point(longitude, latitude).buffer(self.buffer_deg))

    def is_inside(self, point: GeoPoint) -> bool:
        """Buffered intersection test with the antimeridian retry."""
        longitude = normalize_longitude(point.longitude)

        if self._buffer_intersects(point.latitude, longitude):
            return True

        policy = self.retry_policy
        if policy is None or not policy.applies(longitude):
            return False

        for shifted in policy.shifted(longitude):
            if self._buffer_intersects(point.latitude, shifted):
                logger.debug(
                    "Point (%s, %s) accepted after meridian shift to %s",
                    point.latitude, point.longitude, shifted,
                )
                return True
        return False

    def filter(self, records: Iterable[CandidateRecord]) -> list[CandidateRecord]:
        """Return the records inside the border, in input order.

        A record whose geometry test raises is logged and dropped.
        """
        kept: list[CandidateRecord] = []
        total = 0

        for record in records:
            total += 1
            try:
                inside = self.is_inside(record.point)
            except Exception as exc:
                logger.error("Error while filtering point %s: %s", record.name, exc)
                continue

            if inside:
                kept.append(record)
                logger.debug("Point %s (%s, %s) kept", record.name, record.longitude, record.latitude)
            else:
                logger.debug("Point %s (%s, %s) outside border", record.name, record.longitude, record.latitude)

        logger.info("Border filter kept %d of %d point(s)", len(kept), total)
        return kept
