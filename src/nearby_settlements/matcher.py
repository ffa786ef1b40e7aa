"""Turn raw lookup results into the settlements reported for an origin."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from nearby_settlements.border import BorderIndex
from nearby_settlements.geo import haversine_km
from nearby_settlements.models import (
    SETTLEMENT_KINDS,
    UNKNOWN_KIND,
    CandidateRecord,
    GeoPoint,
    RawSettlementRecord,
    Settlement,
)
from nearby_settlements.sources import DEFAULT_SCRIPT, NAME_SCRIPTS

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "Unknown"


class NameScript:
    """Accepts names made only of one script's letters, spaces and hyphens."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._regex = re.compile(pattern)

    @classmethod
    def named(cls, script: str) -> NameScript:
        try:
            return cls(NAME_SCRIPTS[script])
        except KeyError:
            raise KeyError(f"Unknown name script '{script}'") from None

    def is_valid(self, name: str) -> bool:
        return bool(self._regex.match(name))


def parse_population(raw: Optional[str]) -> int:
    """OSM population tag → int, 0 when missing, negative or unparseable."""
    if raw is None:
        return 0
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return 0
    return max(value, 0)


def resolve_kind(raw: Optional[str]) -> str:
    kind = (raw or "").strip().lower()
    return kind if kind in SETTLEMENT_KINDS else UNKNOWN_KIND


class SettlementMatcher:
    """Filters and ranks raw settlement records around one origin.

    The lookup service is trusted to have applied the search radius; the
    matcher re-checks border membership, name script, self-match and the
    exclusion set, then computes distances and drops duplicates.
    """

    def __init__(
        self,
        border: BorderIndex,
        script: Optional[NameScript] = None,
        exclusions: Iterable[str] = (),
        sort_by_distance: bool = False,
    ):
        self.border = border
        self.script = script or NameScript.named(DEFAULT_SCRIPT)
        self.exclusions = frozenset(exclusions)
        self.sort_by_distance = sort_by_distance

    def match(
        self,
        origin: CandidateRecord,
        raw_candidates: Iterable[RawSettlementRecord],
        exclusions: Optional[Iterable[str]] = None,
    ) -> list[Settlement]:
        """Return the settlements accepted for ``origin``.

        ``exclusions`` extends the matcher-wide exclusion set for this call.
        A record that fails to process is logged and skipped.
        """
        excluded = self.exclusions if exclusions is None else self.exclusions | set(exclusions)
        accepted: list[Settlement] = []
        seen_ids: set[int] = set()
        seen_keys: set[tuple[str, float, float]] = set()

        for raw in raw_candidates:
            try:
                settlement = self._process(origin, raw, excluded)
            except Exception as exc:
                logger.error("Error processing settlement record %r: %s", raw, exc)
                continue

            if settlement is None:
                continue

            key = (settlement.name, settlement.latitude, settlement.longitude)
            if (raw.osm_id is not None and raw.osm_id in seen_ids) or key in seen_keys:
                logger.debug("Duplicate settlement %s skipped", settlement.name)
                continue
            if raw.osm_id is not None:
                seen_ids.add(raw.osm_id)
            seen_keys.add(key)

            accepted.append(settlement)
            logger.info(
                "Found: %-20s | kind: %-10s | population: %-8d | distance: %.2f km",
                settlement.name, settlement.kind, settlement.population, settlement.distance_km,
            )

        if self.sort_by_distance:
            accepted.sort(key=lambda s: s.distance_km)

        logger.info("Settlements found around %s: %d", origin.name, len(accepted))
        return accepted

    def _process(
        self,
        origin: CandidateRecord,
        raw: RawSettlementRecord,
        excluded: frozenset[str] | set[str],
    ) -> Optional[Settlement]:
        location = GeoPoint(float(raw.latitude), float(raw.longitude))
        if not self.border.contains(location):
            logger.debug("Settlement %s at (%s, %s) outside border", raw.name, raw.latitude, raw.longitude)
            return None

        name = raw.name or UNKNOWN_NAME
        if not self.script.is_valid(name):
            logger.debug("Settlement name %r rejected by script check", name)
            return None

        if name in excluded:
            logger.info("Settlement %s excluded from results", name)
            return None

        if name == origin.name:
            logger.info("Settlement %s skipped, same as origin", name)
            return None

        return Settlement(
            name=name,
            kind=resolve_kind(raw.place),
            location=location,
            population=parse_population(raw.population),
            distance_km=haversine_km(origin.latitude, origin.longitude, location.latitude, location.longitude),
        )
