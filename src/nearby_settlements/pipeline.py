"""Batch pipeline: filter → lookup → match → report.

Origins are processed strictly one after another. Each lookup is awaited
before the next one starts and the client's rate limiter spaces the calls;
a failed lookup leaves that origin with no matches and the run continues.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from nearby_settlements.border import BorderIndex, load_border
from nearby_settlements.clients.overpass_client import OverpassClient
from nearby_settlements.geo import normalize_longitude
from nearby_settlements.matcher import NameScript, SettlementMatcher
from nearby_settlements.models import CandidateRecord, MatchResult, RawSettlementRecord, ReportRow
from nearby_settlements.point_filter import (
    DEFAULT_BUFFER_DEG,
    DEFAULT_RETRY_POLICY,
    MeridianRetryPolicy,
    PointFilter,
)
from nearby_settlements.report import assemble
from nearby_settlements.sources import DEFAULT_SCRIPT, DEFAULT_SERVICE, get_lookup_config
from nearby_settlements import tables

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 100.0


class SettlementLookup(Protocol):
    async def find_settlements(self, lat: float, lon: float, radius_km: float) -> list[RawSettlementRecord]:
        ...


@dataclass
class PipelineSettings:
    """Tunables for one run."""

    radius_km: float = DEFAULT_RADIUS_KM
    buffer_deg: float = DEFAULT_BUFFER_DEG
    retry_policy: Optional[MeridianRetryPolicy] = DEFAULT_RETRY_POLICY
    script: str = DEFAULT_SCRIPT
    sort_by_distance: bool = False


@dataclass
class RunSummary:
    input_points: int = 0
    filtered_points: int = 0
    failed_lookups: int = 0
    results: list[MatchResult] = field(default_factory=list)
    rows: list[ReportRow] = field(default_factory=list)


async def find_nearby_for_all(
    origins: Sequence[CandidateRecord],
    lookup: SettlementLookup,
    matcher: SettlementMatcher,
    radius_km: float,
) -> tuple[list[MatchResult], int]:
    """Look up and match settlements for every origin, in order.

    Returns the results (one per origin, same order) and the number of
    origins whose lookup failed.
    """
    results: list[MatchResult] = []
    failed = 0

    for i, origin in enumerate(origins, start=1):
        logger.info("[%d/%d] Processing origin: %s", i, len(origins), origin.name)
        try:
            raw = await lookup.find_settlements(
                origin.latitude, normalize_longitude(origin.longitude), radius_km,
            )
        except Exception as exc:
            logger.error("Lookup failed for %s: %s", origin.name, exc)
            failed += 1
            results.append(MatchResult(origin=origin))
            continue

        results.append(MatchResult(origin=origin, matches=matcher.match(origin, raw)))

    return results, failed


async def run_pipeline(
    candidates: Sequence[CandidateRecord],
    border: BorderIndex,
    lookup: SettlementLookup,
    exclusions: Sequence[str] | set[str] = (),
    settings: Optional[PipelineSettings] = None,
) -> RunSummary:
    """Run the whole pipeline against an already loaded border."""
    settings = settings or PipelineSettings()

    point_filter = PointFilter(border, buffer_deg=settings.buffer_deg, retry_policy=settings.retry_policy)
    filtered = point_filter.filter(candidates)

    matcher = SettlementMatcher(
        border,
        script=NameScript.named(settings.script),
        exclusions=exclusions,
        sort_by_distance=settings.sort_by_distance,
    )
    results, failed = await find_nearby_for_all(filtered, lookup, matcher, settings.radius_km)

    return RunSummary(
        input_points=len(candidates),
        filtered_points=len(filtered),
        failed_lookups=failed,
        results=results,
        rows=assemble(results),
    )


def run(
    input_path: str,
    output_path: str,
    border_source: str,
    exclusions_path: Optional[str] = None,
    service: str = DEFAULT_SERVICE,
    settings: Optional[PipelineSettings] = None,
) -> RunSummary:
    """File-to-file entry point used by the CLI.

    The border is loaded first; ``BorderLoadError`` propagates and nothing
    is written.
    """
    border = load_border(border_source)

    candidates = tables.read_candidates(input_path)
    if exclusions_path:
        exclusions = tables.read_exclusions(exclusions_path, sheet=0)
    else:
        exclusions = tables.read_exclusions(input_path, sheet=1) if tables.is_excel(input_path) else set()

    async def _go() -> RunSummary:
        async with OverpassClient(get_lookup_config(service)) as client:
            return await run_pipeline(candidates, border, client, exclusions, settings)

    summary = asyncio.run(_go())
    tables.write_report(summary.rows, output_path)
    return summary
