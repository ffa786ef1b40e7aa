"""Flatten match results into report rows."""

from __future__ import annotations

from typing import Iterable, Sequence

from nearby_settlements.models import CandidateRecord, MatchResult, ReportRow, Settlement

DISTANCE_DECIMALS = 2


def _row(origin: CandidateRecord, settlement: Settlement) -> ReportRow:
    return ReportRow(
        origin_longitude=origin.longitude,
        origin_latitude=origin.latitude,
        origin_name=origin.name,
        origin_population=origin.population,
        match_name=settlement.name,
        match_longitude=settlement.longitude,
        match_latitude=settlement.latitude,
        match_kind=settlement.kind,
        match_population=settlement.population,
        distance_km=round(settlement.distance_km, DISTANCE_DECIMALS),
    )


def assemble(results: Iterable[MatchResult]) -> list[ReportRow]:
    """One row per (origin, settlement); origins without matches add none."""
    return [_row(result.origin, s) for result in results for s in result.matches]


def assemble_pairs(
    origins: Sequence[CandidateRecord],
    match_sets: Sequence[Sequence[Settlement]],
) -> list[ReportRow]:
    """Same as ``assemble`` for parallel origin / match-list sequences."""
    if len(origins) != len(match_sets):
        raise ValueError(
            f"origins and match_sets differ in length ({len(origins)} != {len(match_sets)})"
        )
    return assemble(
        MatchResult(origin=origin, matches=list(matches))
        for origin, matches in zip(origins, match_sets)
    )
