"""Spreadsheet and CSV input/output for grid points, exclusions and reports."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from nearby_settlements.models import REPORT_COLUMNS, CandidateRecord, ReportRow

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm")
REPORT_SHEET = "Results"


def is_excel(path: str | Path) -> bool:
    return Path(path).suffix.lower() in EXCEL_SUFFIXES


def _clean(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def parse_float(value) -> float:
    """Parse a coordinate cell; accepts decimal commas. Raises ValueError."""
    text = _clean(value).replace("\u00a0", "").replace(" ", "").replace(",", ".")
    if not text:
        raise ValueError("empty value")
    return float(text)


def parse_int(value) -> int:
    """Parse a population cell, 0 when empty or unreadable."""
    try:
        return int(parse_float(value))
    except (ValueError, OverflowError):
        return 0


def read_candidates(path: str | Path, sheet: int | str = 0) -> list[CandidateRecord]:
    """Read grid points: longitude, latitude, name, population.

    The first row is a header. Rows whose coordinates cannot be parsed are
    logged and skipped.
    """
    if is_excel(path):
        df = pd.read_excel(path, sheet_name=sheet, header=0, dtype=str)
    else:
        df = pd.read_csv(path, header=0, dtype=str)

    records: list[CandidateRecord] = []
    for offset, row in enumerate(df.itertuples(index=False, name=None)):
        line = offset + 2
        cells = list(row) + [None] * (4 - len(row))
        try:
            records.append(CandidateRecord(
                longitude=parse_float(cells[0]),
                latitude=parse_float(cells[1]),
                name=_clean(cells[2]),
                population=parse_int(cells[3]),
            ))
        except ValueError as exc:
            logger.warning("Skipping row %d of %s: %s", line, path, exc)

    logger.info("Read %d candidate point(s) from %s", len(records), path)
    return records


def read_exclusions(path: str | Path, sheet: Optional[int | str] = 1) -> set[str]:
    """Read names to exclude: one per row in the first column, no header.

    For workbooks the names come from ``sheet`` (the second sheet by
    default); a missing sheet yields an empty set. Text and CSV files are
    read line by line.
    """
    if is_excel(path):
        try:
            df = pd.read_excel(path, sheet_name=sheet, header=None, dtype=str)
        except (ValueError, IndexError, KeyError) as exc:
            logger.warning("No exclusion sheet %r in %s: %s", sheet, path, exc)
            return set()
        values: Iterable = df.iloc[:, 0] if not df.empty else []
    else:
        values = Path(path).read_text(encoding="utf-8").splitlines()

    names = {_clean(v) for v in values}
    names.discard("")
    logger.info("Read %d excluded name(s) from %s", len(names), path)
    return names


def rows_to_frame(rows: Iterable[ReportRow]) -> pd.DataFrame:
    return pd.DataFrame([row.to_dict() for row in rows], columns=REPORT_COLUMNS)


def write_report(rows: Iterable[ReportRow], path: str | Path) -> int:
    """Write report rows to ``.xlsx`` or ``.csv``; returns the row count."""
    df = rows_to_frame(rows)
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    if is_excel(path):
        df.to_excel(path, sheet_name=REPORT_SHEET, index=False)
    else:
        df.to_csv(path, index=False, encoding="utf-8")
    logger.info("Wrote %d row(s) to %s", len(df), path)
    return len(df)


def write_candidates(records: Iterable[CandidateRecord], path: str | Path) -> int:
    """Write grid points back out in the input column layout."""
    df = pd.DataFrame(
        [(r.longitude, r.latitude, r.name, r.population) for r in records],
        columns=["longitude", "latitude", "name", "population"],
    )
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    if is_excel(path):
        df.to_excel(path, index=False)
    else:
        df.to_csv(path, index=False, encoding="utf-8")
    return len(df)
