"""Abstract base parser with validation logic."""

from __future__ import annotations

import abc

from nearby_settlements.models import RawSettlementRecord


class ParseError(Exception):
    """Raised when a lookup response cannot be read at all."""


class SettlementParser(abc.ABC):
    """Abstract parser that converts a lookup response → list of RawSettlementRecord."""

    @abc.abstractmethod
    def parse(self, raw_payload: str) -> list[RawSettlementRecord]:
        """Parse a raw Overpass response body.

        Malformed individual elements are skipped; a payload that cannot be
        decoded at all raises ``ParseError``.
        """

    @staticmethod
    def validate(record: RawSettlementRecord) -> list[str]:
        """Validate a RawSettlementRecord. Returns list of error messages (empty = valid)."""
        errors: list[str] = []

        if not -90 <= record.latitude <= 90:
            errors.append(f"latitude {record.latitude} out of range [-90, 90]")

        # Overpass never returns unwrapped longitudes
        if not -180 <= record.longitude <= 180:
            errors.append(f"longitude {record.longitude} out of range [-180, 180]")

        if record.name is not None and not record.name.strip():
            errors.append("name is blank")

        return errors
