"""Parser for Overpass API ``[out:json]`` responses."""

from __future__ import annotations

import json
import logging

from nearby_settlements.models import RawSettlementRecord
from nearby_settlements.parsers.base import ParseError, SettlementParser

logger = logging.getLogger(__name__)


class OverpassJSONParser(SettlementParser):
    """Parse Overpass JSON → list of RawSettlementRecord (nodes only)."""

    def parse(self, raw_payload: str) -> list[RawSettlementRecord]:
        try:
            data = json.loads(raw_payload)
        except ValueError as exc:
            raise ParseError(f"Overpass response is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ParseError("Overpass response is not a JSON object")

        # Overpass reports query timeouts and memory errors here
        if data.get("remark"):
            logger.warning("Overpass remark: %s", data["remark"])

        elements = data.get("elements", [])
        if not isinstance(elements, list):
            raise ParseError("Overpass response 'elements' is not a list")

        records: list[RawSettlementRecord] = []
        for element in elements:
            if not isinstance(element, dict):
                logger.debug("Skipping element %r: not an object", element)
                continue
            if element.get("type") != "node":
                continue
            try:
                record = self._parse_element(element)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.debug("Skipping node %s: %s", element.get("id"), exc)
                continue
            errors = self.validate(record)
            if errors:
                logger.debug("Skipping node %s: %s", element.get("id"), "; ".join(errors))
                continue
            records.append(record)

        return records

    @staticmethod
    def _parse_element(element: dict) -> RawSettlementRecord:
        tags = element.get("tags") or {}
        return RawSettlementRecord(
            latitude=float(element["lat"]),
            longitude=float(element["lon"]),
            name=tags.get("name"),
            place=tags.get("place"),
            population=tags.get("population"),
            osm_id=element.get("id"),
        )
