"""Parser for Overpass API XML (OSM) responses."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET

from nearby_settlements.models import RawSettlementRecord
from nearby_settlements.parsers.base import ParseError, SettlementParser

logger = logging.getLogger(__name__)


class OverpassXMLParser(SettlementParser):
    """Parse an ``<osm>`` document → list of RawSettlementRecord.

    Tagless skeleton nodes are kept; the matcher drops them by name.
    """

    def parse(self, raw_payload: str) -> list[RawSettlementRecord]:
        try:
            root = ET.fromstring(raw_payload.encode("utf-8"))
        except ET.ParseError as exc:
            raise ParseError(f"Overpass response is not valid XML: {exc}") from exc

        remark = root.find("remark")
        if remark is not None and remark.text:
            logger.warning("Overpass remark: %s", remark.text.strip())

        records: list[RawSettlementRecord] = []
        for node in root.iter("node"):
            try:
                record = self._parse_node(node)
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping node %s: %s", node.get("id"), exc)
                continue
            errors = self.validate(record)
            if errors:
                logger.debug("Skipping node %s: %s", node.get("id"), "; ".join(errors))
                continue
            records.append(record)

        return records

    @staticmethod
    def _parse_node(node: ET.Element) -> RawSettlementRecord:
        tags = {tag.get("k"): tag.get("v") for tag in node.findall("tag")}
        osm_id = node.get("id")
        return RawSettlementRecord(
            latitude=float(node.attrib["lat"]),
            longitude=float(node.attrib["lon"]),
            name=tags.get("name"),
            place=tags.get("place"),
            population=tags.get("population"),
            osm_id=int(osm_id) if osm_id else None,
        )
