"""Parsers for converting Overpass responses to RawSettlementRecord."""

from nearby_settlements.parsers.overpass_json import OverpassJSONParser
from nearby_settlements.parsers.overpass_xml import OverpassXMLParser

PARSER_MAP = {
    "json": OverpassJSONParser(),
    "xml": OverpassXMLParser(),
}

__all__ = ["PARSER_MAP", "OverpassJSONParser", "OverpassXMLParser"]
