"""Tests for Overpass parsers, query building, the client and rate limiting."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import replace
from urllib.parse import parse_qs

import httpx
import pytest

from nearby_settlements.clients import overpass_client
from nearby_settlements.clients.overpass_client import OverpassClient, OverpassError, RateLimiter, build_query
from nearby_settlements.models import RawSettlementRecord
from nearby_settlements.parsers import PARSER_MAP, OverpassJSONParser, OverpassXMLParser
from nearby_settlements.parsers.base import ParseError, SettlementParser
from nearby_settlements.sources import LOOKUP_SERVICES, get_lookup_config


SAMPLE_JSON = json.dumps({
    "version": 0.6,
    "generator": "Overpass API",
    "elements": [
        {"type": "node", "id": 101, "lat": 55.5, "lon": 37.5,
         "tags": {"name": "Клин", "place": "town", "population": "78000"}},
        {"type": "node", "id": 102, "lat": 55.6, "lon": 37.7,
         "tags": {"name": "Дмитров", "place": "town"}},
        {"type": "way", "id": 5, "nodes": [1, 2, 3]},
        {"type": "node", "id": 103, "lon": 37.9, "tags": {"name": "Без широты"}},
        {"type": "node", "id": 104, "lat": 55.0, "lon": 237.0, "tags": {"name": "Вне диапазона"}},
    ],
}, ensure_ascii=False)

SAMPLE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<osm version="0.6" generator="Overpass API">
  <node id="101" lat="55.5" lon="37.5">
    <tag k="name" v="Клин"/>
    <tag k="place" v="town"/>
    <tag k="population" v="78000"/>
  </node>
  <node id="102" lat="55.6" lon="37.7"/>
  <node id="103" lat="bad" lon="37.7"/>
</osm>"""


# ── Parser tests ─────────────────────────────────────────────────────────


class TestOverpassJSONParser:
    def test_parse(self):
        records = OverpassJSONParser().parse(SAMPLE_JSON)
        assert [r.osm_id for r in records] == [101, 102]
        first = records[0]
        assert first.name == "Клин"
        assert first.place == "town"
        assert first.population == "78000"
        assert (first.latitude, first.longitude) == (55.5, 37.5)
        assert records[1].population is None

    def test_empty_elements(self):
        assert OverpassJSONParser().parse('{"elements": []}') == []

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            OverpassJSONParser().parse("<html>Too Many Requests</html>")

    def test_not_an_object(self):
        with pytest.raises(ParseError):
            OverpassJSONParser().parse("[]")

    def test_garbage_element_skipped(self):
        payload = json.dumps({"elements": [
            "garbage",
            {"type": "node", "id": 7, "lat": 56.33, "lon": 36.73, "tags": ["not", "a", "dict"]},
            {"type": "node", "id": 101, "lat": 56.33, "lon": 36.73, "tags": {"name": "Клин", "place": "town"}},
        ]}, ensure_ascii=False)
        assert [r.name for r in OverpassJSONParser().parse(payload)] == ["Клин"]

    def test_elements_not_a_list(self):
        with pytest.raises(ParseError, match="not a list"):
            OverpassJSONParser().parse('{"elements": {"type": "node"}}')

    def test_malformed_node_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="nearby_settlements.parsers.overpass_json")
        OverpassJSONParser().parse(SAMPLE_JSON)
        assert "Skipping node 103" in caplog.text


class TestOverpassXMLParser:
    def test_parse(self):
        records = OverpassXMLParser().parse(SAMPLE_XML)
        assert [r.osm_id for r in records] == [101, 102]
        assert records[0].name == "Клин"
        assert records[0].population == "78000"
        assert records[1].name is None

    def test_malformed_node_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger="nearby_settlements.parsers.overpass_xml")
        OverpassXMLParser().parse(SAMPLE_XML)
        assert "Skipping node 103" in caplog.text

    def test_invalid_xml(self):
        with pytest.raises(ParseError):
            OverpassXMLParser().parse("<osm><node>")


class TestValidation:
    def test_valid(self):
        assert SettlementParser.validate(RawSettlementRecord(latitude=55, longitude=37, name="Клин")) == []

    def test_out_of_range(self):
        errors = SettlementParser.validate(RawSettlementRecord(latitude=95, longitude=200))
        assert any("latitude" in e for e in errors)
        assert any("longitude" in e for e in errors)

    def test_blank_name(self):
        errors = SettlementParser.validate(RawSettlementRecord(latitude=0, longitude=0, name="  "))
        assert any("name" in e for e in errors)

    def test_parser_map(self):
        assert isinstance(PARSER_MAP["json"], OverpassJSONParser)
        assert isinstance(PARSER_MAP["xml"], OverpassXMLParser)


# ── Query building ───────────────────────────────────────────────────────


class TestBuildQuery:
    def test_json_query(self):
        query = build_query(55.0, 37.0, 100)
        assert query.startswith("[out:json]")
        assert "node(around:100000,55.0,37.0)" in query
        assert '"place"~"^(city|town|village)$"' in query

    def test_xml_query(self):
        query = build_query(55.0, 37.0, 2.5, fmt="xml")
        assert '<around lat="55.0" lon="37.0" radius="2500"/>' in query
        assert 'regv="^(city|town|village)$"' in query


# ── Config ───────────────────────────────────────────────────────────────


class TestLookupConfig:
    def test_default(self, monkeypatch):
        monkeypatch.delenv("OVERPASS_URL", raising=False)
        monkeypatch.delenv("OVERPASS_USER_AGENT", raising=False)
        assert get_lookup_config() is LOOKUP_SERVICES["overpass"]

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("OVERPASS_URL", "http://localhost:12345/api/interpreter")
        monkeypatch.setenv("OVERPASS_USER_AGENT", "tests/1.0")
        config = get_lookup_config("kumi")
        assert config.base_url == "http://localhost:12345/api/interpreter"
        assert config.user_agent == "tests/1.0"
        # Registry entry untouched
        assert LOOKUP_SERVICES["kumi"].base_url.startswith("https://overpass.kumi")

    def test_unknown(self):
        with pytest.raises(KeyError):
            get_lookup_config("nope")


# ── Rate limiter ─────────────────────────────────────────────────────────


@pytest.fixture
def sleeps(monkeypatch):
    recorded: list[float] = []

    async def fake_sleep(delay, result=None):
        recorded.append(delay)
        return result

    monkeypatch.setattr(overpass_client.asyncio, "sleep", fake_sleep)
    return recorded


class TestRateLimiter:
    def test_first_call_not_delayed(self, sleeps):
        asyncio.run(RateLimiter(1, 1.0).acquire())
        assert sleeps == []

    def test_spacing(self, sleeps):
        limiter = RateLimiter(max_calls=2, period=1.0)

        async def go():
            await limiter.acquire()
            await limiter.acquire()

        asyncio.run(go())
        assert len(sleeps) == 1
        assert 0.4 < sleeps[0] <= 0.5


# ── Client ───────────────────────────────────────────────────────────────


def _config(**overrides):
    base = replace(LOOKUP_SERVICES["overpass"], base_url="https://overpass.test/api/interpreter", max_retries=2)
    return replace(base, **overrides)


def _client(handler, **overrides):
    return OverpassClient(
        _config(**overrides),
        rate_limiter=RateLimiter(1000, 1.0),
        transport=httpx.MockTransport(handler),
    )


class TestOverpassClient:
    def test_find_settlements(self, sleeps):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=SAMPLE_JSON)

        async def go():
            async with _client(handler) as client:
                return await client.find_settlements(55.0, 37.0, 100)

        records = asyncio.run(go())
        assert [r.name for r in records] == ["Клин", "Дмитров"]

        [request] = seen
        assert request.method == "POST"
        assert request.headers["User-Agent"].startswith("nearby-settlements")
        query = parse_qs(request.content.decode())["data"][0]
        assert "node(around:100000,55.0,37.0)" in query

    def test_xml_format(self, sleeps):
        def handler(request):
            assert "<osm-script" in parse_qs(request.content.decode())["data"][0]
            return httpx.Response(200, text=SAMPLE_XML)

        async def go():
            async with _client(handler, format="xml") as client:
                return await client.find_settlements(55.0, 37.0, 10)

        assert [r.osm_id for r in asyncio.run(go())] == [101, 102]

    def test_retry_then_success(self, sleeps):
        responses = [httpx.Response(429), httpx.Response(504), httpx.Response(200, text=SAMPLE_JSON)]

        def handler(request):
            return responses.pop(0)

        async def go():
            async with _client(handler) as client:
                return await client.find_settlements(55.0, 37.0, 100)

        assert len(asyncio.run(go())) == 2
        assert responses == []
        # Exponential backoff: 2**0, 2**1
        assert [s for s in sleeps if s >= 1] == [1.0, 2.0]

    def test_all_attempts_fail(self, sleeps):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("no route", request=request)

        async def go():
            async with _client(handler) as client:
                await client.find_settlements(55.0, 37.0, 100)

        with pytest.raises(OverpassError, match="all 3 attempts failed"):
            asyncio.run(go())
        assert len(calls) == 3

    def test_unreadable_body(self, sleeps):
        def handler(request):
            return httpx.Response(200, text="<html>rate limited</html>")

        async def go():
            async with _client(handler) as client:
                await client.find_settlements(55.0, 37.0, 100)

        with pytest.raises(OverpassError):
            asyncio.run(go())
