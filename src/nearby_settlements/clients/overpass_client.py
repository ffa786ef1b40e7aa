"""Async Overpass API client for populated-place lookups."""

from __future__ import annotations

import asyncio
import logging
import time

import httpx

from nearby_settlements.models import SETTLEMENT_KINDS, RawSettlementRecord
from nearby_settlements.parsers import PARSER_MAP
from nearby_settlements.parsers.base import ParseError
from nearby_settlements.sources import LookupConfig

logger = logging.getLogger(__name__)

_PLACE_REGEX = "|".join(SETTLEMENT_KINDS)

_JSON_QUERY = """[out:json][timeout:{timeout}];
node(around:{radius_m},{lat},{lon})["place"~"^({places})$"];
out body;"""

_XML_QUERY = """<osm-script timeout="{timeout}">
  <query type="node">
    <around lat="{lat}" lon="{lon}" radius="{radius_m}"/>
    <has-kv k="place" regv="^({places})$"/>
  </query>
  <print mode="body"/>
</osm-script>"""


class OverpassError(Exception):
    """Raised when a lookup cannot be completed or its response read."""


class RateLimiter:
    """Spaces calls so that at most ``max_calls`` start per ``period`` seconds."""

    def __init__(self, max_calls: int = 1, period: float = 1.0):
        self.min_interval = period / max(max_calls, 1)
        self._last_call: float | None = None

    async def acquire(self) -> None:
        now = time.monotonic()
        if self._last_call is not None:
            elapsed = now - self._last_call
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
        self._last_call = time.monotonic()


def build_query(lat: float, lon: float, radius_km: float, fmt: str = "json", timeout: int = 60) -> str:
    """Overpass query for city/town/village nodes within ``radius_km``."""
    template = _XML_QUERY if fmt == "xml" else _JSON_QUERY
    return template.format(
        lat=lat,
        lon=lon,
        radius_m=int(round(radius_km * 1000)),
        places=_PLACE_REGEX,
        timeout=timeout,
    )


class OverpassClient:
    """Async HTTP client for an Overpass API interpreter endpoint.

    One client is shared across a run; every request, retries included,
    goes through the same rate limiter.
    """

    def __init__(
        self,
        config: LookupConfig,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._rate_limiter = rate_limiter or RateLimiter(config.rate_limit_calls, config.rate_limit_period)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout_seconds,
                headers={"User-Agent": self.config.user_agent},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> OverpassClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def fetch_settlements(self, lat: float, lon: float, radius_km: float) -> str:
        """Run the populated-place query and return the raw response body."""
        query = build_query(lat, lon, radius_km, fmt=self.config.format, timeout=self.config.timeout_seconds)
        return await self._request_with_retry(query)

    async def find_settlements(self, lat: float, lon: float, radius_km: float) -> list[RawSettlementRecord]:
        """Fetch and parse populated places around a point.

        Raises:
            OverpassError: if every attempt failed or the body is unreadable.
        """
        raw_text = await self.fetch_settlements(lat, lon, radius_km)
        parser = PARSER_MAP.get(self.config.format)
        if parser is None:
            raise OverpassError(f"{self.config.name}: no parser for format '{self.config.format}'")
        try:
            return parser.parse(raw_text)
        except ParseError as exc:
            raise OverpassError(f"{self.config.name}: {exc}") from exc

    async def _request_with_retry(self, query: str) -> str:
        """POST the query with exponential backoff retry."""
        client = await self._get_client()
        last_exc: Exception | None = None

        for attempt in range(self.config.max_retries + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await client.post(self.config.base_url, data={"data": query})
                resp.raise_for_status()
                return resp.text
            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                last_exc = exc
                if attempt < self.config.max_retries:
                    backoff = self.config.retry_backoff_base ** attempt
                    logger.warning(
                        "%s: attempt %d/%d failed (%s), retrying in %.1fs",
                        self.config.name, attempt + 1, self.config.max_retries + 1,
                        exc, backoff,
                    )
                    await asyncio.sleep(backoff)

        raise OverpassError(
            f"{self.config.name}: all {self.config.max_retries + 1} attempts failed"
        ) from last_exc
