"""Registry of settlement lookup services, border datasets and name scripts."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_USER_AGENT = "nearby-settlements/0.1"


@dataclass
class LookupConfig:
    """Configuration for a single Overpass API endpoint."""

    name: str
    base_url: str
    timeout_seconds: int
    max_retries: int
    retry_backoff_base: float
    rate_limit_calls: int       # max calls ...
    rate_limit_period: float    # ... per this many seconds
    format: str                 # "json" or "xml"
    user_agent: str = DEFAULT_USER_AGENT


LOOKUP_SERVICES: dict[str, LookupConfig] = {
    "overpass": LookupConfig(
        name="overpass",
        base_url="https://overpass-api.de/api/interpreter",
        timeout_seconds=60,
        max_retries=3,
        retry_backoff_base=2.0,
        rate_limit_calls=1,
        rate_limit_period=1.0,
        format="json",
    ),
    "overpass-xml": LookupConfig(
        name="overpass-xml",
        base_url="https://overpass-api.de/api/interpreter",
        timeout_seconds=60,
        max_retries=3,
        retry_backoff_base=2.0,
        rate_limit_calls=1,
        rate_limit_period=1.0,
        format="xml",
    ),
    "kumi": LookupConfig(
        name="kumi",
        base_url="https://overpass.kumi.systems/api/interpreter",
        timeout_seconds=90,
        max_retries=3,
        retry_backoff_base=2.0,
        rate_limit_calls=1,
        rate_limit_period=2.0,
        format="json",
    ),
}

DEFAULT_SERVICE = "overpass"

# ISO 3166-1 alpha-3 → GeoJSON country outline
BORDER_SOURCES: dict[str, str] = {
    "RUS": "https://raw.githubusercontent.com/johan/world.geo.json/master/countries/RUS.geo.json",
    "UKR": "https://raw.githubusercontent.com/johan/world.geo.json/master/countries/UKR.geo.json",
    "BLR": "https://raw.githubusercontent.com/johan/world.geo.json/master/countries/BLR.geo.json",
    "KAZ": "https://raw.githubusercontent.com/johan/world.geo.json/master/countries/KAZ.geo.json",
}

# Letters, whitespace and hyphens of the script settlement names must use
NAME_SCRIPTS: dict[str, str] = {
    "cyrillic": r"^[А-Яа-яЁё\s-]+$",
    "latin": r"^[A-Za-z\s-]+$",
}

DEFAULT_SCRIPT = "cyrillic"


def get_lookup_config(name: str = DEFAULT_SERVICE) -> LookupConfig:
    """Return the named service config with environment overrides applied.

    ``OVERPASS_URL`` replaces the endpoint, ``OVERPASS_USER_AGENT`` the
    User-Agent header.
    """
    try:
        config = LOOKUP_SERVICES[name]
    except KeyError:
        raise KeyError(f"Unknown lookup service '{name}'") from None

    overrides = {}
    if os.getenv("OVERPASS_URL"):
        overrides["base_url"] = os.environ["OVERPASS_URL"]
    if os.getenv("OVERPASS_USER_AGENT"):
        overrides["user_agent"] = os.environ["OVERPASS_USER_AGENT"]
    return replace(config, **overrides) if overrides else config
