from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import geoip2.errors
import pytest

from visitor_tracker.app import create_app
from visitor_tracker.config import Settings
from visitor_tracker.geo import GeoResolver
from visitor_tracker.store import VisitStore

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
IPAD_UA = (
    "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
DESKTOP_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# ----------------------------
# Stubs
# ----------------------------


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@dataclass
class _Country:
    iso_code: str | None


@dataclass
class _CountryResponse:
    country: _Country
    registered_country: _Country


class FakeReader:
    """
    Stands in for geoip2.database.Reader: answers from a dict.
    """

    def __init__(self, table: dict[str, str | None] | None = None) -> None:
        self.table = table or {}
        self.closed = False

    def country(self, ip: str) -> _CountryResponse:
        if ip == "not-an-ip":
            raise ValueError(f"{ip!r} does not appear to be an IPv4 or IPv6 address")
        if ip not in self.table:
            raise geoip2.errors.AddressNotFoundError(f"The address {ip} is not in the database.")
        code = self.table[ip]
        return _CountryResponse(country=_Country(code), registered_country=_Country("ZZ"))

    def close(self) -> None:
        self.closed = True


class BrokenReader:
    def country(self, ip: str):
        raise RuntimeError("mmdb file truncated")


# ----------------------------
# Fixtures
# ----------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock: FakeClock) -> VisitStore:
    return VisitStore(clock=clock)


@pytest.fixture
def geo() -> GeoResolver:
    reader = FakeReader({"81.2.69.142": "GB", "8.8.8.8": "US", "5.5.5.5": None})
    return GeoResolver("/nonexistent/GeoLite2-Country.mmdb", reader=reader)


@pytest.fixture
def settings() -> Settings:
    return Settings(cors_allow_origins=["*"], timezone="UTC", session_retention_days=0)


@pytest.fixture
def app(settings: Settings, store: VisitStore, geo: GeoResolver, clock: FakeClock):
    return create_app(settings=settings, store=store, geo=geo, clock=clock)


@pytest.fixture
def client(app):
    return app.test_client()
