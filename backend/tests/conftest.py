import asyncio
import inspect
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Configure the environment before any application module reads settings
_test_tmp_dir = tempfile.mkdtemp(prefix="sessionguard_test_")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault(
    "DATABASE_URL_ASYNC", f"sqlite+aiosqlite:///{Path(_test_tmp_dir) / 'app.db'}"
)
os.environ.setdefault("GEOIP_PROVIDER", "none")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402
from db.session import Base, build_engine, build_sessionmaker  # noqa: E402
from models.auth import User  # noqa: E402
from schemas.devices import DeviceFingerprint, GeoLocation  # noqa: E402
from services.device_registry import DeviceRegistry  # noqa: E402
from services.geolocation import GeoLocationResolver  # noqa: E402
from services.revocation import RevocationCascade  # noqa: E402
from services.token_issuer import TokenIssuer  # noqa: E402
from services.token_rotator import TokenRotator  # noqa: E402

US_IP = "203.0.113.5"
FR_IP = "198.51.100.7"


class StaticGeoResolver(GeoLocationResolver):
    """Resolver answering from a fixed table; unknown addresses resolve to None."""

    def __init__(self, table: dict[str, GeoLocation]):
        self.table = table
        self.lookups: list[str] = []

    async def lookup(self, ip: str) -> GeoLocation | None:
        self.lookups.append(ip)
        return self.table.get(ip)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def desktop_fingerprint(ip: str = US_IP) -> DeviceFingerprint:
    return DeviceFingerprint(
        ip_address=ip,
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
        browser="Chrome",
        browser_version="120.0.0",
        platform="Windows",
        platform_version="10",
        is_desktop=True,
    )


def phone_fingerprint(ip: str = US_IP) -> DeviceFingerprint:
    return DeviceFingerprint(
        ip_address=ip,
        user_agent="Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)",
        browser="Mobile Safari",
        browser_version="17.0",
        platform="iOS",
        platform_version="17.0",
        is_phone=True,
    )


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


async def _create_schema(engine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _create_user(session_factory, username: str) -> int:
    async with session_factory() as db:
        user = User(
            username=username,
            email=f"{username}@example.com",
            full_name=username.title(),
            disabled=False,
            hashed_password="not-a-real-hash",
        )
        db.add(user)
        await db.commit()
        return user.id


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def session_factory(tmp_path):
    """A fresh SQLite database per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tokens.db'}")
    asyncio.run(_create_schema(engine))
    yield build_sessionmaker(engine)
    asyncio.run(engine.dispose())


@pytest.fixture
def user_id(session_factory):
    return asyncio.run(_create_user(session_factory, "alice"))


@pytest.fixture
def other_user_id(session_factory):
    return asyncio.run(_create_user(session_factory, "mallory"))


@pytest.fixture
def geo_resolver():
    return StaticGeoResolver(
        {
            US_IP: GeoLocation(country_code="US", location="New York, NY"),
            FR_IP: GeoLocation(country_code="FR", location="Paris, Ile-de-France"),
        }
    )


@pytest.fixture
def issuer(session_factory, geo_resolver, clock):
    return TokenIssuer(session_factory, geo_resolver, clock=clock)


@pytest.fixture
def rotator(session_factory, issuer, clock):
    return TokenRotator(session_factory, issuer, clock=clock)


@pytest.fixture
def cascade(session_factory, clock):
    return RevocationCascade(session_factory, clock=clock)


@pytest.fixture
def registry(session_factory, clock):
    return DeviceRegistry(session_factory, clock=clock)
