"""Providers for the token services used by routes and middleware.

Routes take the services through `Depends`, so tests can swap any of them
with `app.dependency_overrides`.
"""

from datetime import timedelta
from functools import lru_cache

from config.config import settings
from db.session import AsyncSessionLocal
from fastapi import Depends
from services.device_registry import DeviceRegistry
from services.geolocation import GeoLocationResolver, build_geo_resolver
from services.revocation import RevocationCascade
from services.token_issuer import TokenIssuer
from services.token_rotator import TokenRotator


@lru_cache
def get_geo_resolver() -> GeoLocationResolver:
    return build_geo_resolver()


def get_token_issuer(
    geo_resolver: GeoLocationResolver = Depends(get_geo_resolver),
) -> TokenIssuer:
    return TokenIssuer(
        AsyncSessionLocal,
        geo_resolver,
        access_token_lifetime=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        refresh_token_lifetime=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def get_token_rotator(
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> TokenRotator:
    return TokenRotator(AsyncSessionLocal, issuer)


def get_revocation_cascade() -> RevocationCascade:
    return RevocationCascade(AsyncSessionLocal)


def get_device_registry() -> DeviceRegistry:
    return DeviceRegistry(AsyncSessionLocal)


def resolve_token_rotator(overrides: dict) -> TokenRotator:
    """Build the rotator outside of a route, honouring dependency overrides.

    Used by middleware, which runs outside FastAPI's dependency resolution.
    An override replaces its provider together with everything the provider
    depends on, so overrides are called without arguments.
    """
    if get_token_rotator in overrides:
        return overrides[get_token_rotator]()
    if get_token_issuer in overrides:
        return get_token_rotator(overrides[get_token_issuer]())
    geo_resolver = overrides.get(get_geo_resolver, get_geo_resolver)()
    return get_token_rotator(get_token_issuer(geo_resolver))
