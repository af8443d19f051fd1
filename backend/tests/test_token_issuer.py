"""Tests for access/refresh pair issuance."""

from datetime import timedelta

import pytest
from conftest import FR_IP, desktop_fingerprint, phone_fingerprint
from core.security import as_utc, decode_access_token, hash_token
from models.auth import AccessToken, RefreshToken
from services.token_issuer import TokenIssuer
from sqlalchemy import func, select


async def _rows(session_factory):
    async with session_factory() as db:
        access = (await db.execute(select(AccessToken))).scalars().all()
        refresh = (await db.execute(select(RefreshToken))).scalars().all()
        return access, refresh


class TestIssue:
    async def test_pair_is_linked_and_uses_default_lifetimes(
        self, session_factory, issuer, clock, user_id
    ):
        pair = await issuer.issue(user_id, "auth_token", ["*"])

        (access,), (refresh,) = await _rows(session_factory)
        assert refresh.access_token_id == access.id == pair.access_token_id
        assert as_utc(access.expires_at) == clock.now + timedelta(minutes=60)
        assert as_utc(refresh.expires_at) == clock.now + timedelta(days=14)
        assert pair.expires_at == clock.now + timedelta(minutes=60)
        assert pair.refresh_expires_at == clock.now + timedelta(days=14)
        assert pair.token_type == "Bearer"
        assert refresh.revoked is False
        assert access.name == "auth_token"
        assert access.abilities == ["*"]

    async def test_lifetimes_are_configurable_per_instance(
        self, session_factory, geo_resolver, clock, user_id
    ):
        issuer = TokenIssuer(
            session_factory,
            geo_resolver,
            access_token_lifetime=timedelta(minutes=5),
            refresh_token_lifetime=timedelta(days=1),
            clock=clock,
        )
        pair = await issuer.issue(user_id)
        assert pair.expires_at == clock.now + timedelta(minutes=5)
        assert pair.refresh_expires_at == clock.now + timedelta(days=1)

    async def test_secrets_are_stored_only_as_hashes(self, session_factory, issuer, user_id):
        pair = await issuer.issue(user_id)

        (access,), (refresh,) = await _rows(session_factory)
        claims = decode_access_token(pair.access_token, verify_exp=False)
        assert refresh.token_hash == hash_token(pair.refresh_token)
        assert refresh.token_hash != pair.refresh_token
        assert access.token_hash == hash_token(claims.jti)
        assert pair.access_token not in (access.token_hash, refresh.token_hash)

    async def test_access_token_names_its_row(self, issuer, user_id):
        pair = await issuer.issue(user_id, "cli", ["read", "write"])

        claims = decode_access_token(pair.access_token, verify_exp=False)
        assert claims.user_id == user_id
        assert claims.session_id == pair.access_token_id
        assert claims.name == "cli"
        assert claims.abilities == ["read", "write"]

    async def test_refresh_secret_has_enough_entropy(self, issuer, user_id):
        first = await issuer.issue(user_id)
        second = await issuer.issue(user_id)
        # 64 random bytes encode to 86 url-safe characters.
        assert len(first.refresh_token) >= 86
        assert first.refresh_token != second.refresh_token

    async def test_without_fingerprint_no_device_data(self, session_factory, issuer, user_id):
        pair = await issuer.issue(user_id)

        (access,), _ = await _rows(session_factory)
        assert pair.is_suspicious is False
        assert access.ip_address is None
        assert access.country_code is None
        assert access.device is None


class TestEnrichedIssue:
    async def test_fingerprint_and_location_are_stored(self, session_factory, issuer, user_id):
        await issuer.issue(user_id, fingerprint=desktop_fingerprint())

        (access,), _ = await _rows(session_factory)
        assert access.ip_address == "203.0.113.5"
        assert access.browser == "Chrome"
        assert access.browser_version == "120.0.0"
        assert access.platform == "Windows"
        assert access.device == "Desktop"
        assert access.country_code == "US"
        assert access.location == "New York, NY"
        assert access.is_suspicious is False

    async def test_new_country_and_device_is_flagged(self, session_factory, issuer, clock, user_id):
        first = await issuer.issue(user_id, fingerprint=desktop_fingerprint())
        clock.advance(minutes=3)
        second = await issuer.issue(user_id, fingerprint=phone_fingerprint(FR_IP))

        assert first.is_suspicious is False
        assert second.is_suspicious is True
        async with session_factory() as db:
            stored = await db.get(AccessToken, second.access_token_id)
            assert stored.is_suspicious is True
            assert stored.country_code == "FR"

    async def test_same_country_new_device_is_flagged(self, issuer, clock, user_id):
        await issuer.issue(user_id, fingerprint=desktop_fingerprint())
        clock.advance(minutes=1)
        pair = await issuer.issue(user_id, fingerprint=phone_fingerprint())
        assert pair.is_suspicious is True

    async def test_loopback_login_resolves_locally(self, session_factory, issuer, user_id, geo_resolver):
        await issuer.issue(user_id, fingerprint=desktop_fingerprint("127.0.0.1"))

        (access,), _ = await _rows(session_factory)
        assert access.country_code == "LOCAL"
        assert access.location == "Local Development"
        assert geo_resolver.lookups == []


class TestAtomicity:
    async def test_failed_refresh_insert_leaves_no_access_token(
        self, session_factory, issuer, user_id, monkeypatch
    ):
        from services import token_issuer

        def broken_secret():
            raise RuntimeError("entropy source unavailable")

        monkeypatch.setattr(token_issuer, "generate_refresh_secret", broken_secret)

        with pytest.raises(RuntimeError):
            await issuer.issue(user_id, fingerprint=desktop_fingerprint())

        async with session_factory() as db:
            assert await db.scalar(select(func.count(AccessToken.id))) == 0
            assert await db.scalar(select(func.count(RefreshToken.id))) == 0
