"""Issuance of access/refresh token pairs.

A pair is written in one transaction: the access token row (with the device
fingerprint, location and suspicious-login verdict already filled in) and
the refresh token row pointing at it. Either both rows exist afterwards or
neither does.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from core.logging import logger
from core.security import (
    create_access_token,
    generate_jti,
    generate_refresh_secret,
    hash_token,
    utcnow,
)
from models.auth import AccessToken, RefreshToken
from schemas.auth import CredentialPair
from schemas.devices import DeviceFingerprint, GeoLocation
from services.geolocation import GeoLocationResolver
from services.suspicious_login import classify, find_prior_session
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

DEFAULT_ACCESS_TOKEN_LIFETIME = timedelta(minutes=60)
DEFAULT_REFRESH_TOKEN_LIFETIME = timedelta(days=14)


class TokenIssuer:
    """Mint access/refresh token pairs for a user.

    Attributes:
        session_factory: Sessionmaker used to open the issuing transaction.
        geo_resolver: Resolver used to locate fingerprinted logins.
        access_token_lifetime: Lifetime of issued access tokens.
        refresh_token_lifetime: Lifetime of issued refresh tokens.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        geo_resolver: GeoLocationResolver,
        access_token_lifetime: timedelta = DEFAULT_ACCESS_TOKEN_LIFETIME,
        refresh_token_lifetime: timedelta = DEFAULT_REFRESH_TOKEN_LIFETIME,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.geo_resolver = geo_resolver
        self.access_token_lifetime = access_token_lifetime
        self.refresh_token_lifetime = refresh_token_lifetime
        self.clock = clock

    async def issue(
        self,
        user_id: int,
        name: str = "api",
        abilities: Sequence[str] = ("*",),
        fingerprint: DeviceFingerprint | None = None,
    ) -> CredentialPair:
        """Create a new access/refresh pair for `user_id`.

        Args:
            user_id: The user the tokens are issued to.
            name: Client/purpose label stored on the access token.
            abilities: Permission scopes of the access token.
            fingerprint: Optional device fingerprint of the caller.

        Returns:
            CredentialPair: Plaintext tokens; they cannot be recovered later.
        """
        location = await self.resolve_location(fingerprint)
        async with self.session_factory() as db, db.begin():
            return await self.issue_in_transaction(
                db, user_id, name, abilities, fingerprint, location
            )

    async def resolve_location(
        self, fingerprint: DeviceFingerprint | None
    ) -> GeoLocation | None:
        if fingerprint is None:
            return None
        return await self.geo_resolver.resolve(fingerprint.ip_address)

    async def issue_in_transaction(
        self,
        db: AsyncSession,
        user_id: int,
        name: str,
        abilities: Sequence[str],
        fingerprint: DeviceFingerprint | None = None,
        location: GeoLocation | None = None,
    ) -> CredentialPair:
        """Write a new pair using the caller's open transaction.

        `location` must already be resolved for `fingerprint`; no network
        calls happen while the transaction is open.
        """
        now = self.clock()
        access_expires_at = now + self.access_token_lifetime
        refresh_expires_at = now + self.refresh_token_lifetime
        abilities = list(abilities)

        access_token = AccessToken(
            user_id=user_id,
            name=name,
            abilities=abilities,
            expires_at=access_expires_at,
            created_at=now,
            last_used_at=now,
            is_suspicious=False,
        )

        if fingerprint is not None:
            # NOTE: history is read before the new row is added to the session.
            prior = await find_prior_session(db, user_id)
            is_suspicious = classify(prior, fingerprint, location)
            access_token.ip_address = fingerprint.ip_address
            access_token.user_agent = fingerprint.user_agent
            access_token.browser = fingerprint.browser
            access_token.browser_version = fingerprint.browser_version
            access_token.platform = fingerprint.platform
            access_token.platform_version = fingerprint.platform_version
            access_token.device = fingerprint.device_class.value
            access_token.location = location.location if location else None
            access_token.country_code = location.country_code if location else None
            access_token.is_suspicious = is_suspicious
            if is_suspicious:
                logger.warning(
                    "Suspicious login for user_id={} ip={} country={} device={}",
                    user_id,
                    fingerprint.ip_address,
                    access_token.country_code,
                    access_token.device,
                )

        jti = generate_jti()
        access_token.token_hash = hash_token(jti)
        db.add(access_token)
        await db.flush()

        refresh_secret = generate_refresh_secret()
        refresh_token = RefreshToken(
            user_id=user_id,
            token_hash=hash_token(refresh_secret),
            access_token_id=access_token.id,
            expires_at=refresh_expires_at,
            revoked=False,
            created_at=now,
        )
        db.add(refresh_token)
        await db.flush()

        encoded = create_access_token(
            user_id=user_id,
            session_id=access_token.id,
            jti=jti,
            name=name,
            abilities=abilities,
            issued_at=now,
            expires_at=access_expires_at,
        )
        logger.info(
            "Issued token pair user_id={} access_token_id={} refresh_token_id={}",
            user_id,
            access_token.id,
            refresh_token.id,
        )
        return CredentialPair(
            access_token=encoded,
            refresh_token=refresh_secret,
            expires_at=access_expires_at,
            refresh_expires_at=refresh_expires_at,
            access_token_id=access_token.id,
            is_suspicious=access_token.is_suspicious,
        )
