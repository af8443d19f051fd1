"""Refresh token rotation.

A refresh token is single use. Rotating it revokes it, deletes its sibling
access token and issues a new pair, all in one transaction. The revocation
is a conditional update, so when several requests race on the same refresh
token exactly one of them gets a new pair and the others fail.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from core.errors import INVALID_OR_EXPIRED_REFRESH_TOKEN, Failure
from core.logging import logger
from core.security import utcnow
from schemas.auth import CredentialPair
from schemas.devices import DeviceFingerprint
from services import token_store
from services.token_issuer import TokenIssuer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

DEFAULT_ROTATION_THRESHOLD = timedelta(minutes=5)


def should_rotate(
    access_expires_at: datetime,
    now: datetime,
    threshold: timedelta = DEFAULT_ROTATION_THRESHOLD,
) -> bool:
    """Return True when an access token has less than `threshold` left."""
    return access_expires_at - threshold <= now


class TokenRotator:
    """Exchange refresh tokens for new token pairs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        issuer: TokenIssuer,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.issuer = issuer
        self.clock = clock

    async def is_valid(self, refresh_secret: str) -> bool:
        """Return True if `refresh_secret` is unrevoked and unexpired."""
        async with self.session_factory() as db:
            token = await token_store.find_refresh_token(db, refresh_secret)
            return token_store.is_refresh_token_usable(token, self.clock())

    async def rotate(
        self,
        refresh_secret: str,
        name: str = "api",
        abilities: Sequence[str] = ("*",),
        fingerprint: DeviceFingerprint | None = None,
        expected_user_id: int | None = None,
    ) -> CredentialPair | Failure:
        """Consume `refresh_secret` and issue a new pair.

        Args:
            refresh_secret: The refresh token presented by the client.
            name: Label for the new access token.
            abilities: Permission scopes for the new access token.
            fingerprint: Optional device fingerprint of the caller.
            expected_user_id: When given, the refresh token must belong to
                this user.

        Returns:
            CredentialPair | Failure: The new pair, or
                INVALID_OR_EXPIRED_REFRESH_TOKEN when the token is unknown,
                revoked, expired, owned by another user, or was consumed by a
                concurrent rotation.
        """
        location = await self.issuer.resolve_location(fingerprint)

        async with self.session_factory() as db, db.begin():
            now = self.clock()
            token = await token_store.find_refresh_token(db, refresh_secret)
            if not token_store.is_refresh_token_usable(token, now):
                logger.info("Rejected refresh token: unknown, revoked or expired")
                return INVALID_OR_EXPIRED_REFRESH_TOKEN
            if expected_user_id is not None and token.user_id != expected_user_id:
                logger.warning(
                    "Rejected refresh token id={} presented for user_id={}",
                    token.id,
                    expected_user_id,
                )
                return INVALID_OR_EXPIRED_REFRESH_TOKEN

            if not await token_store.consume_refresh_token(db, token.id, now):
                logger.warning("Refresh token id={} already consumed", token.id)
                return INVALID_OR_EXPIRED_REFRESH_TOKEN

            await token_store.delete_access_token(db, token.access_token_id)
            pair = await self.issuer.issue_in_transaction(
                db, token.user_id, name, abilities, fingerprint, location
            )

        logger.info(
            "Rotated refresh token id={} for user_id={}", token.id, token.user_id
        )
        return pair
