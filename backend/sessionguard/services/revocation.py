"""Revocation of token pairs.

Every path removes both halves of a pair: revoking a refresh token deletes
its access token, and deleting an access token revokes the refresh tokens
paired with it. All operations are idempotent; repeating one on an already
revoked target returns False.
"""

from collections.abc import Callable
from datetime import datetime

from core.errors import CredentialCompromiseCascadeFailed
from core.logging import logger
from core.security import utcnow
from models.auth import AccessToken, RefreshToken
from services import token_store
from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class RevocationCascade:
    """Revoke tokens individually, per device, or for a whole user."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock

    async def revoke(self, refresh_secret: str) -> bool:
        """Revoke a refresh token and delete its sibling access token.

        Expired but unrevoked refresh tokens are still revoked so their
        access token is cleaned up.

        Returns:
            bool: True if this call revoked the token, False if it was
                unknown or already revoked.
        """
        async with self.session_factory() as db, db.begin():
            token = await token_store.find_refresh_token(db, refresh_secret)
            if token is None or token.revoked:
                return False
            if not await token_store.consume_refresh_token(db, token.id):
                return False
            await token_store.delete_access_token(db, token.access_token_id)

        logger.info("Revoked refresh token id={} user_id={}", token.id, token.user_id)
        return True

    async def revoke_device(self, user_id: int, access_token_id: int) -> bool:
        """Revoke one device session of `user_id`.

        Refusing to revoke the caller's own current session is left to the
        route, which knows which session is current.

        Returns:
            bool: False if the access token does not exist or belongs to
                another user.
        """
        async with self.session_factory() as db, db.begin():
            access_token = await token_store.get_access_token(
                db, access_token_id, user_id=user_id
            )
            if access_token is None:
                return False
            revoked = await token_store.revoke_refresh_tokens_for_access(
                db, access_token_id
            )
            deleted = await token_store.delete_access_token(db, access_token_id)

        logger.info(
            "Revoked device session id={} user_id={} refresh_tokens_revoked={}",
            access_token_id,
            user_id,
            revoked,
        )
        return deleted

    async def on_credential_compromise(self, user_id: int) -> None:
        """Delete all access tokens and revoke all refresh tokens of `user_id`.

        Called after a password change or any event that may have exposed
        the user's credentials.

        Raises:
            CredentialCompromiseCascadeFailed: If the storage layer failed;
                the transaction is rolled back and no token was revoked.
        """
        try:
            async with self.session_factory() as db, db.begin():
                await self.revoke_all_in_transaction(db, user_id)
        except SQLAlchemyError as exc:
            logger.exception("Credential cascade failed for user_id={}", user_id)
            raise CredentialCompromiseCascadeFailed(user_id) from exc

    async def revoke_all_in_transaction(self, db: AsyncSession, user_id: int) -> None:
        """Run the user-wide cascade inside the caller's open transaction.

        Storage errors propagate; the caller's transaction decides what is
        rolled back with them.
        """
        revoked = await db.execute(
            update(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked == False,  # noqa: E712
            )
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        deleted = await db.execute(
            delete(AccessToken)
            .where(AccessToken.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        logger.warning(
            "Revoked all credentials for user_id={} (access={}, refresh={})",
            user_id,
            deleted.rowcount,
            revoked.rowcount,
        )
