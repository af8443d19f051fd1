"""Queries on access and refresh token rows shared by the token services.

Every function runs inside a transaction owned by the caller; none of them
commit.
"""

from datetime import datetime

from core.security import as_utc, hash_token
from models.auth import AccessToken, RefreshToken
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession


async def find_refresh_token(db: AsyncSession, secret: str) -> RefreshToken | None:
    """Return the refresh token row for `secret` in any state."""
    result = await db.execute(
        select(RefreshToken).filter(RefreshToken.token_hash == hash_token(secret))
    )
    return result.scalars().first()


def is_refresh_token_usable(token: RefreshToken | None, now: datetime) -> bool:
    return (
        token is not None
        and not token.revoked
        and as_utc(token.expires_at) > now
    )


async def consume_refresh_token(
    db: AsyncSession, token_id: int, now: datetime | None = None
) -> bool:
    """Flip `revoked` on a refresh token that is still unrevoked.

    This is the single compare-and-set on a refresh token: of any number of
    concurrent callers, only one sees an affected row. When `now` is given
    the token must also be unexpired.

    Returns:
        bool: True if this call revoked the token.
    """
    stmt = update(RefreshToken).where(
        RefreshToken.id == token_id,
        RefreshToken.revoked == False,  # noqa: E712
    )
    if now is not None:
        stmt = stmt.where(RefreshToken.expires_at > now)
    result = await db.execute(
        stmt.values(revoked=True).execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def get_access_token(
    db: AsyncSession, access_token_id: int, user_id: int | None = None
) -> AccessToken | None:
    query = select(AccessToken).filter(AccessToken.id == access_token_id)
    if user_id is not None:
        query = query.filter(AccessToken.user_id == user_id)
    result = await db.execute(query)
    return result.scalars().first()


async def delete_access_token(db: AsyncSession, access_token_id: int | None) -> bool:
    if access_token_id is None:
        return False
    result = await db.execute(
        delete(AccessToken)
        .where(AccessToken.id == access_token_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def revoke_refresh_tokens_for_access(db: AsyncSession, access_token_id: int) -> int:
    """Revoke every unrevoked refresh token paired with `access_token_id`."""
    result = await db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.access_token_id == access_token_id,
            RefreshToken.revoked == False,  # noqa: E712
        )
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
