"""Bearer authentication for API routes.

An access token is accepted when its signature and `exp` claim are valid,
the access token row named by its `sid` claim still exists, belongs to the
token's subject and is unexpired, and the row's stored hash matches the
token's `jti`. Deleting the row (logout, device revoke, rotation, password
change) therefore invalidates the token immediately.
"""

from typing import Annotated

from core.logging import logger
from core.security import as_utc, decode_access_token, token_hash_matches, utcnow
from db.session import AsyncSessionLocal
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from models.auth import AccessToken as AccessTokenModel
from models.auth import User as UserModel
from schemas.auth import AuthenticatedSession, UserInDB
from sqlalchemy import select

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


async def get_current_session(
    token: Annotated[str, Depends(oauth2_scheme)],
) -> AuthenticatedSession:
    """Validate the bearer token and return the session behind it.

    The session's `last_used_at` is updated on every accepted request.

    Raises:
        HTTPException: 401 if the token is invalid, revoked or expired.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    claims = decode_access_token(token)
    if claims is None:
        logger.warning("Invalid access token provided")
        raise credentials_exception

    now = utcnow()
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(AccessTokenModel, UserModel)
            .join(UserModel, UserModel.id == AccessTokenModel.user_id)
            .filter(
                AccessTokenModel.id == claims.session_id,
                AccessTokenModel.user_id == claims.user_id,
            )
        )
        row = result.first()
        if row is None:
            logger.info("Access token for revoked session sid={}", claims.session_id)
            raise credentials_exception

        access_token, user = row
        if as_utc(access_token.expires_at) <= now or not token_hash_matches(
            claims.jti, access_token.token_hash
        ):
            raise credentials_exception

        access_token.last_used_at = now
        await db.commit()

        return AuthenticatedSession(
            user=UserInDB.model_validate(user),
            session_id=access_token.id,
            name=access_token.name,
            abilities=list(access_token.abilities or ["*"]),
            expires_at=as_utc(access_token.expires_at),
        )


async def get_current_user(
    session: Annotated[AuthenticatedSession, Depends(get_current_session)],
) -> UserInDB:
    return session.user


async def get_current_active_user(
    current_user: Annotated[UserInDB, Depends(get_current_user)],
) -> UserInDB:
    """Return the current user if active.

    Raises:
        HTTPException: If the user is marked as disabled.
    """

    if current_user.disabled:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user
