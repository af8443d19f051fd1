"""User account persistence: lookup, registration, password checks.

Password changes revoke every session opened with the old password in the
same transaction that stores the new hash.
"""

from core.errors import CredentialCompromiseCascadeFailed, UserAlreadyExists
from core.logging import logger
from core.security import get_password_hash, verify_password
from db.session import AsyncSessionLocal
from models.auth import User as UserModel
from schemas.auth import UserCreate, UserInDB
from services.revocation import RevocationCascade
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError


async def get_user(username: str) -> UserInDB | None:
    """Load a user record from the database by username.

    Returns:
        UserInDB | None: Validated user model when found, otherwise None.
    """
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(UserModel).filter(UserModel.username == username)
        )
        user = result.scalars().first()
        if user:
            logger.debug("Loaded user from DB username={} id={}", username, user.id)
            return UserInDB.model_validate(user)
    return None


async def authenticate_user(username: str, password: str) -> UserInDB | bool:
    """Authenticate a user by username and password.

    Returns:
        UserInDB | bool: The validated user object on success, or False.
    """
    user = await get_user(username)
    if not user:
        logger.debug("Authentication failed: user not found username={}", username)
        return False
    if not verify_password(password, user.hashed_password):
        logger.warning("Authentication failed: invalid password username={}", username)
        return False
    return user


async def create_user(data: UserCreate) -> UserInDB:
    """Register a new user.

    Raises:
        UserAlreadyExists: If the username or email is taken.
    """
    async with AsyncSessionLocal() as db:
        existing = await db.execute(
            select(UserModel.id).filter(
                or_(UserModel.username == data.username, UserModel.email == data.email)
            )
        )
        if existing.first() is not None:
            raise UserAlreadyExists(data.username)

        user = UserModel(
            username=data.username,
            email=data.email,
            full_name=data.full_name,
            disabled=False,
            hashed_password=get_password_hash(data.password),
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError as exc:
            await db.rollback()
            raise UserAlreadyExists(data.username) from exc
        await db.refresh(user)
        logger.info("Registered user username={} id={}", user.username, user.id)
        return UserInDB.model_validate(user)


async def change_password(
    user: UserInDB,
    current_password: str,
    new_password: str,
    cascade: RevocationCascade,
) -> bool:
    """Replace the password of `user` and revoke all of their tokens.

    The new hash and the revocation are written in one transaction, so a
    failed cascade leaves the old password in place.

    Returns:
        bool: False if `current_password` does not match.

    Raises:
        CredentialCompromiseCascadeFailed: If the transaction failed; the
            password is unchanged and no token was revoked.
    """
    if not verify_password(current_password, user.hashed_password):
        logger.warning("Password change rejected for user_id={}", user.id)
        return False

    new_hash = get_password_hash(new_password)
    try:
        async with cascade.session_factory() as db, db.begin():
            await db.execute(
                update(UserModel)
                .where(UserModel.id == user.id)
                .values(hashed_password=new_hash)
            )
            await cascade.revoke_all_in_transaction(db, user.id)
    except SQLAlchemyError as exc:
        logger.exception("Password change failed for user_id={}", user.id)
        raise CredentialCompromiseCascadeFailed(user.id) from exc

    logger.info("Password changed for user_id={}", user.id)
    return True
