"""Tests for password changes and the sessions they revoke."""

import pytest
from core.errors import CredentialCompromiseCascadeFailed
from core.security import get_password_hash, verify_password
from models.auth import User
from schemas.auth import UserInDB
from services.accounts import change_password
from sqlalchemy.exc import OperationalError

OLD_PASSWORD = "OldPassword123!"
NEW_PASSWORD = "NewPassword456!"


async def _create_account(session_factory) -> UserInDB:
    async with session_factory() as db:
        user = User(
            username="carol",
            email="carol@example.com",
            full_name="Carol",
            disabled=False,
            hashed_password=get_password_hash(OLD_PASSWORD),
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return UserInDB.model_validate(user)


async def _stored_hash(session_factory, user_id):
    async with session_factory() as db:
        return (await db.get(User, user_id)).hashed_password


class TestChangePassword:
    async def test_new_password_and_revocation_land_together(
        self, session_factory, issuer, rotator, cascade, registry
    ):
        account = await _create_account(session_factory)
        pairs = [await issuer.issue(account.id) for _ in range(2)]

        assert await change_password(account, OLD_PASSWORD, NEW_PASSWORD, cascade) is True

        assert verify_password(NEW_PASSWORD, await _stored_hash(session_factory, account.id))
        for pair in pairs:
            assert await rotator.is_valid(pair.refresh_token) is False
        assert await registry.list_sessions(account.id) == []

    async def test_wrong_current_password_changes_nothing(
        self, session_factory, issuer, rotator, cascade
    ):
        account = await _create_account(session_factory)
        pair = await issuer.issue(account.id)

        assert await change_password(account, "not-my-password", NEW_PASSWORD, cascade) is False

        assert verify_password(OLD_PASSWORD, await _stored_hash(session_factory, account.id))
        assert await rotator.is_valid(pair.refresh_token) is True

    async def test_failed_revocation_keeps_the_old_password(
        self, session_factory, issuer, rotator, cascade, monkeypatch
    ):
        account = await _create_account(session_factory)
        pair = await issuer.issue(account.id)

        async def broken_cascade(db, user_id):
            raise OperationalError("DELETE", {}, Exception("disk I/O error"))

        monkeypatch.setattr(cascade, "revoke_all_in_transaction", broken_cascade)

        with pytest.raises(CredentialCompromiseCascadeFailed) as excinfo:
            await change_password(account, OLD_PASSWORD, NEW_PASSWORD, cascade)

        assert excinfo.value.user_id == account.id
        assert verify_password(OLD_PASSWORD, await _stored_hash(session_factory, account.id))
        assert await rotator.is_valid(pair.refresh_token) is True
