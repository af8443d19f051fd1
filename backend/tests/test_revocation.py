"""Tests for the revocation cascade."""

import pytest
from conftest import desktop_fingerprint, phone_fingerprint
from core.errors import CredentialCompromiseCascadeFailed
from models.auth import AccessToken, RefreshToken, User
from services import token_store
from services.revocation import RevocationCascade
from sqlalchemy import delete, select
from sqlalchemy.exc import OperationalError


async def _refresh_row(session_factory, secret):
    async with session_factory() as db:
        return await token_store.find_refresh_token(db, secret)


async def _access_row(session_factory, access_token_id):
    async with session_factory() as db:
        return await db.get(AccessToken, access_token_id)


class TestRevoke:
    async def test_revoke_is_idempotent(self, session_factory, issuer, cascade, user_id):
        pair = await issuer.issue(user_id)

        assert await cascade.revoke(pair.refresh_token) is True
        assert await cascade.revoke(pair.refresh_token) is False
        assert await cascade.revoke(pair.refresh_token) is False

    async def test_revoke_removes_the_sibling_access_token(
        self, session_factory, issuer, rotator, cascade, user_id
    ):
        pair = await issuer.issue(user_id)
        await cascade.revoke(pair.refresh_token)

        assert await _access_row(session_factory, pair.access_token_id) is None
        assert (await _refresh_row(session_factory, pair.refresh_token)).revoked is True
        assert await rotator.is_valid(pair.refresh_token) is False

    async def test_revoke_unknown_secret(self, cascade, user_id):
        assert await cascade.revoke("never-issued") is False

    async def test_revoke_leaves_other_pairs_alone(self, session_factory, issuer, rotator, cascade, user_id):
        first = await issuer.issue(user_id)
        second = await issuer.issue(user_id)

        await cascade.revoke(first.refresh_token)

        assert await rotator.is_valid(second.refresh_token) is True
        assert await _access_row(session_factory, second.access_token_id) is not None

    async def test_expired_refresh_token_can_still_be_revoked(
        self, session_factory, issuer, cascade, clock, user_id
    ):
        pair = await issuer.issue(user_id)
        clock.advance(days=15)

        assert await cascade.revoke(pair.refresh_token) is True
        assert await _access_row(session_factory, pair.access_token_id) is None


class TestRevokeDevice:
    async def test_revoking_another_session_invalidates_its_refresh_token(
        self, session_factory, issuer, rotator, cascade, user_id
    ):
        current = await issuer.issue(user_id, fingerprint=desktop_fingerprint())
        other = await issuer.issue(user_id, fingerprint=phone_fingerprint())

        assert await cascade.revoke_device(user_id, other.access_token_id) is True

        assert await _access_row(session_factory, other.access_token_id) is None
        assert await rotator.is_valid(other.refresh_token) is False
        assert await rotator.is_valid(current.refresh_token) is True

    async def test_missing_session(self, cascade, user_id):
        assert await cascade.revoke_device(user_id, 9999) is False

    async def test_repeat_is_a_no_op(self, issuer, cascade, user_id):
        pair = await issuer.issue(user_id)
        assert await cascade.revoke_device(user_id, pair.access_token_id) is True
        assert await cascade.revoke_device(user_id, pair.access_token_id) is False

    async def test_session_of_another_user_is_untouched(
        self, session_factory, issuer, rotator, cascade, user_id, other_user_id
    ):
        pair = await issuer.issue(other_user_id)

        assert await cascade.revoke_device(user_id, pair.access_token_id) is False
        assert await _access_row(session_factory, pair.access_token_id) is not None
        assert await rotator.is_valid(pair.refresh_token) is True


class TestCredentialCompromise:
    async def test_everything_of_the_user_is_revoked(
        self, session_factory, issuer, rotator, cascade, registry, user_id, other_user_id
    ):
        pairs = [await issuer.issue(user_id) for _ in range(3)]
        bystander = await issuer.issue(other_user_id)

        await cascade.on_credential_compromise(user_id)

        assert await registry.list_sessions(user_id) == []
        for pair in pairs:
            assert await rotator.is_valid(pair.refresh_token) is False
        assert await rotator.is_valid(bystander.refresh_token) is True
        assert len(await registry.list_sessions(other_user_id)) == 1

    async def test_repeating_the_cascade_is_harmless(self, issuer, cascade, registry, user_id):
        await issuer.issue(user_id)
        await cascade.on_credential_compromise(user_id)
        await cascade.on_credential_compromise(user_id)
        assert await registry.list_sessions(user_id) == []

    async def test_storage_failure_rolls_back_and_raises(
        self, session_factory, issuer, clock, user_id, monkeypatch
    ):
        pair = await issuer.issue(user_id)

        real_factory = session_factory

        def failing_factory():
            session = real_factory()
            original_execute = session.execute
            calls = {"n": 0}

            async def execute(statement, *args, **kwargs):
                calls["n"] += 1
                if calls["n"] == 2:
                    raise OperationalError("DELETE", {}, Exception("disk I/O error"))
                return await original_execute(statement, *args, **kwargs)

            session.execute = execute
            return session

        cascade = RevocationCascade(failing_factory, clock=clock)

        with pytest.raises(CredentialCompromiseCascadeFailed) as excinfo:
            await cascade.on_credential_compromise(user_id)

        assert excinfo.value.user_id == user_id
        async with session_factory() as db:
            refresh = (await db.execute(select(RefreshToken))).scalars().one()
            access = (await db.execute(select(AccessToken))).scalars().one()
        assert refresh.revoked is False
        assert access.id == pair.access_token_id


class TestUserDeletion:
    async def test_deleting_a_user_removes_their_tokens(
        self, session_factory, issuer, user_id, other_user_id
    ):
        await issuer.issue(user_id)
        bystander = await issuer.issue(other_user_id)

        async with session_factory() as db, db.begin():
            await db.execute(delete(User).where(User.id == user_id))

        async with session_factory() as db:
            access_rows = (await db.execute(select(AccessToken))).scalars().all()
            refresh_rows = (await db.execute(select(RefreshToken))).scalars().all()
        assert [row.id for row in access_rows] == [bystander.access_token_id]
        assert [row.user_id for row in refresh_rows] == [other_user_id]
