"""Error kinds for credential operations.

Expected conditions (an unknown, revoked or expired refresh token, a missing
device session) are returned to callers as values so they can branch without
exception handling. Storage failures are raised.
"""

from dataclasses import dataclass
from enum import Enum


class CredentialError(str, Enum):
    INVALID_OR_EXPIRED_REFRESH_TOKEN = "invalid_or_expired_refresh_token"
    CREDENTIAL_NOT_FOUND = "credential_not_found"


@dataclass(frozen=True)
class Failure:
    """An expected, non-exceptional failure of a credential operation."""

    error: CredentialError
    message: str

    def __bool__(self) -> bool:
        return False


INVALID_OR_EXPIRED_REFRESH_TOKEN = Failure(
    CredentialError.INVALID_OR_EXPIRED_REFRESH_TOKEN,
    "Invalid or expired refresh token",
)

CREDENTIAL_NOT_FOUND = Failure(
    CredentialError.CREDENTIAL_NOT_FOUND,
    "Device token not found or already revoked",
)


class CredentialStoreError(Exception):
    """A storage failure that aborted a credential transaction."""


class CredentialCompromiseCascadeFailed(CredentialStoreError):
    """Revoking every credential of a user failed; nothing was revoked."""

    def __init__(self, user_id: int):
        super().__init__(f"Failed to revoke credentials for user_id={user_id}")
        self.user_id = user_id


class UserAlreadyExists(Exception):
    """A user with the same username or email is already registered."""
