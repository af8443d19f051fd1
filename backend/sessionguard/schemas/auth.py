"""Pydantic schemas for authentication endpoints.

Includes credential pair shapes, token request bodies and user models used
by the authentication routes.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class CredentialPair(BaseModel):
    """A freshly issued access/refresh pair.

    The plaintext tokens exist only in this object; storage keeps hashes.
    """

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_at: datetime
    refresh_expires_at: datetime
    access_token_id: int
    is_suspicious: bool = False


class TokenResponse(BaseModel):
    """Credential pair as returned to clients."""

    access_token: str
    refresh_token: str
    token_type: str
    expires_at: datetime

    @classmethod
    def from_pair(cls, pair: CredentialPair) -> "TokenResponse":
        return cls(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            token_type=pair.token_type,
            expires_at=pair.expires_at,
        )


class LoginResponse(TokenResponse):
    """Login result, flagged when the login looks anomalous."""

    is_suspicious_login: bool = False


class TokenRefresh(BaseModel):
    """Request body carrying a refresh token (refresh and revoke)."""

    refresh_token: str = Field(min_length=1)


class TokenData(BaseModel):
    """Claims extracted from a decoded access token.

    Attributes:
        user_id: Subject (user id) from the token.
        session_id: Id of the access token row (`sid` claim).
        jti: Unique token id whose hash is stored on the row.
        name: Label the token was issued for.
        abilities: Permission scopes.
        expires_at: Expiry from the `exp` claim.
    """

    user_id: int
    session_id: int
    jti: str
    name: str
    abilities: list[str] = ["*"]
    expires_at: datetime


class User(BaseModel):
    """Public user representation returned by the API."""

    username: str
    email: str | None = None
    full_name: str | None = None
    disabled: bool | None = None


class UserCreate(User):
    """Request body for creating a new user."""

    email: str
    full_name: str
    password: str = Field(min_length=8)


class PasswordChange(BaseModel):
    """Request body for changing the current user's password."""

    current_password: str
    new_password: str = Field(min_length=8)


class UserInDB(User):
    """Internal user model including DB-only fields."""

    id: int
    hashed_password: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class AuthenticatedSession(BaseModel):
    """The user and access token behind an authenticated request."""

    user: UserInDB
    session_id: int
    name: str
    abilities: list[str]
    expires_at: datetime
