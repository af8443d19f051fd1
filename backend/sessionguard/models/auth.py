"""Authentication models: users, access tokens and refresh tokens.

An access token row doubles as a device session: it carries the device
fingerprint and location captured when it was issued. Each access token is
paired with exactly one refresh token at issuance time.
"""

from db.session import Base
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func


class User(Base):
    """Database model representing an application user.

    Attributes:
        id: Primary key.
        username: Unique login name.
        email: User email.
        full_name: Full display name.
        disabled: Whether the account is disabled.
        hashed_password: Password hash.
        created_at: Account creation timestamp.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False, unique=True)
    email = Column(String, nullable=False, unique=True)
    full_name = Column(String, nullable=False)
    disabled = Column(Boolean, nullable=False, default=False)
    hashed_password = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AccessToken(Base):
    """A short-lived access token and the device session it represents.

    Only a keyed hash of the token's `jti` claim is stored; the signed token
    itself is handed to the client once and never persisted.

    Attributes:
        id: Primary key, also the `sid` claim of the issued token.
        user_id: Foreign key to `users.id`.
        name: Client/purpose label the token was issued for.
        abilities: List of permission scopes.
        token_hash: Keyed hash of the token's `jti`.
        expires_at: Expiration timestamp.
        created_at: Issuance timestamp.
        last_used_at: Timestamp of the last authenticated request.
        ip_address .. platform_version: Device fingerprint snapshot.
        device: One of Desktop, Phone, Tablet, Unknown.
        location: Human readable location resolved from the IP.
        country_code: Country resolved from the IP.
        is_suspicious: Suspicious-login verdict computed at issuance.
    """

    __tablename__ = "personal_access_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String, nullable=False)
    abilities = Column(JSON, nullable=False, default=lambda: ["*"])
    token_hash = Column(String(64), unique=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_used_at = Column(DateTime(timezone=True), nullable=True)

    # NOTE: Device fingerprint; all nullable since a fingerprint is optional.
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    browser = Column(String, nullable=True)
    browser_version = Column(String, nullable=True)
    platform = Column(String, nullable=True)
    platform_version = Column(String, nullable=True)
    device = Column(String, nullable=True)
    location = Column(String, nullable=True)
    country_code = Column(String(16), nullable=True)
    is_suspicious = Column(Boolean, default=False, nullable=False)

    user = relationship("User", backref="access_tokens")


class RefreshToken(Base):
    """A long-lived, single-use refresh token.

    Attributes:
        id: Primary key.
        user_id: Foreign key to `users.id`.
        token_hash: Keyed hash of the refresh secret.
        access_token_id: The sibling access token; cleared when it is deleted.
        expires_at: Expiration timestamp.
        revoked: Set once, never cleared.
        created_at: Issuance timestamp.
    """

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    access_token_id = Column(
        Integer,
        ForeignKey("personal_access_tokens.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", backref="refresh_tokens")
