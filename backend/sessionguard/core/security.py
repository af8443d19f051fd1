"""Token and password primitives.

Access tokens are signed JWTs that name the access token row they belong to
(`sid`) and carry a random `jti`. Refresh tokens are opaque random strings.
For both, the database only ever holds a keyed hash, so a leaked table does
not yield usable credentials.
"""

import hashlib
import hmac
import secrets
from datetime import datetime, timezone

import jwt
from config.config import settings
from jwt.exceptions import InvalidTokenError
from pwdlib import PasswordHash
from schemas.auth import TokenData

password_hash = PasswordHash.recommended()

# 64 bytes of randomness, 512 bits.
REFRESH_TOKEN_BYTES = 64


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from databases without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def verify_password(plain_password, hashed_password):
    """Verify a plain password against a stored hash.

    Args:
        plain_password: The clear-text password provided by the user.
        hashed_password: The stored password hash to verify against.

    Returns:
        bool: True if the password matches, False otherwise.
    """
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password):
    """Hash a plain password using the recommended algorithm."""
    return password_hash.hash(password)


def generate_refresh_secret() -> str:
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


def generate_jti() -> str:
    return secrets.token_urlsafe(32)


def hash_token(value: str) -> str:
    """Return the HMAC-SHA256 of `value` keyed with the application secret.

    The digest is deterministic so it can be looked up through a unique
    index.
    """
    return hmac.new(
        settings.SECRET_KEY.encode(), value.encode(), hashlib.sha256
    ).hexdigest()


def token_hash_matches(value: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_token(value), stored_hash)


def create_access_token(
    user_id: int,
    session_id: int,
    jti: str,
    name: str,
    abilities: list[str],
    issued_at: datetime,
    expires_at: datetime,
) -> str:
    """Create a signed access token for the access token row `session_id`.

    Returns:
        str: Encoded JWT access token.
    """
    to_encode = {
        "sub": str(user_id),
        "sid": session_id,
        "jti": jti,
        "name": name,
        "abilities": list(abilities),
        "token_type": "access",
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str, verify_exp: bool = True) -> TokenData | None:
    """Decode and validate an access token.

    Args:
        token: The encoded JWT presented by the client.
        verify_exp: Reject tokens whose `exp` has passed.

    Returns:
        TokenData | None: The token claims, or None when the token is malformed,
            badly signed, expired or not an access token.
    """
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_exp": verify_exp},
        )
    except InvalidTokenError:
        return None

    if payload.get("token_type") != "access":
        return None
    try:
        return TokenData(
            user_id=int(payload["sub"]),
            session_id=int(payload["sid"]),
            jti=payload["jti"],
            name=payload.get("name", ""),
            abilities=payload.get("abilities") or ["*"],
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError):
        return None
