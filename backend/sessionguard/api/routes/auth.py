"""Authentication routes with refresh token support.

Exposes endpoints for issuing and rotating access/refresh token pairs and
for revoking them per token, per session or for all user sessions.

Endpoints:
    - POST /auth/register: Create a user and issue a token pair
    - POST /auth/token: Login (returns access + refresh tokens)
    - POST /auth/refresh: Exchange a refresh token for a new pair
    - POST /auth/revoke: Revoke a refresh token and its access token
    - POST /auth/logout: Revoke the current session
    - POST /auth/logout-all: Revoke all sessions of the current user
    - POST /auth/password: Change password, revoking all sessions
"""

from typing import Annotated

from api.deps import get_revocation_cascade, get_token_issuer, get_token_rotator
from core.auth_helper import get_current_active_user, get_current_session
from core.device_info import get_device_fingerprint
from core.errors import (
    CredentialCompromiseCascadeFailed,
    Failure,
    UserAlreadyExists,
)
from core.logging import logger
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from schemas.auth import (
    AuthenticatedSession,
    LoginResponse,
    PasswordChange,
    TokenRefresh,
    TokenResponse,
    User,
    UserCreate,
    UserInDB,
)
from schemas.devices import DeviceFingerprint
from services.accounts import authenticate_user, change_password, create_user
from services.revocation import RevocationCascade
from services.token_issuer import TokenIssuer
from services.token_rotator import TokenRotator

router = APIRouter(prefix="/auth", tags=["auth"])

TOKEN_NAME = "auth_token"


@router.post(
    "/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED
)
async def register(
    data: UserCreate,
    issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
    fingerprint: Annotated[DeviceFingerprint | None, Depends(get_device_fingerprint)],
):
    """Create a user account and log it in.

    Raises:
        HTTPException: 409 if the username or email is already registered.
    """
    try:
        user = await create_user(data)
    except UserAlreadyExists:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Username or email already registered",
        )

    pair = await issuer.issue(user.id, TOKEN_NAME, ["*"], fingerprint)
    return TokenResponse.from_pair(pair)


@router.post("/token", response_model=LoginResponse)
async def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
    fingerprint: Annotated[DeviceFingerprint | None, Depends(get_device_fingerprint)],
):
    """Authenticate user and issue access + refresh tokens.

    The response flags logins that look anomalous compared to the user's
    previous sessions (new country or new kind of device).

    Raises:
        HTTPException: If authentication fails.
    """
    user = await authenticate_user(form_data.username, form_data.password)
    if not user:
        logger.warning("Failed login attempt for username={}", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    pair = await issuer.issue(user.id, TOKEN_NAME, ["*"], fingerprint)
    logger.info("User {} logged in", user.username)
    return LoginResponse(
        **TokenResponse.from_pair(pair).model_dump(),
        is_suspicious_login=pair.is_suspicious,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh_access_token(
    body: TokenRefresh,
    rotator: Annotated[TokenRotator, Depends(get_token_rotator)],
    fingerprint: Annotated[DeviceFingerprint | None, Depends(get_device_fingerprint)],
):
    """Exchange a refresh token for a new access/refresh pair.

    The presented refresh token is consumed; presenting it again fails.

    Raises:
        HTTPException: 401 if the refresh token is invalid, revoked or expired.
    """
    result = await rotator.rotate(body.refresh_token, TOKEN_NAME, ["*"], fingerprint)
    if isinstance(result, Failure):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TokenResponse.from_pair(result)


@router.post("/revoke")
async def revoke_token(
    body: TokenRefresh,
    current_user: Annotated[UserInDB, Depends(get_current_active_user)],
    cascade: Annotated[RevocationCascade, Depends(get_revocation_cascade)],
):
    """Revoke a refresh token together with its access token.

    Raises:
        HTTPException: 400 if the token is unknown or already revoked.
    """
    if not await cascade.revoke(body.refresh_token):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid refresh token"
        )
    logger.info("User id={} revoked a refresh token", current_user.id)
    return {"message": "Token revoked successfully"}


@router.post("/logout")
async def logout(
    session: Annotated[AuthenticatedSession, Depends(get_current_session)],
    cascade: Annotated[RevocationCascade, Depends(get_revocation_cascade)],
):
    """Revoke the session used for this request (both tokens of the pair)."""
    await cascade.revoke_device(session.user.id, session.session_id)
    logger.info("User id={} logged out session={}", session.user.id, session.session_id)
    return {"message": "Successfully logged out"}


@router.post("/logout-all")
async def logout_all_devices(
    current_user: Annotated[UserInDB, Depends(get_current_active_user)],
    cascade: Annotated[RevocationCascade, Depends(get_revocation_cascade)],
):
    """Revoke all tokens of the current user (logout everywhere).

    Useful when a user suspects account compromise or wants to force
    re-authentication on all devices.
    """
    try:
        await cascade.on_credential_compromise(current_user.id)
    except CredentialCompromiseCascadeFailed:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not revoke sessions",
        )
    return {"message": "Successfully logged out from all devices"}


@router.post("/password")
async def update_password(
    body: PasswordChange,
    current_user: Annotated[UserInDB, Depends(get_current_active_user)],
    cascade: Annotated[RevocationCascade, Depends(get_revocation_cascade)],
):
    """Change the current user's password and revoke every session.

    Raises:
        HTTPException: 400 if the current password is wrong.
    """
    try:
        changed = await change_password(
            current_user, body.current_password, body.new_password, cascade
        )
    except CredentialCompromiseCascadeFailed:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not change password",
        )
    if not changed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect",
        )
    return {"message": "Password changed, all sessions revoked"}


@router.get("/users/me/", response_model=User)
async def read_users_me(
    current_user: Annotated[UserInDB, Depends(get_current_active_user)],
):
    """Return the current authenticated user's information."""

    return current_user
