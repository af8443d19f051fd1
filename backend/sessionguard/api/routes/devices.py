"""Device session routes: list active sessions and revoke one of them."""

from typing import Annotated

from api.deps import get_device_registry, get_revocation_cascade
from core.auth_helper import get_current_session
from core.errors import CREDENTIAL_NOT_FOUND
from core.logging import logger
from fastapi import APIRouter, Depends, HTTPException, status
from schemas.auth import AuthenticatedSession
from schemas.devices import DeviceListResponse
from services.device_registry import DeviceRegistry
from services.revocation import RevocationCascade

router = APIRouter(prefix="/devices", tags=["devices"])


@router.get("", response_model=DeviceListResponse)
async def list_devices(
    session: Annotated[AuthenticatedSession, Depends(get_current_session)],
    registry: Annotated[DeviceRegistry, Depends(get_device_registry)],
):
    """Return the active sessions of the current user, most recent first."""
    devices = await registry.list_sessions(session.user.id)
    return DeviceListResponse(devices=devices, current_device_id=session.session_id)


@router.delete("/{device_id}")
async def revoke_device(
    device_id: int,
    session: Annotated[AuthenticatedSession, Depends(get_current_session)],
    cascade: Annotated[RevocationCascade, Depends(get_revocation_cascade)],
):
    """Revoke another session of the current user.

    Raises:
        HTTPException: 400 for the calling session (use logout instead),
            404 if the session does not exist or is already revoked.
    """
    if device_id == session.session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot revoke the current device token. Use logout instead.",
        )

    if not await cascade.revoke_device(session.user.id, device_id):
        logger.info(
            "Device revoke miss user_id={} device_id={}", session.user.id, device_id
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=CREDENTIAL_NOT_FOUND.message
        )
    return {"message": "Device token revoked successfully"}
