"""Suspicious login detection.

A login is suspicious when it comes from a different country than the
user's most recently used session with a known country, or, in the same
country, from a different kind of device.
"""

from models.auth import AccessToken
from schemas.devices import DeviceClass, DeviceFingerprint, GeoLocation, SessionSummary
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


def classify(
    prior: SessionSummary | None,
    fingerprint: DeviceFingerprint,
    location: GeoLocation | None,
) -> bool:
    """Return True when a new login looks anomalous against `prior`.

    Args:
        prior: The user's most recently used session with a known country,
            or None when there is no such session.
        fingerprint: Device fingerprint of the new login.
        location: Location resolved for the new login, None when unknown.
    """
    if prior is None or not prior.country_code:
        return False
    if location is None or not location.country_code:
        return False

    if prior.country_code != location.country_code:
        return True

    prior_device = prior.device or DeviceClass.UNKNOWN
    current_device = fingerprint.device_class
    if (
        prior_device != DeviceClass.UNKNOWN
        and current_device != DeviceClass.UNKNOWN
        and prior_device != current_device
    ):
        return True

    return False


async def find_prior_session(db: AsyncSession, user_id: int) -> SessionSummary | None:
    """Return the most recently used session of `user_id` with a known country."""
    result = await db.execute(
        select(AccessToken)
        .filter(
            AccessToken.user_id == user_id,
            AccessToken.country_code.is_not(None),
        )
        .order_by(AccessToken.last_used_at.desc().nulls_last(), AccessToken.id.desc())
        .limit(1)
    )
    token = result.scalars().first()
    if token is None:
        return None
    return SessionSummary.model_validate(token)
