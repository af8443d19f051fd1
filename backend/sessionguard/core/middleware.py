"""Opportunistic refresh of access tokens that are about to expire.

When an authenticated request also carries `X-Refresh-Token` and its access
token expires within `REFRESH_THRESHOLD_MINUTES`, the refresh token is
rotated after the request has been handled and the new credentials are
returned in response headers. Rotation failures, including storage errors,
leave the response as is.
"""

from datetime import timedelta

from api.deps import resolve_token_rotator
from config.config import settings
from core.device_info import get_device_fingerprint
from core.errors import Failure
from core.logging import logger
from core.security import decode_access_token, utcnow
from fastapi import Request
from services.token_rotator import should_rotate
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

REFRESH_HEADER = "X-Refresh-Token"


def _bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization")
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


class RefreshTokenMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        refresh_token = request.headers.get(REFRESH_HEADER)
        access_token = _bearer_token(request)
        if not refresh_token or not access_token or response.status_code >= 400:
            return response

        claims = decode_access_token(access_token)
        if claims is None:
            return response
        threshold = timedelta(minutes=settings.REFRESH_THRESHOLD_MINUTES)
        if not should_rotate(claims.expires_at, utcnow(), threshold):
            return response

        rotator = resolve_token_rotator(request.app.dependency_overrides)
        try:
            result = await rotator.rotate(
                refresh_token,
                claims.name,
                claims.abilities,
                get_device_fingerprint(request),
                expected_user_id=claims.user_id,
            )
        except SQLAlchemyError:
            logger.exception(
                "Pre-expiry rotation failed for user_id={}", claims.user_id
            )
            return response
        if isinstance(result, Failure):
            logger.info("Skipped pre-expiry rotation: {}", result.message)
            return response

        response.headers["X-New-Access-Token"] = result.access_token
        response.headers["X-New-Refresh-Token"] = result.refresh_token
        response.headers["X-Token-Expiration"] = result.expires_at.isoformat()
        logger.info("Rotated expiring access token for user_id={}", claims.user_id)
        return response
