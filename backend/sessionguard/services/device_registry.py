"""Read-only listing of a user's active device sessions."""

from collections.abc import Callable
from datetime import datetime

from core.security import utcnow
from models.auth import AccessToken
from schemas.devices import SessionSummary
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class DeviceRegistry:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock

    async def list_sessions(self, user_id: int) -> list[SessionSummary]:
        """Return the unexpired sessions of `user_id`, most recently used first."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(AccessToken)
                .filter(
                    AccessToken.user_id == user_id,
                    AccessToken.expires_at > self.clock(),
                )
                .order_by(
                    AccessToken.last_used_at.desc().nulls_last(),
                    AccessToken.id.desc(),
                )
            )
            return [
                SessionSummary.model_validate(token)
                for token in result.scalars().all()
            ]
