from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from talentpipe.models.user import User


@dataclass(frozen=True)
class UserRef:
    id: int
    full_name: str
    email: str


class UserDirectory:
    """Read-only lookup of interviewer identities."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_user(self, user_id: int | None) -> Optional[UserRef]:
        if user_id is None:
            return None
        row = (
            await self._session.execute(
                select(User.user_id, User.full_name, User.email).where(
                    User.user_id == user_id,
                    User.is_active.is_(True),
                )
            )
        ).first()
        if not row:
            return None
        return UserRef(id=row.user_id, full_name=(row.full_name or row.email).strip(), email=row.email)
