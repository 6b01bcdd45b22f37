from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from socialgraph.models.user import User


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        query = select(User).where(User.id == user_id, User.is_active.is_(True))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email"""
        query = select(User).where(User.email == email, User.is_active.is_(True))
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_emails(self, emails: Sequence[str]) -> List[User]:
        """Get active users for many emails in one query"""
        if not emails:
            return []
        query = select(User).where(User.email.in_(list(emails)), User.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_by_phones(self, phones: Sequence[str]) -> List[User]:
        """Get active users whose verified phone number is in ``phones``"""
        if not phones:
            return []
        query = select(User).where(
            User.phone_number.in_(list(phones)),
            User.phone_verified.is_(True),
            User.is_active.is_(True),
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())
