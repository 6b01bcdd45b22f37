from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from socialgraph.models.base import generate_uuid, utcnow
from socialgraph.models.suggestion import Suggestion
from socialgraph.models.user import User
from socialgraph.schemas.suggestion import SuggestionCandidate, SuggestionStatus

_INSERT_BUILDERS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SuggestionRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert_ignore(self, candidates: Iterable[SuggestionCandidate]) -> int:
        """Insert candidates, silently skipping pairs that already have a row"""
        now = utcnow()
        rows: List[Dict[str, Any]] = [
            {
                "id": generate_uuid(),
                "user_email": c.user_email,
                "suggested_user_email": c.suggested_user_email,
                "source": c.source.value,
                "status": SuggestionStatus.ACTIVE.value,
                "reason": c.reason,
                "mutual_friends_count": c.mutual_friends_count,
                "priority": c.priority,
                "metadata": c.metadata,
                "created_at": now,
                "updated_at": now,
            }
            for c in candidates
        ]
        if not rows:
            return 0
        dialect = self.db.get_bind().dialect.name
        builder = _INSERT_BUILDERS.get(dialect)
        if builder is None:
            raise NotImplementedError(f"insert-or-ignore is not supported on {dialect}")
        stmt = builder(Suggestion.__table__).values(rows).on_conflict_do_nothing(
            index_elements=["user_email", "suggested_user_email"]
        )
        result = await self.db.execute(stmt)
        return max(result.rowcount or 0, 0)

    async def existing_suggested_emails(self, user_email: str, emails: Iterable[str]) -> Set[str]:
        """Suggested emails that already have a row for ``user_email`` in any status"""
        emails = list(emails)
        if not emails:
            return set()
        stmt = select(Suggestion.suggested_user_email).where(
            Suggestion.user_email == user_email,
            Suggestion.suggested_user_email.in_(emails),
        )
        result = await self.db.execute(stmt)
        return set(result.scalars().all())

    async def get_for_user(self, suggestion_id: str, user_email: str) -> Optional[Suggestion]:
        stmt = select(Suggestion).where(
            Suggestion.id == suggestion_id, Suggestion.user_email == user_email
        ).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_pair(self, user_email: str, suggested_email: str) -> Optional[Suggestion]:
        stmt = select(Suggestion).where(
            Suggestion.user_email == user_email,
            Suggestion.suggested_user_email == suggested_email,
        ).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(
        self,
        user_email: str,
        limit: int,
        cursor: Optional[Tuple[int, datetime, str]] = None,
    ) -> List[Tuple[Suggestion, Optional[User]]]:
        """Active suggestions ordered by mutual count then recency, ``limit + 1`` rows"""
        stmt = (
            select(Suggestion, User)
            .outerjoin(User, User.email == Suggestion.suggested_user_email)
            .where(
                Suggestion.user_email == user_email,
                Suggestion.status == SuggestionStatus.ACTIVE.value,
            )
        )
        if cursor:
            mutual, created_at, row_id = cursor
            stmt = stmt.where(
                or_(
                    Suggestion.mutual_friends_count < mutual,
                    and_(Suggestion.mutual_friends_count == mutual, Suggestion.created_at < created_at),
                    and_(
                        Suggestion.mutual_friends_count == mutual,
                        Suggestion.created_at == created_at,
                        Suggestion.id < row_id,
                    ),
                )
            )
        stmt = stmt.order_by(
            Suggestion.mutual_friends_count.desc(),
            Suggestion.created_at.desc(),
            Suggestion.id.desc(),
        ).limit(limit + 1).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def set_status(
        self, user_email: str, suggested_email: str, status: SuggestionStatus
    ) -> int:
        values = {"status": status.value, "updated_at": utcnow()}
        if status == SuggestionStatus.DISMISSED:
            values["dismissed_at"] = values["updated_at"]
        stmt = (
            update(Suggestion)
            .where(
                Suggestion.user_email == user_email,
                Suggestion.suggested_user_email == suggested_email,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def delete_pair(self, user_email: str, other_email: str) -> int:
        """Delete suggestion rows between two users in both directions"""
        stmt = delete(Suggestion).where(
            or_(
                and_(Suggestion.user_email == user_email, Suggestion.suggested_user_email == other_email),
                and_(Suggestion.user_email == other_email, Suggestion.suggested_user_email == user_email),
            )
        ).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def delete_dismissed_before(self, cutoff: datetime) -> int:
        stmt = delete(Suggestion).where(
            Suggestion.status == SuggestionStatus.DISMISSED.value,
            Suggestion.updated_at < cutoff,
        ).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def count_by_status(self, user_email: str) -> Dict[str, int]:
        stmt = (
            select(Suggestion.status, func.count())
            .where(Suggestion.user_email == user_email)
            .group_by(Suggestion.status)
        )
        result = await self.db.execute(stmt)
        return {status: count for status, count in result.all()}
