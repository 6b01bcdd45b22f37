from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import and_, delete, func, or_, select
from typing import Dict, Iterable, List, Optional, Set, Tuple

from socialgraph.models.relationship import Relationship
from socialgraph.models.user import User
from socialgraph.schemas.relationship import RelationshipStatus

SYNC_MESSAGE_PATTERN = "Auto-connected via %sync"


class RelationshipRepository:
    """Queries over directed relationship rows.

    Write methods only flush; the calling service owns the transaction so that
    both rows of a pair commit or roll back together.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, relationship_id: str) -> Optional[Relationship]:
        stmt = select(Relationship).where(Relationship.id == relationship_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_pair(self, owner_email: str, peer_email: str, lock: bool = False) -> Optional[Relationship]:
        """Get the row owned by ``owner_email`` pointing at ``peer_email``"""
        stmt = select(Relationship).where(
            and_(Relationship.owner_email == owner_email, Relationship.peer_email == peer_email)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def lock_pair(
        self, user_email: str, other_email: str
    ) -> Tuple[Optional[Relationship], Optional[Relationship]]:
        """Lock both directed rows, always in lexicographic order.

        Returns ``(user -> other, other -> user)`` regardless of lock order.
        """
        first, second = sorted([user_email, other_email])
        rows = {}
        rows[(first, second)] = await self.get_pair(first, second, lock=True)
        rows[(second, first)] = await self.get_pair(second, first, lock=True)
        return rows[(user_email, other_email)], rows[(other_email, user_email)]

    async def get_bidirectional(
        self, user_email: str, other_email: str
    ) -> Tuple[Optional[Relationship], Optional[Relationship]]:
        """Both directions of a pair in a single round trip"""
        stmt = select(Relationship).where(
            or_(
                and_(Relationship.owner_email == user_email, Relationship.peer_email == other_email),
                and_(Relationship.owner_email == other_email, Relationship.peer_email == user_email),
            )
        )
        result = await self.db.execute(stmt)
        forward = reverse = None
        for row in result.scalars().all():
            if row.owner_email == user_email:
                forward = row
            else:
                reverse = row
        return forward, reverse

    async def create(
        self,
        owner_email: str,
        peer_email: str,
        status: RelationshipStatus,
        initiated_by: str,
        message: Optional[str] = None,
        accepted_at: Optional[datetime] = None,
    ) -> Relationship:
        relationship = Relationship(
            owner_email=owner_email,
            peer_email=peer_email,
            status=status.value,
            initiated_by=initiated_by,
            message=message,
            accepted_at=accepted_at,
        )
        self.db.add(relationship)
        await self.db.flush()
        return relationship

    async def related_emails(self, user_email: str, emails: Iterable[str]) -> Set[str]:
        """Emails from ``emails`` having a row with ``user_email`` in either direction"""
        emails = list(emails)
        if not emails:
            return set()
        stmt = select(Relationship.owner_email, Relationship.peer_email).where(
            or_(
                and_(Relationship.owner_email == user_email, Relationship.peer_email.in_(emails)),
                and_(Relationship.peer_email == user_email, Relationship.owner_email.in_(emails)),
            )
        )
        result = await self.db.execute(stmt)
        related = set()
        for owner, peer in result.all():
            related.add(peer if owner == user_email else owner)
        return related

    def _keyset(self, cursor: Tuple[datetime, str]):
        created_at, row_id = cursor
        return or_(
            Relationship.created_at < created_at,
            and_(Relationship.created_at == created_at, Relationship.id < row_id),
        )

    async def list_friends(
        self,
        user_email: str,
        limit: int,
        cursor: Optional[Tuple[datetime, str]] = None,
        search: Optional[str] = None,
    ) -> List[Tuple[Relationship, Optional[User]]]:
        """Accepted rows owned by the user joined to the friend's profile.

        Fetches ``limit + 1`` rows so callers can detect a next page.
        """
        stmt = (
            select(Relationship, User)
            .outerjoin(User, User.email == Relationship.peer_email)
            .where(
                Relationship.owner_email == user_email,
                Relationship.status == RelationshipStatus.ACCEPTED.value,
            )
        )
        if search:
            pattern = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(Relationship.peer_email).like(pattern),
                    func.lower(User.name).like(pattern),
                )
            )
        if cursor:
            stmt = stmt.where(self._keyset(cursor))
        stmt = stmt.order_by(Relationship.created_at.desc(), Relationship.id.desc()).limit(limit + 1)
        result = await self.db.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def list_received_requests(
        self,
        user_email: str,
        limit: int,
        cursor: Optional[Tuple[datetime, str]] = None,
    ) -> List[Tuple[Relationship, Optional[User]]]:
        """Pending rows addressed to the user, joined to the sender's profile"""
        stmt = (
            select(Relationship, User)
            .outerjoin(User, User.email == Relationship.owner_email)
            .where(
                Relationship.peer_email == user_email,
                Relationship.status == RelationshipStatus.PENDING.value,
            )
        )
        if cursor:
            stmt = stmt.where(self._keyset(cursor))
        stmt = stmt.order_by(Relationship.created_at.desc(), Relationship.id.desc()).limit(limit + 1)
        result = await self.db.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def count_by_status(self, user_email: str) -> Dict[str, int]:
        stmt = (
            select(Relationship.status, func.count())
            .where(Relationship.owner_email == user_email)
            .group_by(Relationship.status)
        )
        result = await self.db.execute(stmt)
        return {status: count for status, count in result.all()}

    async def find_sync_history(
        self, user_email: str, limit: int = 50, platform: Optional[str] = None
    ) -> List[Relationship]:
        pattern = SYNC_MESSAGE_PATTERN if not platform else f"Auto-connected via {platform} sync"
        stmt = (
            select(Relationship)
            .where(Relationship.owner_email == user_email, Relationship.message.like(pattern))
            .order_by(Relationship.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def delete_rejected_before(self, cutoff: datetime) -> int:
        stmt = delete(Relationship).where(
            Relationship.status == RelationshipStatus.REJECTED.value,
            Relationship.updated_at < cutoff,
        ).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        return result.rowcount or 0
