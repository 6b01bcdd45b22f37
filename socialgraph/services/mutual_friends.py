import logging
from typing import Dict, Iterable, List, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from socialgraph.models.relationship import Relationship
from socialgraph.models.user import User
from socialgraph.schemas.relationship import MutualFriends, RelationshipStatus
from socialgraph.utils.exceptions import MutualFriendsCalculationError
from socialgraph.utils.validators import normalize_email, unique_emails

logger = logging.getLogger(__name__)

ACCEPTED = RelationshipStatus.ACCEPTED.value


class MutualFriendsCalculator:
    """Common accepted neighbours of two accounts, computed as one self-join"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def calculate(self, user_email: str, other_email: str) -> MutualFriends:
        user = normalize_email(user_email)
        other = normalize_email(other_email)
        mine = aliased(Relationship)
        theirs = aliased(Relationship)
        stmt = (
            select(mine.peer_email, User.id, User.name)
            .join(theirs, and_(theirs.peer_email == mine.peer_email, theirs.owner_email == other))
            .outerjoin(User, User.email == mine.peer_email)
            .where(
                mine.owner_email == user,
                mine.status == ACCEPTED,
                theirs.status == ACCEPTED,
                mine.peer_email.notin_([user, other]),
            )
            .order_by(mine.peer_email)
        )
        try:
            result = await self.db.execute(stmt)
            rows = result.all()
        except SQLAlchemyError as e:
            logger.error(f"Mutual friends query failed for {user} / {other}: {e}")
            raise MutualFriendsCalculationError(user, other, str(e)) from e
        return self._build(rows)

    async def batch_calculate(self, user_email: str, other_emails: Iterable[str]) -> Dict[str, MutualFriends]:
        """Mutual friends for many targets in one query.

        Every requested email is present in the result, with a zero count when
        nothing is shared.
        """
        user = normalize_email(user_email)
        others = unique_emails(other_emails)
        results: Dict[str, MutualFriends] = {email: MutualFriends() for email in others}
        if not others:
            return results

        mine = aliased(Relationship)
        theirs = aliased(Relationship)
        stmt = (
            select(theirs.owner_email, mine.peer_email, User.id, User.name)
            .join(theirs, theirs.peer_email == mine.peer_email)
            .outerjoin(User, User.email == mine.peer_email)
            .where(
                mine.owner_email == user,
                mine.status == ACCEPTED,
                theirs.status == ACCEPTED,
                theirs.owner_email.in_(others),
                mine.peer_email != user,
                mine.peer_email != theirs.owner_email,
            )
            .order_by(theirs.owner_email, mine.peer_email)
        )
        try:
            result = await self.db.execute(stmt)
            rows = result.all()
        except SQLAlchemyError as e:
            key = f"batch[{len(others)}]"
            logger.error(f"Batch mutual friends query failed for {user} / {key}: {e}")
            raise MutualFriendsCalculationError(user, key, str(e)) from e

        grouped: Dict[str, List[Tuple]] = {}
        for owner, peer, friend_id, name in rows:
            grouped.setdefault(owner, []).append((peer, friend_id, name))
        for owner, friend_rows in grouped.items():
            results[owner] = self._build(friend_rows)
        return results

    async def friends_of_friends(
        self, user_email: str, min_mutual: int = 1, limit: int = 50
    ) -> List[Tuple[str, int]]:
        """Accounts two hops away ranked by how many friends they share with the user"""
        user = normalize_email(user_email)
        mine = aliased(Relationship)
        theirs = aliased(Relationship)
        shared = func.count(mine.peer_email).label("shared")
        stmt = (
            select(theirs.peer_email, shared)
            .join(theirs, theirs.owner_email == mine.peer_email)
            .where(
                mine.owner_email == user,
                mine.status == ACCEPTED,
                theirs.status == ACCEPTED,
                theirs.peer_email != user,
            )
            .group_by(theirs.peer_email)
            .having(func.count(mine.peer_email) >= min_mutual)
            .order_by(shared.desc(), theirs.peer_email)
            .limit(limit)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise MutualFriendsCalculationError(user, "friends_of_friends", str(e)) from e
        return [(email, count) for email, count in result.all()]

    @staticmethod
    def _build(rows: Iterable[Tuple]) -> MutualFriends:
        mutual = MutualFriends()
        for email, friend_id, name in rows:
            mutual.friend_emails.append(email)
            mutual.friend_names.append(name or email.split("@")[0])
            if friend_id:
                mutual.friend_ids.append(friend_id)
        mutual.count = len(mutual.friend_emails)
        return mutual
