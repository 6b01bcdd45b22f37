import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from socialgraph.core.config import SocialConfig
from socialgraph.models.base import utcnow
from socialgraph.models.relationship import Relationship
from socialgraph.repositories.relationship import RelationshipRepository
from socialgraph.schemas.relationship import (
    AutoAcceptResult, BidirectionalStatus, FriendItem, FriendRequestResult, FriendsPage,
    RelationshipStatus, RequestActionResult, RequestItem, RequestsPage,
)
from socialgraph.services.directory import UserDirectory
from socialgraph.utils.exceptions import (
    AlreadyRelatedError, InvalidEmailError, InvariantViolationError,
    RelationshipActionNotAllowedError, RequestNotFoundError, SelfRequestError,
    TargetNotFoundError,
)
from socialgraph.utils.pagination import (
    clamp_limit, decode_cursor, encode_cursor, parse_cursor_datetime,
)
from socialgraph.utils.validators import is_valid_email, normalize_email

logger = logging.getLogger(__name__)

IN_FLIGHT = (RelationshipStatus.PENDING, RelationshipStatus.RECEIVED)


def _status(row: Optional[Relationship]) -> Optional[RelationshipStatus]:
    return RelationshipStatus(row.status) if row is not None else None


class RelationshipService:
    """Relationship engine.

    Every pair is two directed rows that move together. Writes lock both rows
    (lexicographic order) and commit once, so a reader never sees one side of
    a transition without the other.
    """

    def __init__(
        self,
        db: AsyncSession,
        directory: Optional[UserDirectory] = None,
        config: Optional[SocialConfig] = None,
        suggestions=None,
    ):
        self.db = db
        self.repo = RelationshipRepository(db)
        self.directory = directory or UserDirectory(db)
        self.config = config or SocialConfig()
        # SuggestionService, notified after request state changes
        self.suggestions = suggestions

    async def send_request(
        self, sender_email: str, target_email: str, message: Optional[str] = None
    ) -> FriendRequestResult:
        """Send a friend request, resurrecting a previously rejected pair"""
        sender = normalize_email(sender_email)
        target = normalize_email(target_email)
        if not is_valid_email(target):
            raise InvalidEmailError(target_email)
        if sender == target:
            raise SelfRequestError(sender)

        if not await self.directory.find_by_email(target):
            raise TargetNotFoundError(target)

        resurrected = False
        try:
            forward, reverse = await self.repo.lock_pair(sender, target)
            for row in (forward, reverse):
                if row is not None and row.status != RelationshipStatus.REJECTED:
                    raise AlreadyRelatedError(sender, target, row.status)

            if forward is not None or reverse is not None:
                resurrected = True
                forward = await self._reset(forward, sender, target, RelationshipStatus.PENDING, sender, message)
                reverse = await self._reset(reverse, target, sender, RelationshipStatus.RECEIVED, sender, message)
            else:
                forward = await self.repo.create(sender, target, RelationshipStatus.PENDING, sender, message)
                reverse = await self.repo.create(target, sender, RelationshipStatus.RECEIVED, sender, message)

            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"Concurrent request detected between {sender} and {target}")
            raise AlreadyRelatedError(sender, target, RelationshipStatus.PENDING.value)
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Friend request {forward.id} sent from {sender} to {target} (resurrected={resurrected})")
        if self.suggestions is not None:
            try:
                await self.suggestions.on_friend_request_sent(sender, target, resurrected=resurrected)
            except Exception as e:
                logger.warning(f"Suggestion update after request {forward.id} failed: {e}")

        return FriendRequestResult(
            message="Friend request sent",
            request_id=forward.id,
            resurrected=resurrected,
        )

    async def _reset(
        self,
        row: Optional[Relationship],
        owner: str,
        peer: str,
        status: RelationshipStatus,
        initiated_by: str,
        message: Optional[str],
    ) -> Relationship:
        if row is None:
            return await self.repo.create(owner, peer, status, initiated_by, message)
        row.status = status.value
        row.initiated_by = initiated_by
        row.message = message
        row.accepted_at = None
        row.blocked_at = None
        row.updated_at = utcnow()
        return row

    async def _load_pending_request(self, request_id: str, recipient: str) -> Tuple[Relationship, Relationship]:
        """Find a pending request addressed to ``recipient`` and lock both rows.

        The row must match by id AND have the caller as its peer, so a guessed id
        cannot act on somebody else's request.
        """
        row = await self.repo.get_by_id(request_id)
        if row is None or row.peer_email != recipient or row.status != RelationshipStatus.PENDING:
            raise RequestNotFoundError(request_id)

        request_row, mirror = await self.repo.lock_pair(row.owner_email, recipient)
        if request_row is None or request_row.id != request_id or request_row.status != RelationshipStatus.PENDING:
            # lost a race with another accept/reject
            raise RequestNotFoundError(request_id)
        if mirror is None or mirror.status != RelationshipStatus.RECEIVED:
            logger.error(
                f"Mirror row mismatch for request {request_id}: "
                f"{recipient}->{row.owner_email} is {mirror.status if mirror else None}"
            )
            raise InvariantViolationError(
                "Mirror row does not match pending request",
                {"request_id": request_id, "mirror_status": mirror.status if mirror else None},
            )
        return request_row, mirror

    async def accept_request(self, accepter_email: str, request_id: str) -> RequestActionResult:
        """Accept a pending request; both rows become ACCEPTED together"""
        accepter = normalize_email(accepter_email)
        try:
            request_row, mirror = await self._load_pending_request(request_id, accepter)
            accepted_at = utcnow()
            for row in (request_row, mirror):
                row.status = RelationshipStatus.ACCEPTED.value
                row.accepted_at = accepted_at
                row.initiated_by = accepter
                row.updated_at = accepted_at
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Friend request {request_id} accepted by {accepter}")
        if self.suggestions is not None:
            try:
                await self.suggestions.clear_pair(accepter, request_row.owner_email)
            except Exception as e:
                logger.warning(f"Suggestion cleanup after accepting {request_id} failed: {e}")

        return RequestActionResult(
            message="Friend request accepted",
            request_id=request_id,
            status=RelationshipStatus.ACCEPTED,
        )

    async def reject_request(self, rejecter_email: str, request_id: str) -> RequestActionResult:
        """Reject a pending request; rejecting anything else is RequestNotFound"""
        rejecter = normalize_email(rejecter_email)
        try:
            request_row, mirror = await self._load_pending_request(request_id, rejecter)
            now = utcnow()
            for row in (request_row, mirror):
                row.status = RelationshipStatus.REJECTED.value
                row.initiated_by = rejecter
                row.updated_at = now
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Friend request {request_id} rejected by {rejecter}")
        return RequestActionResult(
            message="Friend request rejected",
            request_id=request_id,
            status=RelationshipStatus.REJECTED,
        )

    @staticmethod
    def _auto_accept_verdict(
        forward: Optional[Relationship], reverse: Optional[Relationship]
    ) -> Optional[AutoAcceptResult]:
        statuses = {_status(forward), _status(reverse)}
        if RelationshipStatus.ACCEPTED in statuses:
            return AutoAcceptResult(created=False, message="Already friends")
        if statuses & set(IN_FLIGHT):
            return AutoAcceptResult(created=False, message="Pending request exists")
        if RelationshipStatus.BLOCKED in statuses:
            return AutoAcceptResult(created=False, message="Relationship blocked")
        return None

    async def auto_accept_friendship(
        self, user_email: str, friend_email: str, message: Optional[str] = None
    ) -> AutoAcceptResult:
        """Connect two accounts directly, used by contact sync.

        Never overrides an in-flight manual request or a block.
        """
        user = normalize_email(user_email)
        friend = normalize_email(friend_email)
        if user == friend:
            raise SelfRequestError(user)

        forward, reverse = await self.repo.get_bidirectional(user, friend)
        verdict = self._auto_accept_verdict(forward, reverse)
        if verdict:
            return verdict

        try:
            forward, reverse = await self.repo.lock_pair(user, friend)
            verdict = self._auto_accept_verdict(forward, reverse)
            if verdict:
                await self.db.rollback()
                return verdict

            accepted_at = utcnow()
            forward = await self._accept_row(forward, user, friend, user, message, accepted_at)
            reverse = await self._accept_row(reverse, friend, user, user, message, accepted_at)
            await self.db.commit()
        except IntegrityError:
            # the other side of a concurrent sync won; report what it wrote
            await self.db.rollback()
            forward, reverse = await self.repo.get_bidirectional(user, friend)
            verdict = self._auto_accept_verdict(forward, reverse)
            if verdict is None:
                raise
            return verdict
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Auto-connected {user} and {friend}")
        return AutoAcceptResult(created=True, message="Friendship created", relationship_id=forward.id)

    async def _accept_row(
        self,
        row: Optional[Relationship],
        owner: str,
        peer: str,
        initiated_by: str,
        message: Optional[str],
        accepted_at: datetime,
    ) -> Relationship:
        if row is None:
            return await self.repo.create(
                owner, peer, RelationshipStatus.ACCEPTED, initiated_by, message, accepted_at=accepted_at
            )
        row.status = RelationshipStatus.ACCEPTED.value
        row.initiated_by = initiated_by
        row.message = message
        row.accepted_at = accepted_at
        row.blocked_at = None
        row.updated_at = accepted_at
        return row

    async def block_friend(self, user_email: str, friend_email: str) -> RelationshipStatus:
        """Block an existing friend. Only ACCEPTED pairs can be blocked."""
        user = normalize_email(user_email)
        friend = normalize_email(friend_email)
        if user == friend:
            raise SelfRequestError(user)
        try:
            forward, reverse = await self.repo.lock_pair(user, friend)
            if forward is None or forward.status != RelationshipStatus.ACCEPTED:
                raise RelationshipActionNotAllowedError("block", forward.status if forward else None)
            if reverse is None or reverse.status != RelationshipStatus.ACCEPTED:
                raise InvariantViolationError(
                    "Mirror row does not match accepted friendship",
                    {"user_email": user, "friend_email": friend},
                )
            blocked_at = utcnow()
            for row in (forward, reverse):
                row.status = RelationshipStatus.BLOCKED.value
                row.blocked_at = blocked_at
                row.initiated_by = user
                row.updated_at = blocked_at
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"{user} blocked {friend}")
        return RelationshipStatus.BLOCKED

    async def check_existing_relationship(self, user_email: str, other_email: str) -> Optional[Relationship]:
        """Any row between the two accounts, preferring the caller's own row"""
        forward, reverse = await self.repo.get_bidirectional(
            normalize_email(user_email), normalize_email(other_email)
        )
        return forward or reverse

    async def check_bidirectional_relationship(self, user_email: str, other_email: str) -> BidirectionalStatus:
        user = normalize_email(user_email)
        other = normalize_email(other_email)
        forward, reverse = await self.repo.get_bidirectional(user, other)
        return BidirectionalStatus(
            user_email=user,
            other_email=other,
            forward=_status(forward),
            reverse=_status(reverse),
        )

    def _decode(self, cursor: Optional[str]):
        if not cursor:
            return None
        created_at, row_id = decode_cursor(cursor, 2)
        return parse_cursor_datetime(created_at), row_id

    async def list_friends(
        self,
        user_email: str,
        cursor: Optional[str] = None,
        limit: int = 20,
        search: Optional[str] = None,
    ) -> FriendsPage:
        limit = clamp_limit(limit, self.config.suggestion_default_limit, self.config.suggestion_max_limit)
        rows = await self.repo.list_friends(normalize_email(user_email), limit, self._decode(cursor), search)
        has_next = len(rows) > limit
        rows = rows[:limit]
        items = [
            FriendItem(
                relationship_id=rel.id,
                email=rel.peer_email,
                name=user.name if user else None,
                username=user.username if user else None,
                avatar=user.avatar if user else None,
                user_id=user.id if user else None,
                status=RelationshipStatus(rel.status),
                message=rel.message,
                created_at=rel.created_at,
                accepted_at=rel.accepted_at,
            )
            for rel, user in rows
        ]
        next_cursor = encode_cursor([rows[-1][0].created_at, rows[-1][0].id]) if has_next else None
        return FriendsPage(items=items, has_next_page=has_next, next_cursor=next_cursor, limit=limit)

    async def list_requests(
        self, user_email: str, cursor: Optional[str] = None, limit: int = 20
    ) -> RequestsPage:
        """Pending requests the user has received"""
        limit = clamp_limit(limit, self.config.suggestion_default_limit, self.config.suggestion_max_limit)
        rows = await self.repo.list_received_requests(normalize_email(user_email), limit, self._decode(cursor))
        has_next = len(rows) > limit
        rows = rows[:limit]
        items = [
            RequestItem(
                request_id=rel.id,
                sender_email=rel.owner_email,
                name=user.name if user else None,
                username=user.username if user else None,
                avatar=user.avatar if user else None,
                user_id=user.id if user else None,
                message=rel.message,
                created_at=rel.created_at,
            )
            for rel, user in rows
        ]
        next_cursor = encode_cursor([rows[-1][0].created_at, rows[-1][0].id]) if has_next else None
        return RequestsPage(items=items, has_next_page=has_next, next_cursor=next_cursor, limit=limit)

    async def cleanup_rejected(self, older_than_days: int = 30) -> int:
        cutoff = utcnow() - timedelta(days=older_than_days)
        try:
            deleted = await self.repo.delete_rejected_before(cutoff)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"Removed {deleted} rejected relationship rows older than {older_than_days} days")
        return deleted
