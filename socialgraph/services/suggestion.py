import logging
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from socialgraph.core.config import SocialConfig
from socialgraph.models.base import utcnow
from socialgraph.repositories.relationship import RelationshipRepository
from socialgraph.repositories.suggestion import SuggestionRepository
from socialgraph.schemas.suggestion import (
    GenerationResult, SuggestedAccount, SuggestionActionResult, SuggestionCandidate,
    SuggestionContext, SuggestionItem, SuggestionSource, SuggestionStatus, SuggestionsPage,
)
from socialgraph.schemas.sync import SyncPlatform
from socialgraph.services.directory import UserDirectory
from socialgraph.services.mutual_friends import MutualFriendsCalculator
from socialgraph.strategies.registry import StrategyRegistry, build_default_registry
from socialgraph.utils.exceptions import (
    MutualFriendsCalculationError, SocialGraphException, SuggestionLimitExceededError,
    SuggestionNotFoundError, ValidationError,
)
from socialgraph.utils.pagination import (
    clamp_limit, decode_cursor, encode_cursor, parse_cursor_datetime,
)
from socialgraph.utils.validators import normalize_email

logger = logging.getLogger(__name__)

FALLBACK_REASONS = {
    SuggestionSource.CONTACT.value: "From your contacts",
    SuggestionSource.FACEBOOK.value: "From Facebook friends",
    SuggestionSource.LINE.value: "From LINE friends",
}


def merge_candidates(batches: Iterable[Iterable[SuggestionCandidate]]) -> List[SuggestionCandidate]:
    """Collapse candidates to one per (user, suggested) pair.

    The highest priority wins; on a tie the first one seen is kept.
    """
    best: Dict[tuple, SuggestionCandidate] = {}
    for batch in batches:
        for candidate in batch:
            current = best.get(candidate.pair)
            if current is None or candidate.priority > current.priority:
                best[candidate.pair] = candidate
    return list(best.values())


def fallback_reason(source: str, mutual_count: int) -> str:
    if mutual_count > 0:
        return f"You have {mutual_count} mutual friends"
    return FALLBACK_REASONS.get(source, "Suggested for you")


class SuggestionService:
    """Runs strategies, dedupes and persists their candidates, and serves listings"""

    def __init__(
        self,
        db: AsyncSession,
        directory: Optional[UserDirectory] = None,
        registry: Optional[StrategyRegistry] = None,
        mutual_friends: Optional[MutualFriendsCalculator] = None,
        config: Optional[SocialConfig] = None,
    ):
        self.db = db
        self.config = config or SocialConfig()
        self.directory = directory or UserDirectory(db)
        self.mutual_friends = mutual_friends or MutualFriendsCalculator(db)
        self.registry = registry or build_default_registry(db, self.directory, self.mutual_friends)
        self.repo = SuggestionRepository(db)
        self.relationships = RelationshipRepository(db)

    async def generate(
        self,
        context: SuggestionContext,
        source_data: Optional[Dict[SuggestionSource, Any]] = None,
        sources: Optional[List[SuggestionSource]] = None,
    ) -> GenerationResult:
        """Run strategies for ``context`` and persist the surviving candidates.

        ``sources`` defaults to the keys of ``source_data``, or to every
        registered strategy when no data is given.
        """
        if context.max_suggestions > self.config.suggestion_max_limit:
            raise SuggestionLimitExceededError(context.max_suggestions, self.config.suggestion_max_limit)
        context = context.model_copy(update={"user_email": normalize_email(context.user_email)})
        source_data = source_data or {}
        if sources is None:
            sources = list(source_data) or self.registry.sources()

        outcome = GenerationResult()
        batches = []
        for source in sources:
            strategy = self.registry.get(source)
            try:
                result = await strategy.generate_candidates(context, source_data.get(source))
            except SocialGraphException as e:
                logger.warning(f"Strategy {strategy.name} failed for {context.user_email}: {e.message}")
                outcome.errors.append(e.message)
                continue
            outcome.processed += result.processed
            outcome.skipped += result.skipped
            outcome.errors.extend(result.errors)
            batches.append([c for c in result.candidates if strategy.validate_candidate(c)])

        merged = merge_candidates(batches)
        emails = [c.suggested_user_email for c in merged]
        blocked = set()
        if context.exclude_existing:
            blocked |= await self.relationships.related_emails(context.user_email, emails)
        blocked |= await self.repo.existing_suggested_emails(context.user_email, emails)
        survivors = [c for c in merged if c.suggested_user_email not in blocked]
        outcome.skipped += len(merged) - len(survivors)

        ranked = sorted(
            survivors,
            key=lambda c: (-c.priority, -c.mutual_friends_count, c.suggested_user_email),
        )[: context.max_suggestions]
        outcome.candidates = ranked

        try:
            outcome.persisted = await self.repo.insert_ignore(ranked)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Generated {len(ranked)} suggestions for {context.user_email} "
            f"from {len(sources)} sources ({outcome.persisted} new)"
        )
        return outcome

    async def create_suggestions_from_contacts(
        self,
        user_email: str,
        contacts: List[Any],
        platform: SyncPlatform,
        max_suggestions: int = 50,
    ) -> GenerationResult:
        """Feed synced contacts to the contact strategy"""
        context = SuggestionContext(
            user_email=user_email,
            max_suggestions=min(max_suggestions, self.config.suggestion_max_limit),
        )
        logger.debug(f"Creating contact suggestions for {user_email} from {platform.value} sync")
        return await self.generate(context, {SuggestionSource.CONTACT: contacts})

    async def list_suggestions(
        self, user_email: str, cursor: Optional[str] = None, limit: int = 20
    ) -> SuggestionsPage:
        user = normalize_email(user_email)
        limit = clamp_limit(limit, self.config.suggestion_default_limit, self.config.suggestion_max_limit)
        decoded = None
        if cursor:
            mutual, created_at, row_id = decode_cursor(cursor, 3)
            if not mutual.isdigit():
                raise ValidationError("Invalid cursor", {"cursor": cursor})
            decoded = (int(mutual), parse_cursor_datetime(created_at), row_id)

        rows = await self.repo.list_active(user, limit, decoded)
        has_next = len(rows) > limit
        rows = rows[:limit]

        emails = [s.suggested_user_email for s, _ in rows]
        try:
            fresh = await self.mutual_friends.batch_calculate(user, emails)
        except MutualFriendsCalculationError as e:
            logger.warning(f"Using stored mutual counts for {user}: {e.message}")
            fresh = {}

        items = []
        for suggestion, account in rows:
            mutual = fresh.get(suggestion.suggested_user_email)
            count = mutual.count if mutual else suggestion.mutual_friends_count
            items.append(
                SuggestionItem(
                    id=suggestion.id,
                    user=SuggestedAccount(
                        id=account.id if account else None,
                        email=suggestion.suggested_user_email,
                        name=account.name if account else None,
                        username=account.username if account else None,
                        avatar=account.avatar if account else None,
                    ),
                    source=SuggestionSource(suggestion.source),
                    reason=suggestion.reason or fallback_reason(suggestion.source, count),
                    mutual_friends_count=count,
                    mutual_friend_names=mutual.friend_names[:3] if mutual else [],
                    priority=suggestion.priority,
                    created_at=suggestion.created_at,
                )
            )

        next_cursor = None
        if has_next:
            last = rows[-1][0]
            next_cursor = encode_cursor([last.mutual_friends_count, last.created_at, last.id])
        return SuggestionsPage(items=items, has_next_page=has_next, next_cursor=next_cursor, limit=limit)

    async def dismiss(self, user_email: str, suggestion_id: str) -> SuggestionActionResult:
        user = normalize_email(user_email)
        suggestion = await self.repo.get_for_user(suggestion_id, user)
        if suggestion is None or suggestion.status != SuggestionStatus.ACTIVE:
            raise SuggestionNotFoundError(suggestion_id)
        try:
            await self.repo.set_status(user, suggestion.suggested_user_email, SuggestionStatus.DISMISSED)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return SuggestionActionResult(message="Suggestion dismissed", suggestion_id=suggestion_id)

    async def on_friend_request_sent(self, sender_email: str, target_email: str, resurrected: bool = False) -> None:
        """Resends wipe any suggestion state for the pair; first sends mark it as used"""
        if resurrected:
            removed = await self.clear_pair(sender_email, target_email)
            logger.debug(f"Cleared {removed} suggestions between {sender_email} and {target_email}")
        else:
            await self.mark_request_sent(sender_email, target_email)

    async def mark_request_sent(self, user_email: str, suggested_email: str) -> int:
        try:
            updated = await self.repo.set_status(
                normalize_email(user_email), normalize_email(suggested_email), SuggestionStatus.FRIEND_REQUEST_SENT
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return updated

    async def clear_pair(self, user_email: str, other_email: str) -> int:
        try:
            removed = await self.repo.delete_pair(normalize_email(user_email), normalize_email(other_email))
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return removed

    async def cleanup_expired(self, older_than_days: Optional[int] = None) -> int:
        days = older_than_days if older_than_days is not None else self.config.suggestion_expiry_days
        cutoff = utcnow() - timedelta(days=days)
        try:
            deleted = await self.repo.delete_dismissed_before(cutoff)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info(f"Cleaned up {deleted} dismissed suggestions older than {days} days")
        return deleted

    async def get_stats(self, user_email: str) -> Dict[str, Any]:
        counts = await self.repo.count_by_status(normalize_email(user_email))
        return {
            "total": sum(counts.values()),
            "by_status": {status.value: counts.get(status.value, 0) for status in SuggestionStatus},
            "sources": [source.value for source in self.registry.sources()],
        }
