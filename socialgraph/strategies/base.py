import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from socialgraph.models.base import utcnow
from socialgraph.repositories.relationship import RelationshipRepository
from socialgraph.schemas.suggestion import (
    StrategyResult, SuggestionCandidate, SuggestionContext, SuggestionSource,
)
from socialgraph.services.directory import UserDirectory
from socialgraph.services.mutual_friends import MutualFriendsCalculator
from socialgraph.utils.exceptions import InvalidCandidateError, SuggestionLimitExceededError
from socialgraph.utils.validators import is_valid_email

BASE_PRIORITY = 5
MAX_MUTUAL_BOOST = 3
MAX_SUGGESTIONS = 100

SOURCE_BOOST = {
    SuggestionSource.CONTACT: 2.0,
    SuggestionSource.FACEBOOK: 1.5,
    SuggestionSource.LINE: 1.5,
    SuggestionSource.MUTUAL_FRIENDS: 1.0,
    SuggestionSource.SYSTEM: 0.0,
}


class SuggestionStrategy(ABC):
    """Shared behaviour for suggestion generators.

    A strategy owns exactly one ``source`` tag. Subclasses implement
    ``generate_candidates``; validation, priority and candidate construction
    come from here and may be overridden.
    """

    source: SuggestionSource = SuggestionSource.SYSTEM

    def __init__(
        self,
        db: AsyncSession,
        directory: Optional[UserDirectory] = None,
        mutual_friends: Optional[MutualFriendsCalculator] = None,
    ):
        self.db = db
        self.relationships = RelationshipRepository(db)
        self.directory = directory or UserDirectory(db)
        self.mutual_friends = mutual_friends or MutualFriendsCalculator(db)
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def generate_candidates(self, context: SuggestionContext, source_data: Any = None) -> StrategyResult:
        """Produce ranked candidates for ``context.user_email``"""

    def validate_candidate(self, candidate: SuggestionCandidate) -> bool:
        """Structural checks only; relationship checks happen during generation"""
        if not candidate.user_email or not candidate.suggested_user_email:
            return False
        if candidate.user_email == candidate.suggested_user_email:
            return False
        if not is_valid_email(candidate.user_email) or not is_valid_email(candidate.suggested_user_email):
            return False
        if not candidate.reason:
            return False
        return candidate.mutual_friends_count >= 0

    def mutual_boost(self, count: int) -> float:
        # +1 for one mutual friend, +2 for three, capped at +3 from seven
        if count <= 0:
            return 0.0
        return min(float(MAX_MUTUAL_BOOST), math.log2(1 + count))

    def calculate_priority(self, candidate: SuggestionCandidate) -> int:
        priority = BASE_PRIORITY
        priority += self.mutual_boost(candidate.mutual_friends_count)
        priority += SOURCE_BOOST.get(candidate.source, 0.0)
        if candidate.metadata.get("high_priority"):
            priority += 1
        return max(1, min(10, int(math.floor(priority + 0.5))))

    def create_candidate(
        self,
        user_email: str,
        suggested_email: str,
        reason: str,
        mutual_friends_count: int = 0,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SuggestionCandidate:
        candidate = SuggestionCandidate(
            user_email=user_email,
            suggested_user_email=suggested_email,
            source=self.source,
            reason=reason,
            mutual_friends_count=mutual_friends_count,
            metadata={
                "created_by": self.name,
                "created_at": utcnow().isoformat(),
                **(metadata or {}),
            },
        )
        candidate.priority = self.calculate_priority(candidate)
        return candidate

    def validate_context(self, context: SuggestionContext) -> None:
        if not is_valid_email(context.user_email):
            raise InvalidCandidateError("user email is required in context", {"user_email": context.user_email})
        if context.max_suggestions < 1:
            raise InvalidCandidateError("max_suggestions must be positive")
        if context.max_suggestions > MAX_SUGGESTIONS:
            raise SuggestionLimitExceededError(context.max_suggestions, MAX_SUGGESTIONS)

    async def excluded_emails(self, context: SuggestionContext, emails: Iterable[str]) -> Set[str]:
        """Emails that must never be suggested: the user and, optionally, anyone related"""
        excluded = {context.user_email}
        if context.exclude_existing:
            excluded |= await self.relationships.related_emails(context.user_email, emails)
        return excluded

    @staticmethod
    def rank(candidates: List[SuggestionCandidate]) -> List[SuggestionCandidate]:
        return sorted(
            candidates,
            key=lambda c: (-c.priority, -c.mutual_friends_count, c.suggested_user_email),
        )
