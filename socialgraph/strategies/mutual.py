from typing import Any

from socialgraph.schemas.relationship import MutualFriends
from socialgraph.schemas.suggestion import StrategyResult, SuggestionContext, SuggestionSource
from socialgraph.strategies.base import SuggestionStrategy
from socialgraph.utils.exceptions import MutualFriendsCalculationError


class MutualFriendsSuggestionStrategy(SuggestionStrategy):
    """Friends of friends, ranked by how many friends they share with the user"""

    source = SuggestionSource.MUTUAL_FRIENDS
    default_min_mutual = 1

    async def generate_candidates(self, context: SuggestionContext, source_data: Any = None) -> StrategyResult:
        self.validate_context(context)
        result = StrategyResult()
        min_mutual = context.min_mutual_friends or self.default_min_mutual

        try:
            ranked = await self.mutual_friends.friends_of_friends(
                context.user_email, min_mutual=min_mutual, limit=context.max_suggestions * 2
            )
        except MutualFriendsCalculationError as e:
            self.logger.warning(f"Friends-of-friends lookup failed for {context.user_email}: {e.message}")
            result.errors.append(e.message)
            return result

        result.processed = len(ranked)
        emails = [email for email, _ in ranked]
        excluded = await self.excluded_emails(context, emails)
        eligible = [email for email in emails if email not in excluded]
        result.skipped = len(emails) - len(eligible)
        if not eligible:
            return result

        try:
            details = await self.mutual_friends.batch_calculate(context.user_email, eligible)
        except MutualFriendsCalculationError as e:
            result.errors.append(e.message)
            details = {}

        counts = dict(ranked)
        for email in eligible:
            info = details.get(email) or MutualFriends(count=counts[email])
            candidate = self.create_candidate(
                context.user_email,
                email,
                f"{info.count} mutual friends",
                info.count,
                {"mutual_friends": info.friend_names[:3], "source_info": self.source.value},
            )
            if self.validate_candidate(candidate):
                result.candidates.append(candidate)
            else:
                result.skipped += 1

        result.candidates = self.rank(result.candidates)[: context.max_suggestions]
        return result
