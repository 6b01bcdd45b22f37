from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from socialgraph.schemas.suggestion import SuggestionSource
from socialgraph.services.directory import UserDirectory
from socialgraph.services.mutual_friends import MutualFriendsCalculator
from socialgraph.strategies.base import SuggestionStrategy
from socialgraph.strategies.contact import ContactSuggestionStrategy, PlatformSuggestionStrategy
from socialgraph.strategies.mutual import MutualFriendsSuggestionStrategy
from socialgraph.utils.exceptions import StrategyNotFoundError


class StrategyRegistry:
    """Strategies keyed by the source tag they own"""

    def __init__(self, strategies: Optional[Iterable[SuggestionStrategy]] = None):
        self._strategies: Dict[SuggestionSource, SuggestionStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: SuggestionStrategy) -> None:
        if strategy.source in self._strategies:
            raise ValueError(f"A strategy is already registered for {strategy.source.value}")
        self._strategies[strategy.source] = strategy

    def get(self, source: SuggestionSource) -> SuggestionStrategy:
        try:
            return self._strategies[SuggestionSource(source)]
        except (KeyError, ValueError):
            raise StrategyNotFoundError(str(getattr(source, "value", source)))

    def sources(self) -> List[SuggestionSource]:
        return list(self._strategies)

    def __contains__(self, source: SuggestionSource) -> bool:
        return source in self._strategies


def build_default_registry(
    db: AsyncSession,
    directory: Optional[UserDirectory] = None,
    mutual_friends: Optional[MutualFriendsCalculator] = None,
) -> StrategyRegistry:
    directory = directory or UserDirectory(db)
    mutual_friends = mutual_friends or MutualFriendsCalculator(db)
    shared = {"directory": directory, "mutual_friends": mutual_friends}
    return StrategyRegistry([
        ContactSuggestionStrategy(db, **shared),
        PlatformSuggestionStrategy(db, SuggestionSource.FACEBOOK, **shared),
        PlatformSuggestionStrategy(db, SuggestionSource.LINE, **shared),
        MutualFriendsSuggestionStrategy(db, **shared),
    ])
