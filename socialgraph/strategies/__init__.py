from socialgraph.strategies.base import SuggestionStrategy
from socialgraph.strategies.contact import ContactSuggestionStrategy, PlatformSuggestionStrategy
from socialgraph.strategies.mutual import MutualFriendsSuggestionStrategy
from socialgraph.strategies.registry import StrategyRegistry, build_default_registry

__all__ = [
    "SuggestionStrategy",
    "ContactSuggestionStrategy",
    "PlatformSuggestionStrategy",
    "MutualFriendsSuggestionStrategy",
    "StrategyRegistry",
    "build_default_registry",
]
