from typing import Any, Dict, Iterable, List, Optional

from socialgraph.schemas.account import Account
from socialgraph.schemas.relationship import MutualFriends
from socialgraph.schemas.suggestion import (
    StrategyResult, SuggestionCandidate, SuggestionContext, SuggestionSource,
)
from socialgraph.schemas.sync import ContactInfo
from socialgraph.strategies.base import SuggestionStrategy
from socialgraph.utils.exceptions import MutualFriendsCalculationError
from socialgraph.utils.validators import is_valid_email, normalize_email


def _contact_field(contact: Any, field: str) -> Optional[str]:
    if isinstance(contact, dict):
        return contact.get(field)
    return getattr(contact, field, None)


class ContactSuggestionStrategy(SuggestionStrategy):
    """Suggest accounts found in an imported address book.

    ``source_data`` is an iterable of ``ContactInfo`` (or dicts with ``name``,
    ``email`` and ``phone``). Contacts are matched by email, and by verified
    phone number for entries that carry one.
    """

    source = SuggestionSource.CONTACT
    source_label = "your contacts"

    def build_reason(self, mutual_count: int) -> str:
        reason = f"Found in {self.source_label}"
        if mutual_count > 0:
            reason += f" • {mutual_count} mutual friends"
        return reason

    async def _match_accounts(self, contacts: List[Any]) -> Dict[str, Dict[str, Any]]:
        """email -> {account, contact_name} for contacts that have an account"""
        names_by_email: Dict[str, str] = {}
        names_by_phone: Dict[str, str] = {}
        for contact in contacts:
            name = _contact_field(contact, "name") or ""
            email = normalize_email(_contact_field(contact, "email"))
            phone = _contact_field(contact, "phone")
            if email and is_valid_email(email):
                names_by_email.setdefault(email, name)
            elif phone:
                names_by_phone.setdefault(phone, name)

        matches: Dict[str, Dict[str, Any]] = {}
        for account in await self.directory.find_by_emails(names_by_email.keys()):
            matches[account.email] = {"account": account, "contact_name": names_by_email.get(account.email)}
        if names_by_phone:
            for phone, account in (await self.directory.find_by_phones(names_by_phone.keys())).items():
                matches.setdefault(account.email, {"account": account, "contact_name": names_by_phone[phone]})
        return matches

    async def generate_candidates(self, context: SuggestionContext, source_data: Any = None) -> StrategyResult:
        self.validate_context(context)
        contacts = list(source_data or [])
        result = StrategyResult(processed=len(contacts))
        if not contacts:
            return result

        matches = await self._match_accounts(contacts)
        excluded = await self.excluded_emails(context, matches.keys())
        eligible = [email for email in matches if email not in excluded]
        result.skipped = len(contacts) - len(eligible)
        if not eligible:
            return result

        mutual = await self._mutual_friends(context.user_email, eligible, result)

        candidates: List[SuggestionCandidate] = []
        for email in eligible:
            info = mutual.get(email, MutualFriends())
            if context.min_mutual_friends and info.count < context.min_mutual_friends:
                result.skipped += 1
                continue
            account: Account = matches[email]["account"]
            candidate = self.create_candidate(
                context.user_email,
                email,
                self.build_reason(info.count),
                info.count,
                {
                    "contact_name": matches[email]["contact_name"] or account.display_name,
                    "mutual_friends": info.friend_names[:3],
                    "source_info": self.source.value,
                },
            )
            if not self.validate_candidate(candidate):
                result.skipped += 1
                continue
            candidates.append(candidate)

        result.candidates = self.rank(candidates)[: context.max_suggestions]
        self.logger.info(
            f"{self.name}: {len(result.candidates)} candidates for {context.user_email} "
            f"from {len(contacts)} contacts ({len(matches)} matched)"
        )
        return result

    async def _mutual_friends(
        self, user_email: str, emails: Iterable[str], result: StrategyResult
    ) -> Dict[str, MutualFriends]:
        try:
            return await self.mutual_friends.batch_calculate(user_email, emails)
        except MutualFriendsCalculationError as e:
            self.logger.warning(f"Falling back to zero mutual friends: {e.message}")
            result.errors.append(e.message)
            return {}


class PlatformSuggestionStrategy(ContactSuggestionStrategy):
    """Contact matching for friends imported from Facebook or LINE"""

    LABELS = {
        SuggestionSource.FACEBOOK: "Facebook",
        SuggestionSource.LINE: "LINE",
    }

    def __init__(self, db, source: SuggestionSource, **kwargs):
        if source not in self.LABELS:
            raise ValueError(f"{source.value} is not a platform source")
        super().__init__(db, **kwargs)
        self.source = source

    @property
    def name(self) -> str:
        return f"{type(self).__name__}[{self.source.value}]"

    def build_reason(self, mutual_count: int) -> str:
        reason = f"Friends on {self.LABELS[self.source]}"
        if mutual_count > 0:
            reason += f" • {mutual_count} mutual friends"
        return reason
