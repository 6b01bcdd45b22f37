import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from socialgraph.core.cache import TTLCache
from socialgraph.repositories.user import UserRepository
from socialgraph.schemas.account import Account
from socialgraph.utils.validators import normalize_email, unique_emails

logger = logging.getLogger(__name__)


class UserDirectory:
    """Read-only account lookups with a bounded time-expiring cache.

    Cache keys are ``email:<address>`` and ``id:<uuid>``. Missing accounts are
    not cached so a freshly registered user is visible on the next lookup.
    """

    def __init__(self, db: AsyncSession, cache: Optional[TTLCache] = None):
        self.db = db
        self.repo = UserRepository(db)
        self.cache = cache

    def _remember(self, account: Account) -> None:
        if self.cache is not None:
            self.cache.set(f"email:{account.email}", account)
            self.cache.set(f"id:{account.id}", account)

    def _cached(self, key: str) -> Optional[Account]:
        if self.cache is None:
            return None
        return self.cache.get(key)

    async def find_by_email(self, email: str) -> Optional[Account]:
        email = normalize_email(email)
        if not email:
            return None
        cached = self._cached(f"email:{email}")
        if cached:
            return cached
        user = await self.repo.get_by_email(email)
        if not user:
            return None
        account = Account.model_validate(user)
        self._remember(account)
        return account

    async def find_by_id(self, user_id: str) -> Optional[Account]:
        if not user_id:
            return None
        cached = self._cached(f"id:{user_id}")
        if cached:
            return cached
        user = await self.repo.get_by_id(user_id)
        if not user:
            return None
        account = Account.model_validate(user)
        self._remember(account)
        return account

    async def find_by_emails(self, emails: Iterable[Optional[str]]) -> List[Account]:
        """Batched lookup; duplicates and empty values are tolerated"""
        wanted = unique_emails(emails)
        if not wanted:
            return []
        found: Dict[str, Account] = {}
        missing = []
        for email in wanted:
            cached = self._cached(f"email:{email}")
            if cached:
                found[email] = cached
            else:
                missing.append(email)
        if missing:
            for user in await self.repo.get_by_emails(missing):
                account = Account.model_validate(user)
                self._remember(account)
                found[account.email] = account
        logger.debug(f"Directory lookup: {len(wanted)} emails, {len(missing)} from database, {len(found)} found")
        return [found[email] for email in wanted if email in found]

    async def find_by_phones(self, phones: Iterable[str]) -> Dict[str, Account]:
        """Map verified phone number -> account"""
        phones = list(dict.fromkeys(p for p in phones if p))
        if not phones:
            return {}
        result = {}
        for user in await self.repo.get_by_phones(phones):
            account = Account.model_validate(user)
            self._remember(account)
            result[user.phone_number] = account
        return result

    def invalidate_user(self, email: Optional[str] = None, user_id: Optional[str] = None) -> None:
        if self.cache is None:
            return
        if email:
            account = self.cache.get(f"email:{normalize_email(email)}")
            self.cache.invalidate(f"email:{normalize_email(email)}")
            if account:
                self.cache.invalidate(f"id:{account.id}")
        if user_id:
            self.cache.invalidate(f"id:{user_id}")
