import asyncio
import logging
import re
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from socialgraph.core.cache import TTLCache
from socialgraph.core.config import SocialConfig
from socialgraph.core.redis import RedisClient
from socialgraph.integrations import build_adapters
from socialgraph.integrations.base import ContactAdapter
from socialgraph.models.base import as_utc, utcnow
from socialgraph.repositories.relationship import RelationshipRepository
from socialgraph.schemas.account import Account
from socialgraph.schemas.relationship import RelationshipStatus
from socialgraph.schemas.sync import (
    ContactInfo, NewFriend, ProcessOptions, SyncContactsRequest, SyncHistory,
    SyncHistoryEntry, SyncPlatform, SyncResponse, SyncResult,
)
from socialgraph.services.directory import UserDirectory
from socialgraph.services.relationship import RelationshipService
from socialgraph.services.suggestion import SuggestionService
from socialgraph.utils.concurrency import chunked, gather_bounded
from socialgraph.utils.exceptions import (
    InvariantViolationError, PlatformNotSupportedError, SocialGraphException,
    SyncRateLimitError, SyncTimeoutError,
)
from socialgraph.utils.validators import normalize_email

logger = logging.getLogger(__name__)

SYNC_MESSAGE = "Auto-connected via {platform} sync"
SYNC_MESSAGE_PATTERN = re.compile(r"Auto-connected via (\w+) sync")
RECENT_SYNC_DAYS = 30


@dataclass
class _Match:
    account: Account
    contact_name: str


@dataclass
class _Outcome:
    kind: str  # created, already_friends, pending, skipped, error
    match: _Match
    message: str = ""


class SocialSyncService:
    """Contact sync pipeline.

    Contacts are matched against the directory with one batched lookup, then
    connected in fixed-size batches with bounded parallelism and a short pause
    between batches. Each account pair gets its own session, so one failure
    never rolls back another pair. Public entry points always return a
    ``SyncResponse``; failures are reported in ``result.errors``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        config: Optional[SocialConfig] = None,
        adapters: Optional[Dict[SyncPlatform, ContactAdapter]] = None,
        redis: Optional[RedisClient] = None,
        user_cache: Optional[TTLCache] = None,
    ):
        self.session_factory = session_factory
        self.config = config or SocialConfig()
        self.redis = redis
        self.adapters = adapters if adapters is not None else build_adapters(self.config, redis=redis)
        self.user_cache = user_cache

    # Matching and connecting

    async def _match_accounts(self, user_email: str, contacts: List[ContactInfo]) -> List[_Match]:
        async with self.session_factory() as db:
            directory = UserDirectory(db, self.user_cache)
            accounts = await directory.find_by_emails(c.email for c in contacts if c.email)
            by_phone = await directory.find_by_phones(c.phone for c in contacts if c.phone and not c.email)

        by_email = {account.email: account for account in accounts}
        matches: Dict[str, _Match] = {}
        for contact in contacts:
            account = None
            if contact.email:
                account = by_email.get(normalize_email(contact.email))
            elif contact.phone:
                account = by_phone.get(contact.phone)
            if account is None or account.email in matches:
                continue
            matches[account.email] = _Match(account=account, contact_name=contact.name)
        return list(matches.values())

    async def _connect(
        self, user_email: str, match: _Match, platform: SyncPlatform, options: ProcessOptions
    ) -> _Outcome:
        email = match.account.email
        async with self.session_factory() as db:
            engine = RelationshipService(db, UserDirectory(db, self.user_cache), self.config)
            try:
                if not options.skip_duplicate_check:
                    existing = await engine.check_bidirectional_relationship(user_email, email)
                    if existing.has(RelationshipStatus.ACCEPTED):
                        return _Outcome("already_friends", match, "Already friends")
                    if existing.has(RelationshipStatus.PENDING, RelationshipStatus.RECEIVED):
                        return _Outcome("pending", match, "Pending request exists")
                    if existing.has(RelationshipStatus.BLOCKED):
                        return _Outcome("skipped", match, "Relationship blocked")

                outcome = await engine.auto_accept_friendship(
                    user_email, email, SYNC_MESSAGE.format(platform=platform.value)
                )
            except InvariantViolationError:
                raise
            except Exception as e:
                logger.error(f"Auto-connect {user_email} -> {email} failed: {e}")
                reason = e.message if isinstance(e, SocialGraphException) else str(e)
                return _Outcome("error", match, f"Failed to connect with {match.contact_name} ({email}): {reason}")

        if outcome.created:
            return _Outcome("created", match, outcome.message)
        if outcome.message == "Already friends":
            return _Outcome("already_friends", match, outcome.message)
        if outcome.message == "Pending request exists":
            return _Outcome("pending", match, outcome.message)
        return _Outcome("skipped", match, outcome.message)

    async def process_contacts(
        self,
        user_email: str,
        contacts: List[ContactInfo],
        platform: SyncPlatform,
        options: Optional[ProcessOptions] = None,
    ) -> SyncResult:
        """Match, connect and suggest; never raises for per-contact failures"""
        started = time.perf_counter()
        options = options or ProcessOptions()
        user = normalize_email(user_email)
        batch_size = options.batch_size or self.config.batch_size
        result = SyncResult(platform=platform, total_contacts=len(contacts))
        result.details.contacts_processed = list(contacts)

        try:
            matches = await self._match_accounts(user, contacts)
            own = [m for m in matches if m.account.email == user]
            matches = [m for m in matches if m.account.email != user]
            result.skipped += len(own)
            result.cashpop_users_found = len(matches)
            logger.info(
                f"{platform.value} sync for {user}: {len(contacts)} contacts, {len(matches)} registered users"
            )

            batches = list(chunked(matches, batch_size))
            for index, batch in enumerate(batches):
                outcomes = await gather_bounded(
                    batch,
                    lambda m: self._connect(user, m, platform, options),
                    self.config.max_concurrency,
                )
                self._tally(result, outcomes, platform)
                if index < len(batches) - 1 and self.config.batch_delay_ms:
                    await asyncio.sleep(self.config.batch_delay_ms / 1000)
        except InvariantViolationError:
            raise
        except Exception as e:
            logger.exception(f"{platform.value} sync for {user} aborted")
            result.errors.append(f"Sync failed: {e}")

        if options.create_suggestions and contacts:
            await self._create_suggestions(user, contacts, platform, result)

        result.execution_time_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"{platform.value} sync for {user} finished in {result.execution_time_ms}ms: "
            f"{result.new_friendships_created} new, {result.already_friends} existing, "
            f"{result.pending_requests} pending, {len(result.errors)} errors"
        )
        return result

    @staticmethod
    def _tally(result: SyncResult, outcomes: List[_Outcome], platform: SyncPlatform) -> None:
        for outcome in outcomes:
            if outcome.kind == "created":
                result.new_friendships_created += 1
                result.details.new_friends.append(
                    NewFriend(
                        email=outcome.match.account.email,
                        name=outcome.match.contact_name or outcome.match.account.display_name,
                        source=f"{platform.value}_sync",
                    )
                )
            elif outcome.kind == "already_friends":
                result.already_friends += 1
            elif outcome.kind == "pending":
                result.pending_requests += 1
            elif outcome.kind == "skipped":
                result.skipped += 1
            else:
                result.errors.append(outcome.message)

    async def _create_suggestions(
        self, user_email: str, contacts: List[ContactInfo], platform: SyncPlatform, result: SyncResult
    ) -> None:
        try:
            async with self.session_factory() as db:
                service = SuggestionService(db, UserDirectory(db, self.user_cache), config=self.config)
                generated = await service.create_suggestions_from_contacts(user_email, contacts, platform)
            result.warnings.extend(generated.errors)
        except Exception as e:
            logger.warning(f"Suggestion creation after {platform.value} sync failed for {user_email}: {e}")
            result.warnings.append(f"Suggestion creation failed: {e}")

    # Cooldown

    def _cooldown_key(self, user_email: str, platform: SyncPlatform) -> str:
        return f"sync:cooldown:{platform.value}:{user_email}"

    async def _check_cooldown(self, user_email: str, platform: SyncPlatform) -> None:
        if self.redis is None or not self.config.cooldown_seconds:
            return
        key = self._cooldown_key(user_email, platform)
        if await self.redis.exists(key):
            retry_after = await self.redis.ttl(key) or self.config.cooldown_seconds
            raise SyncRateLimitError(platform.value, retry_after)

    async def _start_cooldown(self, user_email: str, platform: SyncPlatform) -> None:
        if self.redis is None or not self.config.cooldown_seconds:
            return
        await self.redis.set(self._cooldown_key(user_email, platform), "1", expire=self.config.cooldown_seconds)

    # Entry points

    def _failed(self, platform: SyncPlatform, message: str, started: float) -> SyncResponse:
        result = SyncResult(
            platform=platform,
            errors=[message],
            execution_time_ms=int((time.perf_counter() - started) * 1000),
        )
        return SyncResponse(success=False, message=message, result=result)

    def _adapter(self, platform: SyncPlatform) -> ContactAdapter:
        adapter = self.adapters.get(platform)
        if adapter is None:
            raise PlatformNotSupportedError(f"Sync is not supported for {platform.value}", platform.value)
        return adapter

    async def _sync_platform(
        self,
        user_email: str,
        platform: SyncPlatform,
        fetch: Callable[[ContactAdapter], Awaitable[List[ContactInfo]]],
    ) -> SyncResponse:
        started = time.perf_counter()
        user = normalize_email(user_email)
        try:
            await self._check_cooldown(user, platform)
            adapter = self._adapter(platform)
            contacts = await asyncio.wait_for(fetch(adapter), timeout=self.config.external_timeout_seconds)
        except asyncio.TimeoutError:
            error = SyncTimeoutError(f"{platform.value} contact fetch timed out", platform.value)
            logger.warning(f"{error.message} for {user}")
            return self._failed(platform, error.message, started)
        except SocialGraphException as e:
            logger.warning(f"{platform.value} sync for {user} rejected: {e.message}")
            return self._failed(platform, e.message, started)

        result = await self.process_contacts(user, contacts, platform)
        await self._start_cooldown(user, platform)
        return SyncResponse(
            success=not result.errors,
            message=(
                f"Synced {result.total_contacts} {platform.value} contacts: "
                f"{result.new_friendships_created} new friends"
            ),
            result=result,
        )

    async def initialize(self, user_email: str) -> SyncResponse:
        """Prepare contact syncing; platform syncs are run separately"""
        started = time.perf_counter()
        result = SyncResult(platform=SyncPlatform.CONTACT)
        result.execution_time_ms = int((time.perf_counter() - started) * 1000)
        logger.info(f"Contact platform initialized for {normalize_email(user_email)}")
        return SyncResponse(
            success=True,
            message="Contact platform initialized successfully. Ready for individual platform syncing.",
            result=result,
        )

    async def sync_facebook(self, user_email: str, token: str) -> SyncResponse:
        return await self._sync_platform(
            user_email,
            SyncPlatform.FACEBOOK,
            lambda adapter: adapter.fetch_contacts(token, self.config.max_contacts, self.config.batch_size),
        )

    async def sync_line(self, user_email: str, token: str) -> SyncResponse:
        return await self._sync_platform(
            user_email,
            SyncPlatform.LINE,
            lambda adapter: adapter.fetch_contacts(token, self.config.max_contacts, self.config.batch_size),
        )

    async def sync_phone(self, user_email: str, session_id: str, contacts_json: str) -> SyncResponse:
        return await self._sync_platform(
            user_email,
            SyncPlatform.PHONE,
            lambda adapter: adapter.fetch_contacts(
                session_id, self.config.max_contacts, self.config.batch_size, contacts_json=contacts_json
            ),
        )

    async def sync(self, user_email: str, request: SyncContactsRequest) -> SyncResponse:
        if request.platform == SyncPlatform.FACEBOOK:
            return await self.sync_facebook(user_email, request.facebook.token)
        if request.platform == SyncPlatform.LINE:
            return await self.sync_line(user_email, request.line.token)
        if request.platform == SyncPlatform.PHONE:
            return await self.sync_phone(user_email, request.phone.session_id, request.phone.contacts_json)
        return await self.initialize(user_email)

    def _expand_mock_contacts(self, mocks: List[ContactInfo], count: Optional[int]) -> List[ContactInfo]:
        if not count:
            return mocks
        count = min(count, self.config.max_contacts)
        contacts = []
        for i in range(count):
            base = mocks[i % len(mocks)]
            if i < len(mocks):
                contacts.append(base)
                continue
            email = None
            if base.email:
                local, domain = base.email.split("@", 1)
                email = f"{local}+{i}@{domain}"
            phone = f"+8210{i:08d}" if base.phone else None
            contacts.append(
                base.model_copy(update={"id": f"{base.id}_{i}", "name": f"{base.name} {i}", "email": email, "phone": phone})
            )
        return contacts

    async def test_sync(
        self, user_email: str, platform: SyncPlatform, contact_count: Optional[int] = None
    ) -> SyncResponse:
        """Run the pipeline on the adapter's mock contacts"""
        started = time.perf_counter()
        try:
            adapter = self._adapter(platform)
        except PlatformNotSupportedError as e:
            return self._failed(platform, e.message, started)

        contacts = self._expand_mock_contacts(adapter.mock_contacts(), contact_count)
        result = await self.process_contacts(user_email, contacts, platform)
        result.test_mode = True
        return SyncResponse(
            success=not result.errors,
            message=f"Test sync {platform.value} completed in {result.execution_time_ms}ms",
            result=result,
        )

    async def get_sync_history(
        self, user_email: str, limit: int = 50, platform: Optional[SyncPlatform] = None
    ) -> SyncHistory:
        user = normalize_email(user_email)
        async with self.session_factory() as db:
            rows = await RelationshipRepository(db).find_sync_history(
                user, limit, platform.value if platform else None
            )

        recent_cutoff = utcnow() - timedelta(days=RECENT_SYNC_DAYS)
        history = []
        by_platform: Dict[str, int] = {}
        recent = 0
        for row in rows:
            found = SYNC_MESSAGE_PATTERN.search(row.message or "")
            row_platform = found.group(1) if found else None
            if row_platform:
                by_platform[row_platform] = by_platform.get(row_platform, 0) + 1
            if as_utc(row.created_at) >= recent_cutoff:
                recent += 1
            history.append(
                SyncHistoryEntry(
                    id=row.id,
                    friend_email=row.peer_email,
                    platform=row_platform,
                    status=row.status,
                    message=row.message,
                    created_at=row.created_at,
                )
            )
        return SyncHistory(
            message="Sync history loaded",
            history=history,
            stats={"total_synced": len(history), "by_platform": by_platform, "recent_syncs": recent},
        )
