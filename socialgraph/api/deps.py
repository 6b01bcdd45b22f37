from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from socialgraph.core.cache import TTLCache
from socialgraph.core.config import SocialConfig, settings
from socialgraph.core.database import get_db, get_session_factory
from socialgraph.core.redis import RedisClient, get_redis
from socialgraph.schemas.account import Account
from socialgraph.services.bulk import BulkRelationshipService
from socialgraph.services.directory import UserDirectory
from socialgraph.services.relationship import RelationshipService
from socialgraph.services.suggestion import SuggestionService
from socialgraph.services.sync import SocialSyncService

# Process-wide account cache shared by every request
user_cache = TTLCache(
    ttl_seconds=settings.USER_CACHE_TTL_SECONDS,
    max_size=settings.USER_CACHE_MAX_SIZE,
)


def get_social_config() -> SocialConfig:
    return SocialConfig.from_settings(settings)


def get_user_cache() -> TTLCache:
    return user_cache


def get_directory(
    db: AsyncSession = Depends(get_db),
    cache: TTLCache = Depends(get_user_cache),
) -> UserDirectory:
    return UserDirectory(db, cache)


async def get_current_account(
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    directory: UserDirectory = Depends(get_directory),
) -> Account:
    """Resolve the caller. Authentication happens upstream; it forwards the email."""
    if not x_user_email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing caller identity")
    account = await directory.find_by_email(x_user_email)
    if account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown account")
    return account


def get_suggestion_service(
    db: AsyncSession = Depends(get_db),
    directory: UserDirectory = Depends(get_directory),
    config: SocialConfig = Depends(get_social_config),
) -> SuggestionService:
    return SuggestionService(db, directory, config=config)


def get_relationship_service(
    db: AsyncSession = Depends(get_db),
    directory: UserDirectory = Depends(get_directory),
    config: SocialConfig = Depends(get_social_config),
    suggestions: SuggestionService = Depends(get_suggestion_service),
) -> RelationshipService:
    return RelationshipService(db, directory, config, suggestions=suggestions)


def get_bulk_service(
    relationships: RelationshipService = Depends(get_relationship_service),
) -> BulkRelationshipService:
    return BulkRelationshipService(relationships)


def get_sync_service(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    config: SocialConfig = Depends(get_social_config),
    redis: RedisClient = Depends(get_redis),
    cache: TTLCache = Depends(get_user_cache),
) -> SocialSyncService:
    return SocialSyncService(session_factory, config, redis=redis, user_cache=cache)
