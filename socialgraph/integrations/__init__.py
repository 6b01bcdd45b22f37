from typing import Dict, Optional

import httpx

from socialgraph.core.config import SocialConfig
from socialgraph.core.redis import RedisClient
from socialgraph.integrations.base import ContactAdapter
from socialgraph.integrations.facebook import FacebookContactsAdapter
from socialgraph.integrations.line import LineContactsAdapter
from socialgraph.integrations.phone import PhoneContactsAdapter
from socialgraph.schemas.sync import SyncPlatform


def build_adapters(
    config: SocialConfig,
    client: Optional[httpx.AsyncClient] = None,
    redis: Optional[RedisClient] = None,
) -> Dict[SyncPlatform, ContactAdapter]:
    return {
        SyncPlatform.FACEBOOK: FacebookContactsAdapter(config, client),
        SyncPlatform.LINE: LineContactsAdapter(config, client),
        SyncPlatform.PHONE: PhoneContactsAdapter(config, client, redis=redis),
    }


__all__ = [
    "ContactAdapter",
    "FacebookContactsAdapter",
    "LineContactsAdapter",
    "PhoneContactsAdapter",
    "build_adapters",
]
