import asyncio
import logging
from typing import List, Optional

import httpx

from socialgraph.core.config import SocialConfig
from socialgraph.integrations.base import ContactAdapter
from socialgraph.schemas.sync import ContactInfo, SyncPlatform
from socialgraph.utils.exceptions import InvalidCredentialError, UpstreamError
from socialgraph.utils.validators import normalize_email

logger = logging.getLogger(__name__)

VALIDATE_TIMEOUT = 10.0
PAGE_TIMEOUT = 15.0

MOCK_FRIENDS = [
    ("fb_mock_1", "John Doe", "john.doe@example.com"),
    ("fb_mock_2", "Jane Smith", "jane.smith@example.com"),
    ("fb_mock_3", "Bob Johnson", "bob.johnson@example.com"),
    ("fb_mock_4", "Alice Cooper", "alice.cooper@example.com"),
    ("fb_mock_5", "Mike Wilson", "mike.wilson@example.com"),
]


class FacebookContactsAdapter(ContactAdapter):
    """Facebook Graph API friends list"""

    platform = SyncPlatform.FACEBOOK
    label = "Facebook"

    def __init__(
        self,
        config: Optional[SocialConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        page_delay_seconds: float = 0.1,
    ):
        super().__init__(config, client)
        self.base_url = self.config.facebook_api_base.rstrip("/")
        self.page_delay_seconds = page_delay_seconds

    async def validate_credential(self, credential: str) -> bool:
        if not credential:
            return False
        async with self.session() as client:
            try:
                await self._me(client, credential)
            except UpstreamError:
                return False
        return True

    def raise_for_status(self, resp: httpx.Response) -> None:
        # Graph API reports expired or revoked tokens as 400 OAuthException, code 190
        if resp.status_code == 400:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            error = body.get("error") if isinstance(body, dict) else None
            error = error if isinstance(error, dict) else {}
            if error.get("code") == 190 or error.get("type") == "OAuthException":
                raise InvalidCredentialError(
                    f"Facebook rejected the access token: {error.get('message', 'OAuthException')}",
                    self.platform.value,
                    {"status": 400, "code": error.get("code")},
                )
        super().raise_for_status(resp)

    async def _me(self, client: httpx.AsyncClient, token: str) -> dict:
        return await self.get_json(
            client,
            f"{self.base_url}/me",
            params={"fields": "id,name,email", "access_token": token},
            timeout=VALIDATE_TIMEOUT,
        )

    async def _has_friends_permission(self, client: httpx.AsyncClient, token: str) -> bool:
        data = await self.get_json(
            client,
            f"{self.base_url}/me/permissions",
            params={"access_token": token},
            timeout=VALIDATE_TIMEOUT,
        )
        return any(
            p.get("permission") == "user_friends" and p.get("status") == "granted"
            for p in data.get("data", [])
        )

    async def fetch_contacts(
        self, credential: str, max_contacts: Optional[int] = None, batch_size: Optional[int] = None
    ) -> List[ContactInfo]:
        if not credential:
            raise InvalidCredentialError("Facebook access token is required", self.platform.value)
        limit = self.cap(max_contacts)
        page_size = min(batch_size or self.config.batch_size, 100)

        async with self.session() as client:
            profile = await self._me(client, credential)
            if not await self._has_friends_permission(client, credential):
                if self.config.production:
                    raise InvalidCredentialError(
                        "Facebook user_friends permission was not granted", self.platform.value
                    )
                logger.warning(f"user_friends not granted for Facebook user {profile.get('id')}, using mock friends")
                return self.mock_contacts()[:limit]

            contacts: List[ContactInfo] = []
            url: Optional[str] = f"{self.base_url}/me/friends"
            params = {"fields": "id,name,email", "limit": page_size, "access_token": credential}
            while url and len(contacts) < limit:
                data = await self.get_json(client, url, params=params, timeout=PAGE_TIMEOUT)
                for friend in data.get("data", []):
                    contacts.append(
                        ContactInfo(
                            id=str(friend.get("id")),
                            name=friend.get("name") or "Unknown",
                            email=normalize_email(friend.get("email")) or None,
                            platform=self.platform,
                        )
                    )
                # paging.next already carries the query string
                url = data.get("paging", {}).get("next")
                params = None
                if url and self.page_delay_seconds:
                    await asyncio.sleep(self.page_delay_seconds)

        logger.info(f"Fetched {min(len(contacts), limit)} Facebook friends")
        return contacts[:limit]

    def mock_contacts(self) -> List[ContactInfo]:
        return [
            ContactInfo(id=fid, name=name, email=email, platform=self.platform)
            for fid, name, email in MOCK_FRIENDS
        ]
