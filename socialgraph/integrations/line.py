import logging
from typing import List, Optional

from socialgraph.integrations.base import ContactAdapter
from socialgraph.schemas.sync import ContactInfo, SyncPlatform
from socialgraph.utils.exceptions import InvalidCredentialError, PlatformNotSupportedError, UpstreamError

logger = logging.getLogger(__name__)

MOCK_FRIENDS = [
    ("mock_line_1", "Alice Line", "alice.line@example.com"),
    ("mock_line_2", "Bob Line", "bob.line@example.com"),
    ("mock_line_3", "Carol Line", "carol.line@example.com"),
    ("mock_line_4", "David Line", "david.line@example.com"),
]


class LineContactsAdapter(ContactAdapter):
    """LINE Login profile check.

    LINE has no public friends API; outside production the adapter returns
    mock friends once the token is verified.
    """

    platform = SyncPlatform.LINE
    label = "LINE"

    @property
    def base_url(self) -> str:
        return self.config.line_api_base.rstrip("/")

    async def _profile(self, client, token: str) -> dict:
        return await self.get_json(
            client,
            f"{self.base_url}/profile",
            headers={"Authorization": f"Bearer {token}"},
            timeout=10.0,
        )

    async def validate_credential(self, credential: str) -> bool:
        if not credential:
            return False
        async with self.session() as client:
            try:
                await self._profile(client, credential)
            except UpstreamError:
                return False
        return True

    async def fetch_contacts(
        self, credential: str, max_contacts: Optional[int] = None, batch_size: Optional[int] = None
    ) -> List[ContactInfo]:
        if not credential:
            raise InvalidCredentialError("LINE access token is required", self.platform.value)
        async with self.session() as client:
            profile = await self._profile(client, credential)

        if self.config.production:
            raise PlatformNotSupportedError(
                "LINE does not provide access to a user's friends list", self.platform.value
            )
        logger.warning(f"Using mock LINE friends for {profile.get('userId', 'unknown user')}")
        return self.mock_contacts()[: self.cap(max_contacts)]

    def mock_contacts(self) -> List[ContactInfo]:
        return [
            ContactInfo(id=lid, name=name, email=email, platform=self.platform)
            for lid, name, email in MOCK_FRIENDS
        ]
