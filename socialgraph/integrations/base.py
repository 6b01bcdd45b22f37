import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from socialgraph.core.config import SocialConfig
from socialgraph.schemas.sync import ContactInfo, SyncPlatform
from socialgraph.utils.exceptions import (
    InvalidCredentialError, RateLimitedError, SyncTimeoutError, UpstreamError,
)

logger = logging.getLogger(__name__)

# HTTP client settings
HTTPX_TIMEOUT = httpx.Timeout(15.0, connect=5.0)
HARD_CONTACT_LIMIT = 5000


class ContactAdapter(ABC):
    """Fetches a user's contacts from one platform as ``ContactInfo`` records.

    Upstream failures surface as typed errors: ``InvalidCredentialError``,
    ``RateLimitedError``, ``SyncTimeoutError`` or ``UpstreamError``.
    """

    platform: SyncPlatform
    label: str = "Platform"

    def __init__(self, config: Optional[SocialConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or SocialConfig()
        self.client = client

    @abstractmethod
    async def fetch_contacts(
        self, credential: str, max_contacts: Optional[int] = None, batch_size: Optional[int] = None
    ) -> List[ContactInfo]:
        """Return at most ``max_contacts`` normalized contacts"""

    @abstractmethod
    async def validate_credential(self, credential: str) -> bool:
        """True when the credential is accepted by the platform"""

    @abstractmethod
    def mock_contacts(self) -> List[ContactInfo]:
        """Fixed contacts for environments without live credentials"""

    def cap(self, max_contacts: Optional[int]) -> int:
        ceiling = min(self.config.max_contacts, HARD_CONTACT_LIMIT)
        if not max_contacts or max_contacts <= 0:
            return ceiling
        return min(max_contacts, ceiling)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.client is not None:
            yield self.client
        else:
            async with httpx.AsyncClient(timeout=HTTPX_TIMEOUT) as client:
                yield client

    async def get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        try:
            resp = await client.get(url, params=params, headers=headers, timeout=timeout or HTTPX_TIMEOUT)
        except httpx.TimeoutException as e:
            raise SyncTimeoutError(f"{self.label} API request timed out", self.platform.value) from e
        except httpx.TransportError as e:
            raise UpstreamError(f"{self.label} API is unreachable: {e}", self.platform.value) from e

        self.raise_for_status(resp)
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(f"{self.label} API returned invalid JSON", self.platform.value) from e

    def raise_for_status(self, resp: httpx.Response) -> None:
        status = resp.status_code
        if status < 400:
            return
        platform = self.platform.value
        if status in (401, 403):
            raise InvalidCredentialError(
                f"{self.label} rejected the access token ({status})", platform, {"status": status}
            )
        if status == 429:
            retry_after = resp.headers.get("Retry-After")
            raise RateLimitedError(
                f"{self.label} API rate limit exceeded",
                platform,
                int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        logger.warning(f"{self.label} API error {status}: {resp.text[:200]}")
        raise UpstreamError(f"{self.label} API error ({status})", platform, {"status": status})
