from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum


class SyncPlatform(str, Enum):
    CONTACT = "contact"
    PHONE = "phone"
    FACEBOOK = "facebook"
    LINE = "line"


class ContactInfo(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    platform: SyncPlatform


class NewFriend(BaseModel):
    email: str
    name: str
    source: str


class SyncDetails(BaseModel):
    contacts_processed: List[ContactInfo] = Field(default_factory=list)
    new_friends: List[NewFriend] = Field(default_factory=list)


class SyncResult(BaseModel):
    platform: SyncPlatform
    total_contacts: int = 0
    cashpop_users_found: int = 0
    new_friendships_created: int = 0
    already_friends: int = 0
    pending_requests: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    details: SyncDetails = Field(default_factory=SyncDetails)
    execution_time_ms: int = 0
    test_mode: bool = False


class SyncResponse(BaseModel):
    success: bool
    message: str
    result: SyncResult


class ProcessOptions(BaseModel):
    batch_size: Optional[int] = None
    skip_duplicate_check: bool = False
    create_suggestions: bool = True


class FacebookSyncData(BaseModel):
    token: str = Field(..., min_length=1)


class LineSyncData(BaseModel):
    token: str = Field(..., min_length=1)


class PhoneSyncData(BaseModel):
    session_id: str = Field(..., min_length=1)
    contacts_json: str


class SyncContactsRequest(BaseModel):
    platform: SyncPlatform
    facebook: Optional[FacebookSyncData] = None
    line: Optional[LineSyncData] = None
    phone: Optional[PhoneSyncData] = None

    @model_validator(mode="after")
    def check_platform_payload(self) -> "SyncContactsRequest":
        required = {
            SyncPlatform.FACEBOOK: self.facebook,
            SyncPlatform.LINE: self.line,
            SyncPlatform.PHONE: self.phone,
        }
        if self.platform in required and required[self.platform] is None:
            raise ValueError(f"{self.platform.value} payload is required for this platform")
        return self


class SyncHistoryEntry(BaseModel):
    id: str
    friend_email: str
    platform: Optional[str] = None
    status: str
    message: Optional[str] = None
    created_at: datetime


class SyncHistory(BaseModel):
    success: bool = True
    message: str
    history: List[SyncHistoryEntry] = Field(default_factory=list)
    stats: Optional[Dict[str, Any]] = None
