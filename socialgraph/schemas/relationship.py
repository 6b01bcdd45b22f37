from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Generic, List, Optional, TypeVar
from enum import Enum

T = TypeVar("T")


class RelationshipStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"


# Status the peer row must hold for a given owner row status
MIRROR_STATUS = {
    RelationshipStatus.PENDING: RelationshipStatus.RECEIVED,
    RelationshipStatus.RECEIVED: RelationshipStatus.PENDING,
    RelationshipStatus.ACCEPTED: RelationshipStatus.ACCEPTED,
    RelationshipStatus.REJECTED: RelationshipStatus.REJECTED,
    RelationshipStatus.BLOCKED: RelationshipStatus.BLOCKED,
}


class RelationshipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_email: str
    peer_email: str
    status: RelationshipStatus
    initiated_by: str
    message: Optional[str] = None
    accepted_at: Optional[datetime] = None
    blocked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class FriendRequestCreate(BaseModel):
    target_email: EmailStr
    message: Optional[str] = Field(None, max_length=500)


class FriendRequestResult(BaseModel):
    success: bool = True
    message: str
    request_id: str
    resurrected: bool = False


class RequestActionResult(BaseModel):
    success: bool = True
    message: str
    request_id: str
    status: RelationshipStatus


class AutoAcceptResult(BaseModel):
    created: bool
    message: str
    relationship_id: Optional[str] = None


class BidirectionalStatus(BaseModel):
    """Both directed rows of a pair, as seen from ``user_email``"""

    user_email: str
    other_email: str
    forward: Optional[RelationshipStatus] = None
    reverse: Optional[RelationshipStatus] = None

    @property
    def exists(self) -> bool:
        return self.forward is not None or self.reverse is not None

    def has(self, *statuses: RelationshipStatus) -> bool:
        return self.forward in statuses or self.reverse in statuses


class FriendItem(BaseModel):
    relationship_id: str
    email: str
    name: Optional[str] = None
    username: Optional[str] = None
    avatar: Optional[str] = None
    user_id: Optional[str] = None
    status: RelationshipStatus
    message: Optional[str] = None
    created_at: datetime
    accepted_at: Optional[datetime] = None


class CursorPage(BaseModel, Generic[T]):
    items: List[T]
    has_next_page: bool = False
    next_cursor: Optional[str] = None
    limit: int


class FriendsPage(CursorPage[FriendItem]):
    pass


class BulkSendRequest(BaseModel):
    emails: List[EmailStr] = Field(..., max_length=20)
    message: Optional[str] = Field(None, max_length=500)


class BulkRequestIds(BaseModel):
    request_ids: List[str] = Field(..., max_length=50)


class BulkItemResult(BaseModel):
    email: Optional[str] = None
    request_id: Optional[str] = None
    success: bool
    message: str
    error: Optional[str] = None


class BulkOperationResult(BaseModel):
    success: bool
    message: str
    success_count: int
    failure_count: int
    total: int
    results: List[BulkItemResult]


class MutualFriends(BaseModel):
    count: int = 0
    friend_names: List[str] = Field(default_factory=list)
    friend_ids: List[str] = Field(default_factory=list)
    friend_emails: List[str] = Field(default_factory=list)


class RequestItem(BaseModel):
    request_id: str
    sender_email: str
    name: Optional[str] = None
    username: Optional[str] = None
    avatar: Optional[str] = None
    user_id: Optional[str] = None
    message: Optional[str] = None
    created_at: datetime


class RequestsPage(CursorPage[RequestItem]):
    pass
