from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum


class SuggestionSource(str, Enum):
    CONTACT = "contact"
    MUTUAL_FRIENDS = "mutual_friends"
    FACEBOOK = "facebook"
    LINE = "line"
    SYSTEM = "system"


class SuggestionStatus(str, Enum):
    ACTIVE = "active"
    DISMISSED = "dismissed"
    FRIEND_REQUEST_SENT = "friend_request_sent"


class SuggestionCandidate(BaseModel):
    user_email: str
    suggested_user_email: str
    source: SuggestionSource
    reason: str
    mutual_friends_count: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 5

    @property
    def pair(self) -> tuple:
        return (self.user_email, self.suggested_user_email)


class SuggestionContext(BaseModel):
    user_email: str
    max_suggestions: int = 50
    min_mutual_friends: Optional[int] = None
    exclude_existing: bool = True


class StrategyResult(BaseModel):
    candidates: List[SuggestionCandidate] = Field(default_factory=list)
    processed: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)


class GenerationResult(StrategyResult):
    persisted: int = 0


class SuggestedAccount(BaseModel):
    id: Optional[str] = None
    email: str
    name: Optional[str] = None
    username: Optional[str] = None
    avatar: Optional[str] = None


class SuggestionItem(BaseModel):
    id: str
    user: SuggestedAccount
    source: SuggestionSource
    reason: str
    mutual_friends_count: int = 0
    mutual_friend_names: List[str] = Field(default_factory=list)
    priority: int
    created_at: datetime


class SuggestionsPage(BaseModel):
    items: List[SuggestionItem]
    has_next_page: bool = False
    next_cursor: Optional[str] = None
    limit: int


class GenerateSuggestionsRequest(BaseModel):
    max_suggestions: int = Field(20, ge=1, le=100)
    min_mutual_friends: int = Field(1, ge=1)


class SuggestionActionResult(BaseModel):
    success: bool = True
    message: str
    suggestion_id: str
