from typing import Any, Dict, Optional


class SocialGraphException(Exception):
    """Base exception for the application"""

    code = "social_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(SocialGraphException):
    """Validation related errors"""
    code = "validation_error"


class NotFoundError(SocialGraphException):
    """Resource not found errors"""
    code = "not_found"


class ConflictError(SocialGraphException):
    """Resource conflict errors"""
    code = "conflict"


class UpstreamError(SocialGraphException):
    """External platform errors"""
    code = "upstream_error"

    def __init__(self, message: str, platform: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if platform:
            details["platform"] = platform
        super().__init__(message, details)
        self.platform = platform


class InvariantViolationError(SocialGraphException):
    """Mirror rows disagree; never caught inside the core"""
    code = "invariant_violation"


# Validation

class SelfRequestError(ValidationError):
    code = "self_request"

    def __init__(self, email: str):
        super().__init__("Cannot send a friend request to yourself", {"email": email})


class InvalidEmailError(ValidationError):
    code = "invalid_email"

    def __init__(self, email: str):
        super().__init__(f"Invalid email address: {email}", {"email": email})


class InvalidCandidateError(ValidationError):
    code = "invalid_candidate"

    def __init__(self, reason: str, candidate: Optional[Dict[str, Any]] = None):
        super().__init__(f"Invalid suggestion candidate: {reason}", {"candidate": candidate or {}})


class BulkLimitExceededError(ValidationError):
    code = "bulk_limit_exceeded"

    def __init__(self, operation: str, limit: int, requested: int):
        super().__init__(
            f"Bulk {operation} accepts at most {limit} items, got {requested}",
            {"operation": operation, "limit": limit, "requested": requested},
        )


class SuggestionLimitExceededError(ValidationError):
    code = "suggestion_limit_exceeded"

    def __init__(self, requested: int, limit: int):
        super().__init__(
            f"Requested {requested} suggestions, maximum is {limit}",
            {"requested": requested, "limit": limit},
        )


# Conflict

class AlreadyRelatedError(ConflictError):
    code = "already_related"

    def __init__(self, user_email: str, other_email: str, status: str):
        super().__init__(
            f"A relationship between {user_email} and {other_email} already exists ({status})",
            {"user_email": user_email, "other_email": other_email, "status": status},
        )
        self.status = status


class RelationshipActionNotAllowedError(ConflictError):
    code = "action_not_allowed"

    def __init__(self, action: str, current_status: Optional[str]):
        super().__init__(
            f"Cannot {action} a relationship in status {current_status or 'none'}",
            {"action": action, "current_status": current_status},
        )


# Not found

class TargetNotFoundError(NotFoundError):
    code = "target_not_found"

    def __init__(self, email: str):
        super().__init__(f"No account found for {email}", {"email": email})


class RequestNotFoundError(NotFoundError):
    code = "request_not_found"

    def __init__(self, request_id: str):
        super().__init__("Friend request not found or already handled", {"request_id": request_id})


class SuggestionNotFoundError(NotFoundError):
    code = "suggestion_not_found"

    def __init__(self, suggestion_id: str):
        super().__init__("Suggestion not found", {"suggestion_id": suggestion_id})


class StrategyNotFoundError(NotFoundError):
    code = "strategy_not_found"

    def __init__(self, source: str):
        super().__init__(f"No suggestion strategy registered for source '{source}'", {"source": source})


# Upstream

class InvalidCredentialError(UpstreamError):
    code = "invalid_credential"


class RateLimitedError(UpstreamError):
    code = "rate_limited"

    def __init__(self, message: str, platform: Optional[str] = None, retry_after: Optional[int] = None):
        super().__init__(message, platform, {"retry_after": retry_after})
        self.retry_after = retry_after


class SyncTimeoutError(UpstreamError):
    code = "timeout"


class PlatformNotSupportedError(UpstreamError):
    code = "platform_not_supported"


class SyncRateLimitError(SocialGraphException):
    """A user re-ran a platform sync inside its cooldown window"""
    code = "sync_rate_limited"

    def __init__(self, platform: str, retry_after: int):
        super().__init__(
            f"Sync for {platform} was run recently, retry in {retry_after} seconds",
            {"platform": platform, "retry_after": retry_after},
        )
        self.retry_after = retry_after


class MutualFriendsCalculationError(SocialGraphException):
    code = "mutual_friends_failed"

    def __init__(self, user_email: str, other_key: str, cause: Optional[str] = None):
        super().__init__(
            f"Failed to calculate mutual friends for {user_email} and {other_key}",
            {"user_email": user_email, "other": other_key, "cause": cause},
        )
        self.user_email = user_email
        self.other_key = other_key
