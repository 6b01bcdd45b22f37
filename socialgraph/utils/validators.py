import re
from typing import Iterable, List, Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
KOREAN_MOBILE_PATTERN = re.compile(r"^\+821[01]\d{8}$")


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def unique_emails(emails: Iterable[Optional[str]]) -> List[str]:
    """Normalize, drop empties and keep first-seen order"""
    seen = set()
    result = []
    for email in emails:
        normalized = normalize_email(email)
        if normalized and normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result


def format_phone_number(raw: str) -> str:
    """Normalize a Korean mobile number to E.164 (+82...)"""
    digits = re.sub(r"\D", "", raw or "")
    if digits.startswith("82"):
        return f"+{digits}"
    if digits.startswith("010"):
        return f"+82{digits[1:]}"
    if digits.startswith("10") and len(digits) == 10:
        return f"+82{digits}"
    return f"+82{digits}"


def is_valid_phone_number(phone: str) -> bool:
    return KOREAN_MOBILE_PATTERN.match(phone or "") is not None


def mask_phone(phone: Optional[str]) -> str:
    if not phone or len(phone) < 8:
        return "****"
    return f"{phone[:5]}****{phone[-4:]}"
