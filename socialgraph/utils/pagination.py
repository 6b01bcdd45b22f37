import base64
import binascii
from datetime import datetime
from typing import List, Sequence

from socialgraph.utils.exceptions import ValidationError

CURSOR_SEPARATOR = "|"


def encode_cursor(parts: Sequence[object]) -> str:
    raw = CURSOR_SEPARATOR.join(
        p.isoformat() if isinstance(p, datetime) else str(p) for p in parts
    )
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str, size: int) -> List[str]:
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        raise ValidationError("Invalid cursor", {"cursor": cursor})
    parts = raw.split(CURSOR_SEPARATOR)
    if len(parts) != size:
        raise ValidationError("Invalid cursor", {"cursor": cursor})
    return parts


def parse_cursor_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError("Invalid cursor", {"cursor": value})


def clamp_limit(limit: int, default: int = 20, maximum: int = 100) -> int:
    if not limit or limit < 1:
        return default
    return min(limit, maximum)
