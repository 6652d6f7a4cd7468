"""Input normalisation for free-text moderation fields."""

from __future__ import annotations

import re
from typing import Optional

from modengine.domain.errors import TextTooLong

DESCRIPTION_MAX = 1000
INTERNAL_NOTES_MAX = 5000
REASON_MAX = 1000
NOTIFICATION_MESSAGE_MAX = 2000

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def clean_text(value: Optional[str]) -> Optional[str]:
    """Strip control characters and surrounding whitespace; blank becomes ``None``."""
    if value is None:
        return None
    cleaned = _CONTROL_CHARS.sub("", value).strip()
    return cleaned or None


def bounded_text(value: Optional[str], *, field: str, limit: int) -> Optional[str]:
    cleaned = clean_text(value)
    if cleaned is not None and len(cleaned) > limit:
        raise TextTooLong(field, limit)
    return cleaned
