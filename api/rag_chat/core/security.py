"""
Caller identity helpers.

Authentication happens upstream of this service; the chat body only carries
an optional `user_id`. A well-formed UUID unlocks the caller's private
partition. Anything else (absent, "anonymous", garbage) is treated as an
anonymous caller restricted to public documents. Never rejected.
"""

import re
from uuid import UUID

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def looks_like_uuid(value: str | None) -> bool:
    """True only for the canonical 8-4-4-4-12 hex form (no surrounding whitespace)."""
    return bool(value) and _UUID_PATTERN.fullmatch(value) is not None


def resolve_caller_id(user_id: str | None) -> UUID | None:
    """
    Map the inbound `user_id` to a caller id for private retrieval.

    Returns:
        The parsed UUID, or None when the value is missing or not UUID-shaped.
    """
    if not looks_like_uuid(user_id):
        return None
    try:
        return UUID(user_id)
    except ValueError:
        return None
