"""
Unit tests for caller id resolution.
"""

from uuid import UUID

import pytest

from rag_chat.core.security import looks_like_uuid, resolve_caller_id


@pytest.mark.parametrize(
    "value",
    ["3f1c2b9e-8d4a-4c6b-9e2f-1a2b3c4d5e6f", "3F1C2B9E-8D4A-4C6B-9E2F-1A2B3C4D5E6F"],
)
def test_canonical_uuid_is_accepted(value):
    assert looks_like_uuid(value)
    assert resolve_caller_id(value) == UUID(value)


@pytest.mark.parametrize(
    "value",
    [
        None,
        "",
        "anonymous",
        "3f1c2b9e8d4a4c6b9e2f1a2b3c4d5e6f",
        "{3f1c2b9e-8d4a-4c6b-9e2f-1a2b3c4d5e6f}",
        "3f1c2b9e-8d4a-4c6b-9e2f-1a2b3c4d5e6f\n",
        " 3f1c2b9e-8d4a-4c6b-9e2f-1a2b3c4d5e6f",
        "not-a-uuid",
    ],
)
def test_anything_else_is_anonymous(value):
    assert not looks_like_uuid(value)
    assert resolve_caller_id(value) is None
