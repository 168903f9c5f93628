"""Order-independent identity for two-party conversations.

Ids are 24-hex ObjectId strings, so neither ":" nor "|" can occur inside
one. The pair is joined with ":" and an optional scope is prefixed with "|",
which keeps (scope=X, pair) and (scope=Y, pair) apart and never lets a scope
be confused with a participant.
"""

from typing import Any, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId

from marketchat.errors import InvalidIdentifier, SelfConversation

PAIR_SEPARATOR = ":"
SCOPE_SEPARATOR = "|"


def is_valid_identifier(value: Any) -> bool:
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and ObjectId.is_valid(value)


def normalize_identifier(value: Any, field: str = "id") -> str:
    """Return the canonical lower-case hex form of an id or raise InvalidIdentifier."""
    if not is_valid_identifier(value):
        raise InvalidIdentifier(f"Invalid {field} format")
    try:
        return str(ObjectId(value))
    except (InvalidId, TypeError):
        raise InvalidIdentifier(f"Invalid {field} format")


def to_object_id(value: Any, field: str = "id") -> ObjectId:
    return ObjectId(normalize_identifier(value, field))


def sorted_pair(participant_a: Any, participant_b: Any) -> Tuple[str, str]:
    a = normalize_identifier(participant_a, "participant id")
    b = normalize_identifier(participant_b, "participant id")
    if a == b:
        raise SelfConversation()
    first, second = sorted((a, b))
    return first, second


def participants_key(participant_a: Any, participant_b: Any) -> str:
    return PAIR_SEPARATOR.join(sorted_pair(participant_a, participant_b))


def compute_canonical_key(participant_a: Any, participant_b: Any, scope_ref: Optional[Any] = None) -> str:
    """Canonical key for the unordered pair, optionally scoped to a listing.

    compute_canonical_key(a, b, s) == compute_canonical_key(b, a, s) for all valid inputs.
    """
    key = participants_key(participant_a, participant_b)
    if scope_ref is None:
        return key
    return f"{normalize_identifier(scope_ref, 'scopeRef')}{SCOPE_SEPARATOR}{key}"
