from datetime import datetime
from typing import List, Optional, TypedDict


class LastMessageSnapshot(TypedDict):
    message_id: str
    sender_id: str
    text: str
    created_at: datetime


class ConversationDocument(TypedDict, total=False):
    _id: str
    # sorted, normalized user ids; always exactly two and distinct
    participants: List[str]
    # listing id in listing mode, explicit None in global mode
    scope_ref: Optional[str]
    canonical_key: str
    last_message: Optional[LastMessageSnapshot]
    created_at: datetime
    updated_at: datetime
