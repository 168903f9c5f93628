from datetime import datetime
from typing import TypedDict


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: str
    sender_id: str
    # the participant who is not the sender
    receiver_id: str
    text: str
    is_read: bool
    created_at: datetime
