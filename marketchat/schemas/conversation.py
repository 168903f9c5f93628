from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StartConversationRequest(CamelModel):

    counterparty_id: Optional[str] = None
    scope_ref: Optional[str] = None


class SendMessageRequest(CamelModel):

    # length and emptiness are checked in clean_message_text
    text: Optional[str] = None


class LastMessageOut(CamelModel):

    message_id: str
    sender_id: str
    text: str
    created_at: datetime


class ConversationOut(CamelModel):

    id: str
    participants: List[str]
    scope_ref: Optional[str] = None
    last_message: Optional[LastMessageOut] = None
    unread_count: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ConversationOut":
        return cls(
            id=str(doc["_id"]),
            participants=doc["participants"],
            scope_ref=doc.get("scope_ref"),
            last_message=doc.get("last_message"),
            unread_count=doc.get("unread_count"),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )


class StartConversationOut(CamelModel):

    conversation: ConversationOut
    created: bool


class ConversationPage(CamelModel):

    items: List[ConversationOut]
    next_cursor: Optional[str] = None


class MessageOut(CamelModel):

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    text: str
    is_read: bool
    created_at: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "MessageOut":
        return cls(
            id=str(doc["_id"]),
            conversation_id=str(doc["conversation_id"]),
            sender_id=doc["sender_id"],
            receiver_id=doc["receiver_id"],
            text=doc["text"],
            is_read=doc.get("is_read", False),
            created_at=doc["created_at"],
        )


class MessagePage(CamelModel):

    items: List[MessageOut]
    next_cursor: Optional[str] = None


class UnreadCountOut(BaseModel):

    count: int = Field(ge=0)


class MarkReadOut(BaseModel):

    updated: int = Field(ge=0)
