from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from marketchat.config import Settings, get_settings
from marketchat.database.connection import mongo_db_dependency
from marketchat.repositories.conversation_repository import ConversationRepository
from marketchat.repositories.listing_repository import ListingRepository
from marketchat.repositories.message_repository import MessageRepository
from marketchat.repositories.user_repository import UserRepository
from marketchat.schemas.conversation import (
    ConversationOut,
    ConversationPage,
    MarkReadOut,
    MessageOut,
    MessagePage,
    SendMessageRequest,
    StartConversationOut,
    StartConversationRequest,
    UnreadCountOut,
)
from marketchat.services.access_guard import ConversationAccessGuard
from marketchat.services.chat_service import ChatService
from marketchat.services.message_service import MessageService
from marketchat.services.read_state_service import ReadStateService
from marketchat.utils.dependencies import get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


def get_chat_service(db = Depends(mongo_db_dependency), settings: Settings = Depends(get_settings)) -> ChatService:
    convo_repo = ConversationRepository(db)
    msg_repo = MessageRepository(db)
    guard = ConversationAccessGuard(convo_repo, mask_forbidden=settings.mask_forbidden_as_not_found)
    read_state = ReadStateService(msg_repo)
    return ChatService(
        conversation_repo=convo_repo,
        user_repo=UserRepository(db),
        listing_repo=ListingRepository(db),
        access_guard=guard,
        message_service=MessageService(msg_repo, convo_repo, guard, read_state),
        read_state=read_state,
        scope_mode=settings.conversation_scope_mode,
    )


@router.post("/start", response_model=StartConversationOut)
async def start_conversation(body: StartConversationRequest, response: Response, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    conversation, created = await service.start_conversation(current_user["_id"], body.counterparty_id, body.scope_ref)
    # 200 when the thread already existed
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return StartConversationOut(conversation=ConversationOut.from_document(conversation), created=created)


@router.get("", response_model=ConversationPage)
async def list_conversations(limit: int = Query(20, ge=1, le=100), cursor: Optional[str] = None, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    items, next_cursor = await service.list_conversations(current_user["_id"], limit=limit, cursor=cursor)
    return ConversationPage(items=[ConversationOut.from_document(it) for it in items], next_cursor=next_cursor)


@router.get("/unread-count", response_model=UnreadCountOut)
async def unread_count(current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    return UnreadCountOut(count=await service.unread_count(current_user["_id"]))


@router.get("/{conversation_id}", response_model=ConversationOut)
async def get_conversation(conversation_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    conversation = await service.get_conversation(conversation_id, current_user["_id"])
    return ConversationOut.from_document(conversation)


@router.get("/{conversation_id}/messages", response_model=MessagePage)
async def list_messages(conversation_id: str, limit: Optional[int] = Query(None, ge=1, le=200), cursor: Optional[str] = None, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    messages, next_cursor = await service.list_messages(conversation_id, current_user["_id"], limit=limit, cursor=cursor)
    return MessagePage(items=[MessageOut.from_document(m) for m in messages], next_cursor=next_cursor)


@router.post("/{conversation_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(conversation_id: str, body: SendMessageRequest, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    saved = await service.send_message(conversation_id, current_user["_id"], body.text)
    return MessageOut.from_document(saved)


@router.post("/{conversation_id}/read", response_model=MarkReadOut)
async def mark_read(conversation_id: str, current_user: dict = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    updated = await service.mark_read(conversation_id, current_user["_id"])
    return MarkReadOut(updated=updated)
