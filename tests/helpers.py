"""Builders shared by service-level and HTTP tests."""

from marketchat.config import ScopeMode
from marketchat.repositories.conversation_repository import ConversationRepository
from marketchat.repositories.listing_repository import ListingRepository
from marketchat.repositories.message_repository import MessageRepository
from marketchat.repositories.user_repository import UserRepository
from marketchat.services.access_guard import ConversationAccessGuard
from marketchat.services.chat_service import ChatService
from marketchat.services.message_service import MessageService
from marketchat.services.read_state_service import ReadStateService


def build_chat_service(db, scope_mode=ScopeMode.LISTING, mask_forbidden=False) -> ChatService:
    convo_repo = ConversationRepository(db)
    msg_repo = MessageRepository(db)
    guard = ConversationAccessGuard(convo_repo, mask_forbidden=mask_forbidden)
    read_state = ReadStateService(msg_repo)
    return ChatService(
        conversation_repo=convo_repo,
        user_repo=UserRepository(db),
        listing_repo=ListingRepository(db),
        access_guard=guard,
        message_service=MessageService(msg_repo, convo_repo, guard, read_state),
        read_state=read_state,
        scope_mode=scope_mode,
    )


async def seed_users(db, count: int = 3) -> list:
    repo = UserRepository(db)
    return [await repo.create_user(f"user{i}@example.com", f"User {i}") for i in range(count)]


async def seed_listing(db, owner_id: str, title: str = "Road bike") -> str:
    return await ListingRepository(db).create_listing(owner_id=owner_id, title=title)
