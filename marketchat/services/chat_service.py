from typing import Any, Dict, List, Optional, Tuple

from marketchat.config import ScopeMode
from marketchat.errors import ApiErrorCode, NotFoundError, SelfConversation, ValidationError
from marketchat.logging import get_logger
from marketchat.repositories.conversation_repository import ConversationRepository
from marketchat.repositories.listing_repository import ListingRepository
from marketchat.repositories.user_repository import UserRepository
from marketchat.services.access_guard import ConversationAccessGuard
from marketchat.services.message_service import MessageService
from marketchat.services.read_state_service import ReadStateService
from marketchat.utils.identity import normalize_identifier

logger = get_logger(__name__)


class ChatService:

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        user_repo: UserRepository,
        listing_repo: ListingRepository,
        access_guard: ConversationAccessGuard,
        message_service: MessageService,
        read_state: ReadStateService,
        scope_mode: ScopeMode = ScopeMode.LISTING,
    ) -> None:
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo
        self._listing_repo = listing_repo
        self._access_guard = access_guard
        self._message_service = message_service
        self._read_state = read_state
        self._scope_mode = scope_mode

    async def start_conversation(
        self,
        requester_id: str,
        counterparty_id: Any,
        scope_ref: Optional[Any] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """Start-or-get. Returns (conversation, created)."""
        if counterparty_id is None or counterparty_id == "":
            raise ValidationError(message="counterpartyId is required")
        requester = normalize_identifier(requester_id, "user id")
        counterparty = normalize_identifier(counterparty_id, "counterpartyId")
        if requester == counterparty:
            raise SelfConversation()

        scope = await self._resolve_scope(requester, counterparty, scope_ref)

        if not await self._user_repo.exists(counterparty):
            raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "Counterparty user not found")

        conversation, created = await self._conversation_repo.find_or_create(requester, counterparty, scope)
        return conversation, created

    async def _resolve_scope(self, requester: str, counterparty: str, scope_ref: Optional[Any]) -> Optional[str]:
        if self._scope_mode == ScopeMode.GLOBAL:
            if scope_ref is not None:
                raise ValidationError(
                    ApiErrorCode.E_SCOPE_NOT_SUPPORTED,
                    "scopeRef is not accepted, conversations are per user pair",
                )
            return None

        if scope_ref is None or scope_ref == "":
            raise ValidationError(ApiErrorCode.E_SCOPE_REQUIRED, "scopeRef is required")
        scope = normalize_identifier(scope_ref, "scopeRef")
        listing = await self._listing_repo.get_listing_by_id(scope)
        if listing is None:
            raise NotFoundError(ApiErrorCode.E_LISTING_NOT_FOUND, "Listing not found")

        # one side of an ad conversation is always the ad's owner
        owner = listing["user_id"]
        if owner != requester and owner != counterparty:
            raise ValidationError(
                ApiErrorCode.E_COUNTERPARTY_MISMATCH,
                "counterpartyId does not match the listing owner",
            )
        return scope

    async def get_conversation(self, conversation_id: Any, user_id: str) -> Dict[str, Any]:
        conversation = await self._access_guard.authorize(conversation_id, user_id)
        counts = await self._read_state.unread_counts_by_conversation(user_id, [conversation["_id"]])
        conversation["unread_count"] = counts.get(conversation["_id"], 0)
        return conversation

    async def list_conversations(
        self, user_id: str, limit: int = 20, cursor: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        items, next_cursor = await self._conversation_repo.list_for_user(user_id, limit=limit, cursor=cursor)
        if items:
            counts = await self._read_state.unread_counts_by_conversation(user_id, [it["_id"] for it in items])
        else:
            counts = {}
        for it in items:
            it["unread_count"] = counts.get(it["_id"], 0)
        return items, next_cursor

    async def list_messages(
        self,
        conversation_id: Any,
        user_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        return await self._message_service.list(conversation_id, user_id, limit=limit, cursor=cursor)

    async def send_message(self, conversation_id: Any, sender_id: str, text: Any) -> Dict[str, Any]:
        return await self._message_service.append(conversation_id, sender_id, text)

    async def mark_read(self, conversation_id: Any, user_id: str) -> int:
        conversation = await self._access_guard.authorize(conversation_id, user_id)
        return await self._read_state.mark_read(conversation["_id"], user_id)

    async def unread_count(self, user_id: str) -> int:
        return await self._read_state.unread_count_for_user(user_id)
