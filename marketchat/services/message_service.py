from typing import Any, Dict, List, Optional, Tuple

from marketchat.config import MAX_MESSAGE_LENGTH
from marketchat.errors import ApiErrorCode, ValidationError
from marketchat.logging import get_logger
from marketchat.repositories.conversation_repository import ConversationRepository
from marketchat.repositories.message_repository import MessageRepository
from marketchat.services.access_guard import ConversationAccessGuard, other_participant
from marketchat.services.read_state_service import ReadStateService

logger = get_logger(__name__)


def clean_message_text(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(ApiErrorCode.E_INVALID_TEXT, "Message text cannot be empty")
    cleaned = text.strip()
    if len(cleaned) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            ApiErrorCode.E_INVALID_TEXT,
            f"Message text cannot exceed {MAX_MESSAGE_LENGTH} characters",
        )
    return cleaned


class MessageService:

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        access_guard: ConversationAccessGuard,
        read_state: ReadStateService,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._access_guard = access_guard
        self._read_state = read_state

    async def append(self, conversation_id: Any, sender_id: str, text: Any) -> Dict[str, Any]:
        """Persist a message, then refresh the conversation's last-message snapshot.

        The two writes are sequenced, not transactional: if the snapshot update
        fails the message still exists and the next send overwrites the snapshot.
        """
        # membership is checked on every send
        conversation = await self._access_guard.authorize(conversation_id, sender_id)
        content = clean_message_text(text)
        receiver_id = other_participant(conversation, sender_id)

        saved = await self._message_repo.save_message(
            conversation_id=conversation["_id"],
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=content,
        )
        await self._conversation_repo.update_on_new_message(
            conversation["_id"],
            {
                "message_id": saved["_id"],
                "sender_id": sender_id,
                "text": content,
                "created_at": saved["created_at"],
            },
        )
        logger.info("message_sent", conversation_id=conversation["_id"], message_id=saved["_id"])
        return saved

    async def list(
        self,
        conversation_id: Any,
        viewer_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Thread in chronological order; viewing consumes the viewer's unread messages."""
        conversation = await self._access_guard.authorize(conversation_id, viewer_id)
        await self._read_state.mark_read(conversation["_id"], viewer_id)
        return await self._message_repo.get_messages_by_conversation(
            conversation["_id"], limit=limit, cursor=cursor
        )
