from typing import Any, Dict

from marketchat.errors import ApiErrorCode, ForbiddenError, NotFoundError
from marketchat.logging import get_logger
from marketchat.repositories.conversation_repository import ConversationRepository
from marketchat.utils.identity import normalize_identifier

logger = get_logger(__name__)


class ConversationAccessGuard:
    """Membership check that runs before any message read or write."""

    def __init__(self, conversation_repo: ConversationRepository, mask_forbidden: bool = False) -> None:
        self._conversation_repo = conversation_repo
        self._mask_forbidden = mask_forbidden

    async def authorize(self, conversation_id: Any, requester_id: str) -> Dict[str, Any]:
        conversation_id = normalize_identifier(conversation_id, "conversation id")
        conversation = await self._conversation_repo.find_by_id(conversation_id)
        if conversation is None:
            raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
        if requester_id not in conversation.get("participants", []):
            logger.warning("conversation_access_denied", conversation_id=conversation_id)
            if self._mask_forbidden:
                raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
            raise ForbiddenError(message="You are not a participant in this conversation")
        return conversation


def other_participant(conversation: Dict[str, Any], user_id: str) -> str:
    return next(p for p in conversation["participants"] if p != user_id)
