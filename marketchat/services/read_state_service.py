from typing import Any, Dict, List, Optional

from marketchat.logging import get_logger
from marketchat.repositories.message_repository import MessageRepository

logger = get_logger(__name__)


class ReadStateService:
    """Unread counters and bulk read transitions, keyed by the stored receiver_id."""

    def __init__(self, message_repo: MessageRepository) -> None:
        self._message_repo = message_repo

    async def unread_count_for_user(self, user_id: str) -> int:
        return await self._message_repo.count_unread(user_id)

    async def unread_counts_by_conversation(
        self, user_id: str, conversation_ids: Optional[List[Any]] = None
    ) -> Dict[str, int]:
        return await self._message_repo.unread_counts_by_conversation(user_id, conversation_ids)

    async def mark_read(self, conversation_id: Any, recipient_id: str) -> int:
        updated = await self._message_repo.mark_read(conversation_id, recipient_id)
        if updated:
            logger.info("messages_marked_read", conversation_id=str(conversation_id), count=updated)
        return updated
