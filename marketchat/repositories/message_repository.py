from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from marketchat.errors import InvalidIdentifier
from marketchat.models.message import MessageDocument
from marketchat.utils.identity import to_object_id


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index(
            [("conversation_id", ASCENDING), ("created_at", ASCENDING), ("_id", ASCENDING)]
        )
        await self.collection.create_index(
            [("receiver_id", ASCENDING), ("is_read", ASCENDING), ("conversation_id", ASCENDING)]
        )

    async def save_message(
        self,
        conversation_id: Any,
        sender_id: str,
        receiver_id: str,
        text: str,
    ) -> MessageDocument:
        doc: Dict[str, Any] = {
            "conversation_id": to_object_id(conversation_id, "conversation id"),
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "text": text,
            "is_read": False,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        doc["conversation_id"] = str(doc["conversation_id"])
        return doc

    async def get_messages_by_conversation(
        self,
        conversation_id: Any,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> Tuple[List[MessageDocument], Optional[str]]:
        """Messages oldest first.

        Without a limit the whole thread is returned. With a limit the newest
        ``limit`` messages older than the cursor message are returned, still
        oldest first, together with the cursor for the page before them.
        """
        convo_oid = to_object_id(conversation_id, "conversation id")
        query: Dict[str, Any] = {"conversation_id": convo_oid}

        if limit is None:
            cur = self.collection.find(query).sort([("created_at", ASCENDING), ("_id", ASCENDING)])
            items = await cur.to_list(length=None)
            return [self._normalize(it) for it in items], None

        if cursor:
            anchor = await self.collection.find_one(
                {"_id": to_object_id(cursor, "cursor"), "conversation_id": convo_oid},
                {"created_at": 1},
            )
            if anchor is None:
                raise InvalidIdentifier("Unknown cursor")
            query["$or"] = [
                {"created_at": {"$lt": anchor["created_at"]}},
                {"created_at": anchor["created_at"], "_id": {"$lt": anchor["_id"]}},
            ]
        cur = self.collection.find(query).sort([("created_at", DESCENDING), ("_id", DESCENDING)]).limit(limit + 1)
        items = await cur.to_list(length=limit + 1)
        has_more = len(items) > limit
        items = [self._normalize(it) for it in items[:limit]]
        next_cursor = items[-1]["_id"] if has_more else None
        # fetched newest first, returned in chronological order
        return list(reversed(items)), next_cursor

    async def mark_read(self, conversation_id: Any, receiver_id: str) -> int:
        # filter is evaluated at execution time, so messages sent after this
        # update stay unread
        result = await self.collection.update_many(
            {
                "conversation_id": to_object_id(conversation_id, "conversation id"),
                "receiver_id": receiver_id,
                "is_read": False,
            },
            {"$set": {"is_read": True}},
        )
        return result.modified_count or 0

    async def count_unread(self, receiver_id: str) -> int:
        return await self.collection.count_documents({"receiver_id": receiver_id, "is_read": False})

    async def unread_counts_by_conversation(
        self,
        receiver_id: str,
        conversation_ids: Optional[List[Any]] = None,
    ) -> Dict[str, int]:
        """One grouped aggregate instead of a query per conversation."""
        match: Dict[str, Any] = {"receiver_id": receiver_id, "is_read": False}
        if conversation_ids is not None:
            match["conversation_id"] = {"$in": [to_object_id(c, "conversation id") for c in conversation_ids]}
        pipeline = [
            {"$match": match},
            {"$group": {"_id": "$conversation_id", "count": {"$sum": 1}}},
        ]
        rows = await self.collection.aggregate(pipeline).to_list(length=None)
        return {str(row["_id"]): row["count"] for row in rows}

    async def reassign_conversation(self, from_conversation_id: Any, to_conversation_id: Any) -> int:
        result = await self.collection.update_many(
            {"conversation_id": to_object_id(from_conversation_id, "conversation id")},
            {"$set": {"conversation_id": to_object_id(to_conversation_id, "conversation id")}},
        )
        return result.modified_count or 0

    def _normalize(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        doc["_id"] = str(doc.get("_id"))
        doc["conversation_id"] = str(doc.get("conversation_id"))
        return doc
