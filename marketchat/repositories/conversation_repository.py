from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from marketchat.errors import ConflictError, InvalidIdentifier
from marketchat.logging import get_logger
from marketchat.models.conversation import ConversationDocument, LastMessageSnapshot
from marketchat.utils.identity import compute_canonical_key, normalize_identifier, sorted_pair, to_object_id

logger = get_logger(__name__)

UNIQUE_KEY_INDEX = "scope_ref_1_canonical_key_1_unique"


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        # the storage-level guarantee of one conversation per (scope, pair);
        # legacy rows without a key stay outside it until maintenance fixes them
        await self.collection.create_index(
            [("scope_ref", ASCENDING), ("canonical_key", ASCENDING)],
            unique=True,
            name=UNIQUE_KEY_INDEX,
            partialFilterExpression={"canonical_key": {"$exists": True}},
        )
        await self.collection.create_index([("participants", ASCENDING), ("updated_at", DESCENDING)])

    async def find_by_id(self, conversation_id: Any) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"_id": to_object_id(conversation_id, "conversation id")})
        return self._normalize(doc)

    async def find_by_key(self, canonical_key: str, scope_ref: Optional[str]) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"scope_ref": scope_ref, "canonical_key": canonical_key})
        return self._normalize(doc)

    async def find_or_create(
        self,
        participant_a: Any,
        participant_b: Any,
        scope_ref: Optional[Any] = None,
    ) -> Tuple[ConversationDocument, bool]:
        """Return (conversation, created).

        Optimistic insert with conflict-read fallback: the unique index decides
        the winner when several requests for the same pair arrive together, and
        the losers re-read the winner's document.
        """
        first, second = sorted_pair(participant_a, participant_b)
        scope = normalize_identifier(scope_ref, "scopeRef") if scope_ref is not None else None
        canonical_key = compute_canonical_key(first, second, scope)

        existing = await self.find_by_key(canonical_key, scope)
        if existing:
            return existing, False

        now = datetime.now(timezone.utc)
        doc: Dict[str, Any] = {
            "participants": [first, second],
            "scope_ref": scope,
            "canonical_key": canonical_key,
            "last_message": None,
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError:
            winner = await self.find_by_key(canonical_key, scope)
            if winner is None:
                logger.error("conversation_create_race_unresolved", canonical_key=canonical_key)
                raise ConflictError(message="Conversation could not be created, please retry")
            logger.info(
                "conversation_create_race_recovered",
                conversation_id=winner["_id"],
                canonical_key=canonical_key,
            )
            return winner, False

        doc["_id"] = str(result.inserted_id)
        logger.info("conversation_created", conversation_id=doc["_id"], scope_ref=scope)
        return doc, True

    async def update_on_new_message(self, conversation_id: Any, snapshot: LastMessageSnapshot) -> None:
        await self.collection.update_one(
            {"_id": to_object_id(conversation_id, "conversation id")},
            {"$set": {"last_message": snapshot, "updated_at": snapshot["created_at"]}},
        )

    async def list_for_user(
        self,
        user_id: str,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> Tuple[List[ConversationDocument], Optional[str]]:
        query: Dict[str, Any] = {"participants": user_id}
        sort = [("updated_at", DESCENDING), ("_id", DESCENDING)]
        if cursor:
            # cursor is the id of the last conversation of the previous page
            anchor = await self.collection.find_one(
                {"_id": to_object_id(cursor, "cursor"), "participants": user_id},
                {"updated_at": 1},
            )
            if anchor is None:
                raise InvalidIdentifier("Unknown cursor")
            query["$or"] = [
                {"updated_at": {"$lt": anchor["updated_at"]}},
                {"updated_at": anchor["updated_at"], "_id": {"$lt": anchor["_id"]}},
            ]

        # one extra row tells whether another page exists
        cursor_db = self.collection.find(query).sort(sort).limit(limit + 1)
        items = await cursor_db.to_list(length=limit + 1)
        has_more = len(items) > limit
        items = items[:limit]
        for it in items:
            it["_id"] = str(it.get("_id"))
        next_cursor = items[-1]["_id"] if has_more else None
        return items, next_cursor

    def _normalize(self, doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if doc is None:
            return None
        if isinstance(doc.get("_id"), ObjectId):
            doc["_id"] = str(doc["_id"])
        return doc
