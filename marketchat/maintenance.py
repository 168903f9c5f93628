"""Bring legacy conversation and message documents under the canonical-key model.

Older rows were keyed by an ad plus the participants array, by sorted
userA/userB fields, or by a participantsKey string, and none of those
schemes stopped duplicates from slipping in. Older messages carry
conversation / sender / createdAt and no receiver or read flag. This pass:

1. backfills conversation_id / sender_id / receiver_id / is_read / created_at
   on legacy messages,
2. backfills participants / scope_ref / canonical_key on rows that lack them,
3. merges rows that share (scope_ref, canonical_key), keeping the most
   recently updated one and moving the others' messages into it,
4. creates the unique index so duplicates cannot come back.

Usage:
    python -m marketchat.maintenance [--dry-run]
"""

import argparse
import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from marketchat.config import ScopeMode, get_settings
from marketchat.database.connection import close_mongo_connection, connect_to_mongo, ensure_indexes
from marketchat.errors import ValidationError
from marketchat.logging import configure_logging, get_logger
from marketchat.repositories.message_repository import MessageRepository
from marketchat.utils.identity import (
    compute_canonical_key,
    is_valid_identifier,
    normalize_identifier,
    sorted_pair,
    to_object_id,
)

logger = get_logger(__name__)

LEGACY_FIELDS = ("userA", "userB", "ad", "participantsKey")
LEGACY_MESSAGE_FIELDS = ("conversation", "sender", "createdAt", "updatedAt")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class MaintenanceReport:
    backfilled: int = 0
    skipped: int = 0
    duplicate_groups: int = 0
    conversations_deleted: int = 0
    messages_moved: int = 0
    messages_backfilled: int = 0
    messages_skipped: int = 0


def _as_utc(value: Any) -> datetime:
    if not isinstance(value, datetime):
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _legacy_participants(doc: Dict[str, Any]) -> List[Any]:
    participants = doc.get("participants")
    if participants:
        return list(participants)
    return [p for p in (doc.get("userA"), doc.get("userB")) if p is not None]


def _legacy_scope(doc: Dict[str, Any], mode: ScopeMode) -> Optional[str]:
    if mode == ScopeMode.GLOBAL:
        return None
    scope = doc.get("scope_ref") or doc.get("ad")
    if scope is not None and is_valid_identifier(scope):
        return normalize_identifier(scope)
    return None


def _newer_snapshot(current: Optional[Dict[str, Any]], candidate: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not candidate:
        return current
    if not current:
        return candidate
    if _as_utc(candidate.get("created_at")) > _as_utc(current.get("created_at")):
        return candidate
    return current


async def _merge_into(
    db: AsyncIOMotorDatabase,
    keep: Dict[str, Any],
    loser: Dict[str, Any],
    report: MaintenanceReport,
    dry_run: bool,
) -> None:
    collection = db["conversations"]
    snapshot = _newer_snapshot(keep.get("last_message"), loser.get("last_message"))
    if dry_run:
        report.conversations_deleted += 1
        return

    moved = await MessageRepository(db).reassign_conversation(loser["_id"], keep["_id"])
    update: Dict[str, Any] = {"last_message": snapshot}
    if _as_utc(loser.get("updated_at")) > _as_utc(keep.get("updated_at")):
        update["updated_at"] = loser["updated_at"]
    await collection.update_one({"_id": keep["_id"]}, {"$set": update})
    await collection.delete_one({"_id": loser["_id"]})
    keep["last_message"] = snapshot

    report.messages_moved += moved
    report.conversations_deleted += 1
    logger.info(
        "conversation_merged",
        kept_id=str(keep["_id"]),
        deleted_id=str(loser["_id"]),
        messages_moved=moved,
    )


async def backfill_messages(
    db: AsyncIOMotorDatabase,
    report: Optional[MaintenanceReport] = None,
    dry_run: bool = False,
) -> MaintenanceReport:
    """Rewrite legacy messages to the stored-receiver shape.

    Must run before merge_duplicate_conversations, which moves messages by
    conversation_id.
    """
    report = report or MaintenanceReport()
    conversations = db["conversations"]
    messages = db["messages"]
    legacy = await messages.find({"conversation_id": {"$exists": False}}).to_list(length=None)
    pairs: Dict[Any, Optional[List[str]]] = {}

    for doc in legacy:
        conversation_ref = doc.get("conversation")
        if conversation_ref not in pairs:
            pairs[conversation_ref] = await _conversation_pair(conversations, conversation_ref)
        pair = pairs[conversation_ref]
        sender = doc.get("sender")
        sender = normalize_identifier(sender) if is_valid_identifier(sender) else None
        if pair is None or sender not in pair:
            logger.warning("message_backfill_skipped", message_id=str(doc["_id"]))
            report.messages_skipped += 1
            continue

        report.messages_backfilled += 1
        if dry_run:
            continue

        receiver = pair[1] if sender == pair[0] else pair[0]
        await messages.update_one(
            {"_id": doc["_id"]},
            {
                "$set": {
                    "conversation_id": to_object_id(conversation_ref),
                    "sender_id": sender,
                    "receiver_id": receiver,
                    "is_read": doc.get("is_read", False),
                    "created_at": doc.get("created_at") or doc.get("createdAt") or datetime.now(timezone.utc),
                },
                "$unset": {field: "" for field in LEGACY_MESSAGE_FIELDS},
            },
        )

    logger.info(
        "message_backfill_complete",
        backfilled=report.messages_backfilled,
        skipped=report.messages_skipped,
    )
    return report


async def _conversation_pair(collection, conversation_ref: Any) -> Optional[List[str]]:
    if not is_valid_identifier(conversation_ref):
        return None
    conversation = await collection.find_one({"_id": to_object_id(conversation_ref)})
    if conversation is None:
        return None
    participants = _legacy_participants(conversation)
    if len(participants) != 2:
        return None
    try:
        return list(sorted_pair(*participants))
    except ValidationError:
        return None


async def backfill_canonical_keys(
    db: AsyncIOMotorDatabase,
    mode: ScopeMode,
    report: Optional[MaintenanceReport] = None,
    dry_run: bool = False,
) -> MaintenanceReport:
    report = report or MaintenanceReport()
    collection = db["conversations"]
    legacy = await collection.find({"canonical_key": {"$exists": False}}).to_list(length=None)

    for doc in legacy:
        participants = _legacy_participants(doc)
        if len(participants) != 2:
            logger.warning("conversation_backfill_skipped", conversation_id=str(doc["_id"]), reason="participant_count")
            report.skipped += 1
            continue
        try:
            first, second = sorted_pair(*participants)
        except ValidationError as exc:
            logger.warning("conversation_backfill_skipped", conversation_id=str(doc["_id"]), reason=exc.code.value)
            report.skipped += 1
            continue

        scope = _legacy_scope(doc, mode)
        canonical_key = compute_canonical_key(first, second, scope)
        report.backfilled += 1
        if dry_run:
            continue

        now = datetime.now(timezone.utc)
        try:
            await collection.update_one(
                {"_id": doc["_id"]},
                {
                    "$set": {
                        "participants": [first, second],
                        "scope_ref": scope,
                        "canonical_key": canonical_key,
                        "last_message": doc.get("last_message"),
                        "created_at": doc.get("created_at") or doc.get("createdAt") or now,
                        "updated_at": doc.get("updated_at") or doc.get("updatedAt") or now,
                    },
                    "$unset": {field: "" for field in LEGACY_FIELDS},
                },
            )
        except DuplicateKeyError:
            # the unique index already exists and another row owns this key
            winner = await collection.find_one({"scope_ref": scope, "canonical_key": canonical_key})
            if winner is None:
                raise
            await _merge_into(db, winner, doc, report, dry_run)

    logger.info("conversation_backfill_complete", backfilled=report.backfilled, skipped=report.skipped)
    return report


async def merge_duplicate_conversations(
    db: AsyncIOMotorDatabase,
    report: Optional[MaintenanceReport] = None,
    dry_run: bool = False,
) -> MaintenanceReport:
    report = report or MaintenanceReport()
    collection = db["conversations"]
    pipeline = [
        {"$match": {"canonical_key": {"$exists": True}}},
        {
            "$group": {
                "_id": {"scope_ref": "$scope_ref", "canonical_key": "$canonical_key"},
                "ids": {"$push": "$_id"},
                "count": {"$sum": 1},
            }
        },
        {"$match": {"count": {"$gt": 1}}},
    ]
    groups = await collection.aggregate(pipeline).to_list(length=None)

    for group in groups:
        report.duplicate_groups += 1
        docs = await collection.find({"_id": {"$in": group["ids"]}}).to_list(length=None)
        docs.sort(key=lambda d: _as_utc(d.get("updated_at")), reverse=True)
        keep, losers = docs[0], docs[1:]
        for loser in losers:
            await _merge_into(db, keep, loser, report, dry_run)

    logger.info(
        "conversation_dedupe_complete",
        duplicate_groups=report.duplicate_groups,
        deleted=report.conversations_deleted,
    )
    return report


async def run_maintenance(db: AsyncIOMotorDatabase, mode: ScopeMode, dry_run: bool = False) -> MaintenanceReport:
    report = MaintenanceReport()
    await backfill_messages(db, report, dry_run=dry_run)
    await backfill_canonical_keys(db, mode, report, dry_run=dry_run)
    await merge_duplicate_conversations(db, report, dry_run=dry_run)
    if not dry_run:
        await ensure_indexes(db)
    logger.info("maintenance_complete", dry_run=dry_run, **asdict(report))
    return report


async def _main(dry_run: bool) -> MaintenanceReport:
    settings = get_settings()
    db = await connect_to_mongo()
    try:
        return await run_maintenance(db, settings.conversation_scope_mode, dry_run=dry_run)
    finally:
        await close_mongo_connection()


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="report what would change without writing")
    args = parser.parse_args(argv)

    configure_logging(json_format=get_settings().log_json)
    asyncio.run(_main(args.dry_run))


if __name__ == "__main__":
    main()
