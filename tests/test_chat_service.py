"""Tests for start-or-get conversation orchestration."""

import pytest
from bson import ObjectId

from marketchat.errors import (
    ApiErrorCode,
    ForbiddenError,
    InvalidIdentifier,
    NotFoundError,
    SelfConversation,
    ValidationError,
)
from tests.helpers import seed_listing


class TestStartConversationListingMode:

    @pytest.mark.asyncio
    async def test_buyer_starts_with_seller(self, chat_service, users, listing_id):
        buyer, seller = users[0], users[1]

        conversation, created = await chat_service.start_conversation(buyer, seller, listing_id)

        assert created is True
        assert conversation["scope_ref"] == listing_id
        assert sorted(conversation["participants"]) == sorted([buyer, seller])

    @pytest.mark.asyncio
    async def test_seller_reaches_same_thread(self, chat_service, users, listing_id):
        buyer, seller = users[0], users[1]
        first, _ = await chat_service.start_conversation(buyer, seller, listing_id)

        second, created = await chat_service.start_conversation(seller, buyer, listing_id)

        assert created is False
        assert second["_id"] == first["_id"]

    @pytest.mark.asyncio
    async def test_other_listing_gets_own_thread(self, db, chat_service, users, listing_id):
        buyer, seller = users[0], users[1]
        other_listing = await seed_listing(db, seller, "Bike lock")
        first, _ = await chat_service.start_conversation(buyer, seller, listing_id)

        second, created = await chat_service.start_conversation(buyer, seller, other_listing)

        assert created is True
        assert second["_id"] != first["_id"]

    @pytest.mark.asyncio
    async def test_counterparty_must_be_owner(self, chat_service, users, listing_id):
        buyer, other_buyer = users[0], users[2]

        with pytest.raises(ValidationError) as exc_info:
            await chat_service.start_conversation(buyer, other_buyer, listing_id)
        assert exc_info.value.code == ApiErrorCode.E_COUNTERPARTY_MISMATCH

    @pytest.mark.asyncio
    async def test_unknown_listing(self, chat_service, users):
        with pytest.raises(NotFoundError) as exc_info:
            await chat_service.start_conversation(users[0], users[1], str(ObjectId()))
        assert exc_info.value.code == ApiErrorCode.E_LISTING_NOT_FOUND

    @pytest.mark.asyncio
    async def test_deleted_listing_is_not_found(self, db, chat_service, users, listing_id):
        await db["ads"].update_one({"_id": ObjectId(listing_id)}, {"$set": {"is_deleted": True}})

        with pytest.raises(NotFoundError):
            await chat_service.start_conversation(users[0], users[1], listing_id)

    @pytest.mark.asyncio
    async def test_scope_required(self, chat_service, users):
        with pytest.raises(ValidationError) as exc_info:
            await chat_service.start_conversation(users[0], users[1])
        assert exc_info.value.code == ApiErrorCode.E_SCOPE_REQUIRED

    @pytest.mark.asyncio
    async def test_unknown_counterparty(self, db, chat_service, users):
        ghost = str(ObjectId())
        listing = await seed_listing(db, ghost, "Orphaned ad")

        with pytest.raises(NotFoundError) as exc_info:
            await chat_service.start_conversation(users[0], ghost, listing)
        assert exc_info.value.code == ApiErrorCode.E_USER_NOT_FOUND

    @pytest.mark.asyncio
    async def test_self_conversation(self, db, chat_service, users, listing_id):
        with pytest.raises(SelfConversation):
            await chat_service.start_conversation(users[1], users[1], listing_id)
        assert await db["conversations"].count_documents({}) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("counterparty", ["u2", "123", "not-an-object-id"])
    async def test_malformed_counterparty(self, chat_service, users, listing_id, counterparty):
        with pytest.raises(InvalidIdentifier):
            await chat_service.start_conversation(users[0], counterparty, listing_id)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("counterparty", [None, ""])
    async def test_missing_counterparty(self, chat_service, users, listing_id, counterparty):
        with pytest.raises(ValidationError) as exc_info:
            await chat_service.start_conversation(users[0], counterparty, listing_id)
        assert exc_info.value.code == ApiErrorCode.E_INVALID_REQUEST


class TestStartConversationGlobalMode:

    @pytest.mark.asyncio
    async def test_one_conversation_per_pair(self, db, global_chat_service, users):
        buyer, seller = users[0], users[1]

        first, created_first = await global_chat_service.start_conversation(buyer, seller)
        second, created_second = await global_chat_service.start_conversation(seller, buyer)

        assert (created_first, created_second) == (True, False)
        assert first["_id"] == second["_id"]
        assert first["scope_ref"] is None
        assert await db["conversations"].count_documents({}) == 1

    @pytest.mark.asyncio
    async def test_scope_rejected(self, global_chat_service, users, listing_id):
        with pytest.raises(ValidationError) as exc_info:
            await global_chat_service.start_conversation(users[0], users[1], listing_id)
        assert exc_info.value.code == ApiErrorCode.E_SCOPE_NOT_SUPPORTED

    @pytest.mark.asyncio
    async def test_any_pair_of_users_may_talk(self, global_chat_service, users):
        conversation, created = await global_chat_service.start_conversation(users[0], users[2])

        assert created is True
        assert sorted(conversation["participants"]) == sorted([users[0], users[2]])


class TestGetConversation:

    @pytest.mark.asyncio
    async def test_participant_sees_unread(self, chat_service, users, listing_id):
        conversation, _ = await chat_service.start_conversation(users[0], users[1], listing_id)
        await chat_service.send_message(conversation["_id"], users[0], "ping")

        seen_by_seller = await chat_service.get_conversation(conversation["_id"], users[1])
        seen_by_buyer = await chat_service.get_conversation(conversation["_id"], users[0])

        assert seen_by_seller["unread_count"] == 1
        assert seen_by_buyer["unread_count"] == 0

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, chat_service, users, listing_id):
        conversation, _ = await chat_service.start_conversation(users[0], users[1], listing_id)

        with pytest.raises(ForbiddenError):
            await chat_service.get_conversation(conversation["_id"], users[2])

    @pytest.mark.asyncio
    async def test_outsider_cannot_mark_read(self, chat_service, users, listing_id):
        conversation, _ = await chat_service.start_conversation(users[0], users[1], listing_id)

        with pytest.raises(ForbiddenError):
            await chat_service.mark_read(conversation["_id"], users[2])
