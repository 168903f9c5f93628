from typing import Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from marketchat.models.listing import ListingDocument


class ListingRepository:
    """Read side of the ads collection, owned by the listings service."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("ads")

    async def create_listing(self, owner_id: str, title: str, status: str = "active") -> str:
        doc = {"user_id": owner_id, "title": title, "status": status, "is_deleted": False}
        result = await self._collection.insert_one(doc)
        return str(result.inserted_id)

    async def get_listing_by_id(self, listing_id: str) -> Optional[ListingDocument]:
        if not ObjectId.is_valid(listing_id):
            return None
        listing = await self._collection.find_one({"_id": ObjectId(listing_id), "is_deleted": {"$ne": True}})
        if listing:
            listing["_id"] = str(listing["_id"])
            listing["user_id"] = str(listing.get("user_id"))
        return listing
