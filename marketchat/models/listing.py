from typing import Optional, TypedDict


class ListingDocument(TypedDict, total=False):

    _id: str
    # owner of the ad
    user_id: str
    title: Optional[str]
    status: str
    is_deleted: bool
