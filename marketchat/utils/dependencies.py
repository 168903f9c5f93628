from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase

from marketchat.database.connection import mongo_db_dependency
from marketchat.errors import UnauthenticatedError
from marketchat.logging import set_user_context
from marketchat.repositories.user_repository import UserRepository
from marketchat.utils.identity import is_valid_identifier
from marketchat.utils.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
) -> dict:
    if credentials is None or not credentials.credentials:
        raise UnauthenticatedError()
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthenticatedError("Invalid token")

    sub = payload.get("sub")
    if not is_valid_identifier(sub):
        raise UnauthenticatedError("Invalid token")
    user = await UserRepository(db).get_user_by_id(sub)
    if not user:
        raise UnauthenticatedError("User no longer exists")
    set_user_context(user["_id"])
    return user
