"""Shared fixtures.

Storage is mongomock-motor: an in-memory motor stand-in that enforces unique
indexes and raises pymongo's DuplicateKeyError, so the conversation identity
constraint is exercised the same way it is against MongoDB.
"""

import asyncio

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from marketchat.config import Environment, ScopeMode, Settings, get_settings
from marketchat.database.connection import ensure_indexes, mongo_db_dependency
from marketchat.main import create_app
from marketchat.utils.security import create_access_token
from tests.helpers import build_chat_service, seed_listing, seed_users


@pytest_asyncio.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["marketchat_test"]
    await ensure_indexes(database)
    yield database


@pytest_asyncio.fixture
async def users(db):
    """[buyer, seller, outsider]"""
    return await seed_users(db)


@pytest_asyncio.fixture
async def listing_id(db, users):
    return await seed_listing(db, users[1])


@pytest.fixture
def chat_service(db):
    return build_chat_service(db)


@pytest.fixture
def global_chat_service(db):
    return build_chat_service(db, scope_mode=ScopeMode.GLOBAL)


# =============================================================================
# HTTP fixtures
# =============================================================================


class ApiContext:

    def __init__(self, client: TestClient, db, users: list, listing_id: str) -> None:
        self.client = client
        self.db = db
        self.users = users
        self.listing_id = listing_id

    def headers(self, user_id: str) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def _build_api(scope_mode: ScopeMode, mask_forbidden: bool = False) -> ApiContext:
    database = AsyncMongoMockClient()["marketchat_api_test"]

    async def _seed():
        await ensure_indexes(database)
        ids = await seed_users(database)
        listing = await seed_listing(database, ids[1])
        return ids, listing

    ids, listing = asyncio.run(_seed())

    settings = Settings(
        env=Environment.TEST,
        conversation_scope_mode=scope_mode,
        mask_forbidden_as_not_found=mask_forbidden,
        log_json=False,
    )
    app = create_app()
    app.dependency_overrides[mongo_db_dependency] = lambda: database
    app.dependency_overrides[get_settings] = lambda: settings
    return ApiContext(TestClient(app), database, ids, listing)


@pytest.fixture
def api():
    return _build_api(ScopeMode.LISTING)


@pytest.fixture
def global_api():
    return _build_api(ScopeMode.GLOBAL)


@pytest.fixture
def masked_api():
    return _build_api(ScopeMode.LISTING, mask_forbidden=True)
