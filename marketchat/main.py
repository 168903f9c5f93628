from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketchat.config import get_settings
from marketchat.database.connection import close_mongo_connection, connect_to_mongo, ensure_indexes, mongo_db_dependency
from marketchat.errors import ApiError
from marketchat.logging import configure_logging
from marketchat.maintenance import run_maintenance
from marketchat.responses import (
    api_error_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from marketchat.routers.conversations import router as conversations_router
from marketchat.utils.request_context import RequestContextMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):

    settings = get_settings()
    db = await connect_to_mongo()
    try:
        if settings.run_maintenance_on_startup:
            await run_maintenance(db, settings.conversation_scope_mode)
        else:
            await ensure_indexes(db)
        yield
    finally:
        await close_mongo_connection()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    app = FastAPI(title="Marketplace messaging", lifespan=lifespan)

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(conversations_router)

    @app.get("/")
    async def root(db = Depends(mongo_db_dependency)):

        await db.command("ping")
        return {"status": "ok", "scope_mode": settings.conversation_scope_mode.value}

    app.add_middleware(RequestContextMiddleware)
    return app


app = create_app()
