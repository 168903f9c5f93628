"""Tests for error codes and the error envelope."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from marketchat.errors import (
    ERROR_CODE_TO_STATUS,
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidIdentifier,
    NotFoundError,
    SelfConversation,
    UnauthenticatedError,
)
from marketchat.logging import clear_request_context, set_request_context
from marketchat.responses import api_error_handler, error_response, unhandled_exception_handler
from marketchat.utils.request_context import RequestContextMiddleware


def test_every_code_has_a_status():
    assert set(ERROR_CODE_TO_STATUS) == set(ApiErrorCode)


@pytest.mark.parametrize(
    "error, status",
    [
        (InvalidIdentifier(), 400),
        (SelfConversation(), 400),
        (UnauthenticatedError(), 401),
        (ForbiddenError(), 403),
        (NotFoundError(), 404),
        (ConflictError(), 409),
    ],
)
def test_status_follows_code(error, status):
    assert error.status_code == status


class TestErrorResponse:

    def test_shape_without_request_id(self):
        clear_request_context()

        body = error_response(ApiErrorCode.E_FORBIDDEN, "nope")

        assert body == {"error": {"code": "E_FORBIDDEN", "message": "nope"}}

    def test_picks_up_request_context(self):
        set_request_context("req-42")
        try:
            body = error_response(ApiErrorCode.E_NOT_FOUND, "gone")
        finally:
            clear_request_context()

        assert body["error"]["request_id"] == "req-42"

    def test_explicit_request_id_wins(self):
        body = error_response(ApiErrorCode.E_CONFLICT, "race", request_id="explicit")

        assert body["error"]["request_id"] == "explicit"


class TestHandlers:

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_exception_handler(ConflictError, api_error_handler)
        app.add_exception_handler(Exception, unhandled_exception_handler)

        @app.get("/conflict")
        async def conflict():
            raise ConflictError(message="Conversation could not be created, please retry")

        @app.get("/boom")
        async def boom():
            raise RuntimeError("database on fire")

        return TestClient(app, raise_server_exceptions=False)

    def test_api_error_rendered(self, client):
        response = client.get("/conflict")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "E_CONFLICT"

    def test_unhandled_error_hides_details(self, client):
        response = client.get("/boom")

        assert response.status_code == 500
        assert response.json()["error"] == {"code": "E_INTERNAL", "message": "Internal server error"}


def test_unhandled_error_keeps_request_id():
    app = FastAPI()
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.add_middleware(RequestContextMiddleware)

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database on fire")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/boom", headers={"X-Request-ID": "req-500"})

    assert response.status_code == 500
    assert response.json()["error"]["request_id"] == "req-500"
