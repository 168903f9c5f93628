import pytest
from pydantic import ValidationError

from marketchat.config import DEV_JWT_SECRET, Environment, ScopeMode, Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("MARKETCHAT_ENV", "JWT_SECRET", "CONVERSATION_SCOPE_MODE", "MASK_FORBIDDEN_AS_NOT_FOUND"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings()

    assert settings.env == Environment.LOCAL
    assert settings.conversation_scope_mode == ScopeMode.LISTING
    assert settings.mask_forbidden_as_not_found is False
    assert settings.effective_jwt_secret == DEV_JWT_SECRET


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("CONVERSATION_SCOPE_MODE", "global")
    monkeypatch.setenv("MASK_FORBIDDEN_AS_NOT_FOUND", "true")

    settings = Settings()

    assert settings.conversation_scope_mode == ScopeMode.GLOBAL
    assert settings.mask_forbidden_as_not_found is True


@pytest.mark.parametrize("env", ["staging", "prod"])
def test_secret_required_outside_local(monkeypatch, env):
    monkeypatch.setenv("MARKETCHAT_ENV", env)

    with pytest.raises(ValidationError, match="JWT_SECRET is required"):
        Settings()


def test_prod_with_secret(monkeypatch):
    monkeypatch.setenv("MARKETCHAT_ENV", "prod")
    monkeypatch.setenv("JWT_SECRET", "s3cret")

    assert Settings().effective_jwt_secret == "s3cret"


def test_unknown_scope_mode_rejected(monkeypatch):
    monkeypatch.setenv("CONVERSATION_SCOPE_MODE", "per-category")

    with pytest.raises(ValidationError):
        Settings()
