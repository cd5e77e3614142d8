import pytest
from pydantic import SecretStr

from docchat_server.config import settings
from docchat_server.main import create_app, lifespan


@pytest.mark.asyncio
async def test_startup_requires_openai_key(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", SecretStr(""))
    monkeypatch.setattr(settings, "jwt_secret", SecretStr("test-secret-for-docchat-must-be-long-enough"))

    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        async with lifespan(create_app()):
            pass


@pytest.mark.asyncio
async def test_startup_requires_jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", SecretStr("sk-test"))
    monkeypatch.setattr(settings, "jwt_secret", SecretStr(""))

    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        async with lifespan(create_app()):
            pass


def test_routes_registered():
    paths = {route.path for route in create_app().routes}
    assert {"/health", "/files", "/namespaces", "/search/", "/chat/", "/telegram/webhook"} <= paths
