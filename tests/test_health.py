import pytest
from httpx import ASGITransport, AsyncClient

from backend.config import settings
from backend.database import get_session
from backend.main import app


async def _broken_session():  # type: ignore[no-untyped-def]
    raise RuntimeError("database exploded")
    yield  # pragma: no cover


@pytest.mark.asyncio
async def test_health_check(schema: None) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_validation_errors_are_grouped_by_field(schema: None) -> None:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/api/auth/login", json={"email": "", "password": ""})
    assert response.status_code == 400
    body = response.json()
    assert body["status"] == 400
    assert set(body["errors"]) == {"email", "password"}


@pytest.mark.asyncio
async def test_unhandled_error_returns_correlation_id(schema: None, monkeypatch) -> None:
    app.dependency_overrides[get_session] = _broken_session
    # The server error middleware re-raises after responding
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/api/auth/login", json={"email": "a@example.com", "password": "x"}
            )
            assert response.status_code == 500
            body = response.json()
            assert body["correlationId"]
            assert "detail" not in body

            monkeypatch.setattr(settings, "environment", "development")
            response = await client.post(
                "/api/auth/login", json={"email": "a@example.com", "password": "x"}
            )
            assert response.json()["detail"] == "database exploded"
    finally:
        app.dependency_overrides.pop(get_session, None)
