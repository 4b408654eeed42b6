import pytest


@pytest.mark.asyncio
async def test_health_check(client):
    """Test public health endpoint"""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "redis": "disabled"}


@pytest.mark.asyncio
async def test_root_reports_tools(client):
    response = await client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "running"
    assert "ytdlp_version" in body
    assert "ffmpeg_version" in body
    assert body["redis_enabled"] is False


@pytest.mark.asyncio
async def test_request_id_header(client):
    response = await client.get("/health")
    assert response.headers.get("x-request-id")

    response = await client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.headers["x-request-id"] == "abc123"


@pytest.mark.asyncio
async def test_localized_error(client):
    response = await client.get(
        "/download",
        params={"url": "https://vimeo.com/123", "format": "audio"},
        headers={"Accept-Language": "ar,en;q=0.8"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "رابط YouTube غير صالح"
