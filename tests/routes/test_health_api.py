# tests/routes/test_health_api.py
import dbaas.routes.health as health


async def test_health_ready(client, monkeypatch):
    async def healthy():
        return False

    monkeypatch.setattr(health, "is_healthly", healthy)
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ready"}


async def test_health_failed(client, monkeypatch):
    async def unhealthy():
        return True

    monkeypatch.setattr(health, "is_healthly", unhealthy)
    resp = await client.get("/health")
    assert resp.status_code == 503
