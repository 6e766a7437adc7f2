"""Tests for the HTTP surface, run in-process against a temporary store."""
import httpx
import pytest
import pytest_asyncio

from creator_lens.api.server import app, get_lens
from creator_lens.config import reset_settings

from conftest import FakeEntitlements

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def client(lens):
    app.dependency_overrides[get_lens] = lambda: lens
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def test_overlay_for_unknown_user_is_fallback(client):
    resp = await client.get("/api/users/api-nobody/overlay")
    assert resp.status_code == 200
    body = resp.json()
    assert body["enabled"] is True
    assert body["tone_preference"] == "funny"

    assert (await client.get("/api/users/api-nobody/persona")).status_code == 404
    assert (await client.get("/api/users/api-nobody/persona/summary")).status_code == 404
    assert (await client.post("/api/users/api-nobody/persona/recalculate")).status_code == 404


async def test_event_updates_persona(client):
    resp = await client.post(
        "/api/users/api-ev/events",
        json={"event_type": "save", "meta": {"tone": "educational", "format": "tutorial"}},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["tracked"] is True
    assert body["persona"]["total_saves"] == 1
    assert body["persona"]["version"] == 1

    persona = (await client.get("/api/users/api-ev/persona")).json()
    assert persona["tone_weights"]["educational"] > persona["tone_weights"]["funny"]
    rebuilt = (await client.post("/api/users/api-ev/persona/recalculate")).json()
    assert rebuilt["tone_weights"] == pytest.approx(persona["tone_weights"])


async def test_invalid_event_type_is_rejected(client):
    resp = await client.post("/api/users/api-bad/events", json={"event_type": "like"})
    assert resp.status_code == 422


async def test_generation_result_and_patterns(client):
    gen = await client.post(
        "/api/users/api-res/generations",
        json={"platform": "tiktok", "category_group": "creator", "category_slug": "Fitness", "tone": "funny"},
    )
    assert gen.status_code == 200
    generation_id = gen.json()["generation_id"]
    assert gen.json()["pattern"]["pattern_key"] == "tiktok:creator:fitness:funny:any"

    res = await client.post(
        "/api/users/api-res/results",
        json={"generation_id": generation_id, "platform": "tiktok", "metrics": {"views": 200, "likes": 20}},
    )
    assert res.status_code == 200
    result = res.json()["result"]
    assert result["tone"] == "funny"
    assert result["engagement_rate"] == pytest.approx(10.0)

    patterns = (await client.get("/api/users/api-res/patterns", params={"platform": "tiktok"})).json()
    assert [p["pattern_key"] for p in patterns] == ["tiktok:creator:fitness:funny:any"]

    patched = await client.patch(
        f"/api/users/api-res/results/{result['id']}", json={"views": 200, "likes": 40}
    )
    assert patched.json()["pattern"]["avg_engagement_rate"] == pytest.approx(20.0)
    missing = await client.patch("/api/users/api-res/results/nope", json={"views": 1})
    assert missing.status_code == 404

    bias = (await client.get("/api/users/api-res/performance-bias", params={"platform": "tiktok"})).json()
    assert bias == {"bias": None}


async def test_suggestion_limit_is_429(client, entitlements):
    entitlements.limit = 1
    first = await client.post("/api/users/api-lim/suggestions", json={})
    assert first.status_code == 200
    assert len(first.json()["suggestions"]) == 1

    second = await client.post("/api/users/api-lim/suggestions", json={})
    assert second.status_code == 429
    assert second.json()["detail"]["limit"] == 1
    assert second.json()["detail"]["existing"] == 1

    allowance = (await client.get("/api/users/api-lim/suggestions/allowance")).json()
    assert allowance["can_generate"] is False

    todays = (await client.get("/api/users/api-lim/suggestions")).json()
    used = await client.post(f"/api/users/api-lim/suggestions/{todays[0]['id']}/use", json={})
    assert used.json()["used"] is True
    missing = await client.post("/api/users/api-lim/suggestions/nope/use", json={})
    assert missing.status_code == 404
    stats = (await client.get("/api/users/api-lim/suggestions/stats")).json()
    assert stats["usage_rate"] == pytest.approx(100.0)


async def test_insights_endpoints(client):
    assert (await client.get("/api/users/api-ins/insights/latest")).status_code == 404
    for day in ("2024-01-01", "2024-01-02", "2024-01-03"):
        await client.post(
            "/api/users/api-ins/results",
            json={"platform": "youtube_shorts", "posted_at": f"{day}T10:00:00Z", "metrics": {"views": 100, "likes": 5}},
        )
    resp = await client.post("/api/users/api-ins/insights/weekly", json={"period_start": "2024-01-01"})
    insight = resp.json()["insight"]
    assert insight["period_end"] == "2024-01-07"
    assert insight["content"]["total_content"] == 3

    latest = (await client.get("/api/users/api-ins/insights/latest")).json()
    assert latest["id"] == insight["id"]
    summary = (await client.get("/api/users/api-ins/insights/summary")).json()
    assert summary["has_insights"] is True
    assert summary["best_platform"] == "youtube_shorts"


async def test_unentitled_user_is_not_tracked(client, lens):
    lens.entitlements = FakeEntitlements(personalization=False, insights=False)
    resp = await client.post("/api/users/api-free/events", json={"event_type": "save"})
    assert resp.json() == {"tracked": False, "persona": None}
    overlay = (await client.get("/api/users/api-free/overlay")).json()
    assert overlay["enabled"] is False
    weekly = await client.post("/api/users/api-free/insights/weekly", json={})
    assert weekly.json() == {"insight": None}


async def test_health_needs_api_key(client, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    reset_settings()
    assert (await client.get("/api/health")).status_code == 503
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    reset_settings()
    assert (await client.get("/api/health")).status_code == 200
    reset_settings()
