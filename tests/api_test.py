from fastapi.testclient import TestClient

from itinerary_engine.api import itinerary as itinerary_api
from itinerary_engine.main import app
from itinerary_engine.services.place_cache import PlaceKnowledgeCache
from itinerary_engine.services.place_research import build_fallback_knowledge
from itinerary_engine.services.research_pipeline import ResearchPipeline

client = TestClient(app)

PAYLOAD = {
    "places": [
        {"name": "Sea View Hotel", "coordinates": {"lat": 15.49, "lng": 73.83}},
        {"name": "Basilica of Bom Jesus", "coordinates": {"lat": 15.50, "lng": 73.84}},
        {"name": "Se Cathedral", "coordinates": [15.50, 73.86]},
    ],
    "dates": {"start": "2025-03-01", "end": "2025-03-02"},
    "budget": {"total": 20000, "currency": "INR"},
    "members": ["asha", "ravi"],
}


def _fake_pipeline(monkeypatch):
    def researcher(place, region):
        return build_fallback_knowledge(place, region).model_copy(update={"researchConfidence": 0.9})

    pipeline = ResearchPipeline(researcher=researcher, cache=PlaceKnowledgeCache(), delay_seconds=0)
    monkeypatch.setattr(itinerary_api, "_research_pipeline", pipeline)
    return pipeline


def test_health():
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_generate():
    resp = client.post("/api/itinerary/generate", json=PAYLOAD)

    assert resp.status_code == 200
    body = resp.json()
    assert len(body["days"]) == 2
    assert body["summary"]["placesVisited"] == 2
    assert "arrivalAdjusted" not in body["days"][0]

    activity = body["days"][0]["activities"][0]
    for key in ("id", "place", "startTime", "endTime", "durationMin", "fatigueImpact", "timeSlot"):
        assert key in activity


def test_generate_rejects_bad_payload():
    assert client.post("/api/itinerary/generate", json={"places": "Goa"}).status_code == 400
    assert client.post("/api/itinerary/generate", json={"places": [], "budget": {"total": -1}}).status_code == 400


def test_estimate():
    resp = client.post("/api/itinerary/estimate", json=PAYLOAD)

    assert resp.status_code == 200
    assert resp.json()["numDays"] == 2
    assert resp.json()["hasAccommodation"] is True


def test_research_and_cache_endpoints(monkeypatch):
    pipeline = _fake_pipeline(monkeypatch)

    resp = client.post("/api/itinerary/research", json={**PAYLOAD, "region": "Goa, India"})
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["knowledge"]) == 3
    assert [o["status"] for o in body["outcomes"]] == ["ok", "ok", "ok"]
    assert body["itinerary"]["summary"]["placesVisited"] == 2

    stats = client.get("/api/research/cache/stats").json()
    assert stats["entries"] == 3
    assert stats["valid"] == 3

    assert client.delete("/api/research/cache").json() == {"status": "cleared"}
    assert pipeline.cache.stats()["entries"] == 0


if __name__ == "__main__":
    test_health()
    test_generate()
    test_generate_rejects_bad_payload()
    test_estimate()
