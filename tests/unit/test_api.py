"""Tests for the HTTP routes, run against the offline inference client."""

import json

import pytest
from fastapi.testclient import TestClient

from racesight.ai.insights import QUOTA_INSIGHTS
from racesight.config import Settings
from racesight.main import create_app

DATE = "2025-01-01"


@pytest.fixture
def make_client(racecards_dir):
    def _make(**overrides) -> TestClient:
        settings = Settings(
            mock_external=True,
            racecards_dir=racecards_dir,
            data_source="export",
            **overrides,
        )
        return TestClient(create_app(settings))

    return _make


@pytest.fixture
def client(make_client):
    with make_client() as c:
        yield c


class TestLookups:
    """Read-only lookups served from the export."""

    def test_health(self, client):
        """Health reports the configured inference client."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["inference_configured"] is True

    def test_live_attempts_bounded_by_fetch_timeout(self, make_client):
        """Each live provider attempt gets the fetch timeout as its whole budget."""
        with make_client(fetch_timeout=8.0) as client:
            assert client.app.state.provider.provider_timeout == 8.0

    def test_racecourses(self, client):
        """Courses for the default region come back sorted."""
        response = client.get("/api/racecourses", params={"date": DATE})
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["courses"] == ["Ascot", "Example Downs"]
        assert data["region"] == "GB"

    def test_racecourses_other_region(self, client):
        """The region parameter selects another part of the export."""
        response = client.get("/api/racecourses", params={"date": DATE, "region": "ire"})
        assert response.json()["courses"] == ["Leopardstown"]

    def test_bad_date(self, client):
        """A malformed date is a 400 with the error envelope."""
        response = client.get("/api/racecourses", params={"date": "2025-13-01"})
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["type"] == "BadRequest"

    def test_missing_export(self, client):
        """A missing export is a retryable 503 naming the date."""
        response = client.get("/api/racecourses", params={"date": "2030-01-01"})
        assert response.status_code == 503
        data = response.json()
        assert data["type"] == "DataUnavailable"
        assert data["retryable"] is True
        assert "2030-01-01" in data["error"]

    def test_races(self, client):
        """Races for a course are listed in post-time order."""
        response = client.get("/api/races", params={"course": "example downs", "date": DATE})
        assert response.status_code == 200
        data = response.json()
        assert data["course"] == "Example Downs"
        assert [(r["time"], r["race_number"]) for r in data["races"]] == [("13:30", 1), ("14:00", 2), ("15:10", 3)]

    def test_races_unknown_course(self, client):
        """An unknown course is a 404."""
        response = client.get("/api/races", params={"course": "Nowhere Park", "date": DATE})
        assert response.status_code == 404
        assert response.json()["type"] == "VenueNotFound"

    def test_race(self, client):
        """A single race card lists its competitors and source."""
        response = client.get("/api/race", params={"course": "Example Downs", "time": "14:00", "date": DATE})
        assert response.status_code == 200
        data = response.json()
        assert data["race"]["name"] == "Example Handicap"
        assert [c["name"] for c in data["competitors"]] == ["Alpha Star", "Bravo Boy", "Charlie Gold"]
        assert data["source"] == "Race-card export"

    def test_race_unknown_time(self, client):
        """An unknown post time is a 404."""
        response = client.get("/api/race", params={"course": "Example Downs", "time": "16:45", "date": DATE})
        assert response.status_code == 404
        assert response.json()["type"] == "RaceNotFound"


class TestAnalysis:
    """Full analysis over HTTP and SSE."""

    def test_analyze_race(self, client):
        """Analysis returns a ranked field with insights."""
        response = client.post("/api/analyze-race", json={"course": "Example Downs", "time": "14:00", "date": DATE})
        assert response.status_code == 200
        result = response.json()["result"]
        ranked = result["ranked_competitors"]
        assert len(ranked) == 3
        composites = [c["scores"]["composite"] for c in ranked]
        assert composites == sorted(composites, reverse=True)
        assert result["insights"]
        assert result["narrative_degraded"] is False
        assert result["is_synthetic"] is False

    def test_analyze_empty_field(self, client):
        """An empty field is a 422."""
        response = client.post("/api/analyze-race", json={"course": "Example Downs", "time": "15:10", "date": DATE})
        assert response.status_code == 422
        assert response.json()["type"] == "NoCompetitors"

    def test_analyze_requires_course(self, client):
        """Missing course fails request validation."""
        response = client.post("/api/analyze-race", json={"time": "14:00"})
        assert response.status_code == 422

    def test_usage_counts_inference_calls(self, client):
        """Usage reflects the calls an analysis made."""
        client.post("/api/analyze-race", json={"course": "Example Downs", "time": "14:00", "date": DATE})
        usage = client.get("/api/usage").json()["usage"]
        # One batch extraction call plus one insight call
        assert usage["daily_count"] == 2
        assert usage["cap"] == 1000

    def test_stream(self, client):
        """The stream emits progress events ending in the result."""
        params = {"course": "Example Downs", "time": "14:00", "date": DATE}
        response = client.get("/api/analyze-race/stream", params=params)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [json.loads(line[len("data: "):]) for line in response.text.splitlines() if line.startswith("data: ")]
        assert events[0]["stage"] == "Connecting"
        assert events[-1]["status"] == "complete"
        assert events[-1]["percent"] == 100
        assert len(events[-1]["result"]["ranked_competitors"]) == 3

    def test_stream_error_event(self, client):
        """Stream failures end with an error event at the idle baseline."""
        params = {"course": "Example Downs", "time": "16:45", "date": DATE}
        events = [
            json.loads(line[len("data: "):])
            for line in client.get("/api/analyze-race/stream", params=params).text.splitlines()
            if line.startswith("data: ")
        ]
        assert events[-1]["status"] == "error"
        assert events[-1]["stage"] == "idle"
        assert events[-1]["percent"] == 0
        assert events[-1]["error"]["type"] == "RaceNotFound"

    def test_daily_quota_exhaustion(self, make_client):
        """Exhausting the day's quota degrades, then refuses."""
        with make_client(quota_per_day=1) as client:
            body = {"course": "Example Downs", "time": "14:00", "date": DATE}
            first = client.post("/api/analyze-race", json=body)
            # Extraction used the only call; the ranking stands without a narrative
            assert first.status_code == 200
            assert first.json()["result"]["insights"] == QUOTA_INSIGHTS
            assert first.json()["result"]["narrative_degraded"] is True

            second = client.post("/api/analyze-race", json=body)
            assert second.status_code == 429
            assert second.json()["type"] == "QuotaExceeded"
            assert second.json()["retryable"] is False
