"""API tests against the FastAPI app with in-memory storage and a stubbed player pool."""
import sys
import os
from unittest.mock import AsyncMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from fastapi.testclient import TestClient

from main import (
    app,
    InMemoryTeamRepository,
    GreedyRecommender,
    PlayerSchema,
    build_teams_dict,
    element_to_player,
)
import fantagpt.services as services


@pytest.fixture
def bootstrap(make_bootstrap):
    return make_bootstrap()


@pytest.fixture
def client(bootstrap):
    teams = build_teams_dict(bootstrap["teams"])
    pool = [element_to_player(e, teams) for e in bootstrap["elements"]]

    async def source():
        return pool

    app.state.repository = InMemoryTeamRepository()
    app.state.recommender = GreedyRecommender(source)
    with patch.object(services, "get_bootstrap_data", AsyncMock(return_value=bootstrap)):
        with TestClient(app) as test_client:
            yield test_client
    del app.state.repository
    del app.state.recommender


@pytest.fixture
def roster_payload(make_squad):
    players = [PlayerSchema.from_player(p).model_dump(mode="json") for p in make_squad()]
    return {
        "players": players,
        "budget": 100,
        "captain": players[0],
        "vice_captain": players[1],
        "formation": "4-4-2",
    }


def _create(client, **body):
    payload = {"name": "My XI", "budget": 100}
    payload.update(body)
    return client.post("/api/teams", json=payload)


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_unknown_route_uses_envelope(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": {"message": "Route /api/nope not found"}}


class TestPlayers:
    def test_list_filters(self, client):
        resp = client.get("/api/players", params={"position": "GK", "sort_by": "price"})
        body = resp.json()
        assert body["success"] is True
        assert len(body["data"]) == 8
        assert body["data"][0]["price"] == 4.0

    def test_filter_by_full_club_name(self, client):
        data = client.get("/api/players", params={"team": "Club 1"}).json()["data"]
        assert len(data) == 4
        assert {p["club"] for p in data} == {"ARS"}

    def test_bad_sort(self, client):
        resp = client.get("/api/players", params={"sort_by": "height"})
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_get_player(self, client):
        resp = client.get("/api/players/1")
        assert resp.json()["data"]["id"] == 1

    def test_missing_player(self, client):
        resp = client.get("/api/players/999")
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Player not found"


class TestTeams:
    def test_create_and_fetch(self, client):
        resp = _create(client)
        assert resp.status_code == 201
        team = resp.json()["data"]
        assert team["id"].startswith("team_")
        assert len(team["players"]) == 15
        assert team["remaining_budget"] == pytest.approx(100 - team["total_value"])

        fetched = client.get(f"/api/teams/{team['id']}").json()["data"]
        assert fetched["id"] == team["id"]
        assert len(client.get("/api/teams").json()["data"]) == 1

    def test_created_team_is_valid(self, client):
        team_id = _create(client).json()["data"]["id"]
        result = client.get(f"/api/teams/{team_id}/validate").json()["data"]
        assert result == {"valid": True, "errors": []}

    def test_stats(self, client):
        team = _create(client, preferences={"preferred_formation": "4-4-2"}).json()["data"]
        stats = client.get(f"/api/teams/{team['id']}/stats").json()["data"]
        assert stats["position_breakdown"] == {"GK": 2, "DEF": 5, "MID": 5, "FWD": 3}
        assert stats["formation"] == "4-4-2"
        assert stats["total_value"] == pytest.approx(team["total_value"])

    def test_update_over_budget_then_validate(self, client):
        team_id = _create(client).json()["data"]["id"]
        updated = client.put(f"/api/teams/{team_id}", json={"budget": 50}).json()["data"]
        assert updated["remaining_budget"] < 0
        errors = client.get(f"/api/teams/{team_id}/validate").json()["data"]["errors"]
        assert len(errors) == 1
        assert errors[0].startswith("Team value (")
        assert errors[0].endswith("exceeds budget (50)")

    def test_update_rejects_explicit_null(self, client):
        team = _create(client).json()["data"]
        for body in ({"budget": None}, {"name": None}, {"players": None}):
            resp = client.put(f"/api/teams/{team['id']}", json=body)
            assert resp.status_code == 422
            assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
        assert client.get(f"/api/teams/{team['id']}").json()["data"] == team

    def test_update_missing(self, client):
        resp = client.put("/api/teams/nope", json={"name": "x"})
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Team not found"

    def test_delete(self, client):
        team_id = _create(client).json()["data"]["id"]
        assert client.delete(f"/api/teams/{team_id}").json()["success"] is True
        assert client.get(f"/api/teams/{team_id}").status_code == 404
        assert client.delete(f"/api/teams/{team_id}").status_code == 404

    def test_create_with_impossible_budget(self, client):
        resp = _create(client, budget=20)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "RECOMMENDATION_FAILED"

    def test_create_rejects_bad_body(self, client):
        resp = client.post("/api/teams", json={"name": "", "budget": 100})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_optimize_does_not_store(self, client):
        team = _create(client).json()["data"]
        resp = client.post(
            f"/api/teams/{team['id']}/optimize",
            json={"strategy": "differential", "risk_level": "high"},
        )
        optimized = resp.json()["data"]
        assert optimized["id"] == team["id"]
        assert len(optimized["players"]) == 15
        stored = client.get(f"/api/teams/{team['id']}").json()["data"]
        assert stored == team


class TestRecommendations:
    def test_recommendation(self, client):
        resp = client.post("/api/recommendations", json={"budget": 100, "preferred_formation": "5-3-2"})
        data = resp.json()["data"]
        assert data["formation"] == "5-3-2"
        assert len(data["players"]) == 15
        assert len(data["bench"]) == 4

    def test_ai_path_alias(self, client):
        resp = client.post("/api/ai/recommendations", json={"budget": 100})
        assert resp.status_code == 200
        assert len(resp.json()["data"]["players"]) == 15


class TestAdHocRosters:
    def test_validate_scenario(self, client, roster_payload):
        resp = client.post("/api/rosters/validate", json=roster_payload)
        assert resp.json()["data"] == {"valid": True, "errors": []}

    def test_validate_over_budget(self, client, roster_payload):
        roster_payload["budget"] = 50
        resp = client.post("/api/rosters/validate", json=roster_payload)
        assert resp.json()["data"] == {"valid": False, "errors": ["Team value (60) exceeds budget (50)"]}

    def test_stats(self, client, roster_payload):
        data = client.post("/api/rosters/stats", json=roster_payload).json()["data"]
        assert data["total_value"] == 60.0
        assert data["remaining_budget"] == 40.0
        assert data["total_points"] == 750

    def test_unknown_position_rejected(self, client, roster_payload):
        roster_payload["players"][0]["position"] = "GKP"
        resp = client.post("/api/rosters/validate", json=roster_payload)
        assert resp.status_code == 422

    def test_non_positive_budget_rejected(self, client, roster_payload):
        roster_payload["budget"] = 0
        assert client.post("/api/rosters/stats", json=roster_payload).status_code == 422


class TestClubsAndGameweeks:
    def test_clubs(self, client):
        assert len(client.get("/api/clubs").json()["data"]) == 8
        assert client.get("/api/clubs/1").json()["data"]["short_name"] == "ARS"
        assert client.get("/api/clubs/99").status_code == 404

    def test_current_gameweek(self, client):
        assert client.get("/api/gameweek/current").json()["data"] == {"gameweek": 2}

    def test_live_gameweek_bounds(self, client):
        assert client.get("/api/gameweek/39/live").status_code == 422


class TestAnalysis:
    def test_analyze_roster(self, client, roster_payload):
        roster_payload["captain_strategy"] = "differential"
        data = client.post("/api/ai/analyze", json=roster_payload).json()["data"]
        assert data["validation"] == {"valid": True, "errors": []}
        assert data["club_concentration"] == {}
        assert "Squad satisfies every squad rule" in data["strengths"]
        assert data["formation"]["current"] == "4-4-2"

    def test_analyze_rejects_bad_strategy(self, client, roster_payload):
        roster_payload["captain_strategy"] = "vibes"
        assert client.post("/api/ai/analyze", json=roster_payload).status_code == 422

    def test_analyze_stored_team(self, client):
        team_id = _create(client).json()["data"]["id"]
        data = client.get(f"/api/teams/{team_id}/analysis").json()["data"]
        assert data["validation"]["valid"] is True
        assert data["stats"]["position_breakdown"] == {"GK": 2, "DEF": 5, "MID": 5, "FWD": 3}

    def test_formations(self, client, roster_payload):
        body = {"players": roster_payload["players"], "budget": 50, "strategy": "balanced"}
        data = client.post("/api/ai/formations", json=body).json()["data"]
        assert data["best"] == "3-4-3"
        assert data["within_budget"] is False
        assert len(data["options"]) == 8
        assert len(data["options"][0]["starters"]) == 11

    def test_formations_need_players(self, client):
        assert client.post("/api/ai/formations", json={"players": []}).status_code == 422

    def test_player_analysis(self, client):
        data = client.get("/api/ai/player/1/analysis").json()["data"]
        assert data["player"]["id"] == 1
        assert data["position_count"] == 8
        assert data["verdict"] == "Hold"

    def test_player_analysis_missing(self, client):
        resp = client.get("/api/ai/player/999/analysis")
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Player not found"
