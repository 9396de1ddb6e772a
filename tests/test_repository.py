"""Tests for team storage backends."""
import asyncio
import json
import re
import sys
import os
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from main import (
    FantasyTeam,
    PlayerSchema,
    InMemoryTeamRepository,
    JsonFileTeamRepository,
    generate_team_id,
    apply_team_changes,
)


@pytest.fixture
def make_team(make_squad):
    def _make(team_id="team_1", budget=100.0):
        players = [PlayerSchema.from_player(p) for p in make_squad()]
        return FantasyTeam(
            id=team_id,
            name="My XI",
            budget=budget,
            players=players,
            formation="3-4-3",
            captain=players[0],
            vice_captain=players[1],
            total_value=60.0,
            remaining_budget=budget - 60.0,
        )
    return _make


class TestGenerateTeamId:
    def test_format(self):
        assert re.fullmatch(r"team_\d+_[a-z0-9]{9}", generate_team_id())

    def test_unique(self):
        assert len({generate_team_id() for _ in range(50)}) == 50


class TestApplyTeamChanges:
    def test_rename_keeps_value(self, make_team):
        updated = apply_team_changes(make_team(), {"name": "Renamed"})
        assert updated.name == "Renamed"
        assert updated.total_value == 60.0

    def test_new_players_recompute_value(self, make_team):
        team = make_team()
        cheaper = [p.model_copy(update={"price": 5.0}) for p in team.players]
        updated = apply_team_changes(team, {"players": [p.model_dump() for p in cheaper]})
        assert updated.total_value == 75.0
        assert updated.remaining_budget == 25.0
        assert isinstance(updated.players[0], PlayerSchema)

    def test_budget_change_recomputes_remaining(self, make_team):
        updated = apply_team_changes(make_team(), {"budget": 55.0})
        assert updated.remaining_budget == -5.0

    def test_original_untouched(self, make_team):
        team = make_team()
        apply_team_changes(team, {"name": "Other"})
        assert team.name == "My XI"


class TestInMemoryTeamRepository:
    def test_crud(self, make_team):
        repo = InMemoryTeamRepository()

        async def scenario():
            await repo.create(make_team("a"))
            assert (await repo.get("a")).name == "My XI"
            assert (await repo.update("a", {"name": "B"})).name == "B"
            assert len(await repo.list()) == 1
            assert await repo.delete("a") is True
            assert await repo.get("a") is None
            assert await repo.delete("a") is False

        asyncio.run(scenario())

    def test_update_missing(self):
        repo = InMemoryTeamRepository()
        assert asyncio.run(repo.update("nope", {"name": "x"})) is None

    def test_instances_are_isolated(self, make_team):
        first, second = InMemoryTeamRepository(), InMemoryTeamRepository()
        asyncio.run(first.create(make_team("a")))
        assert asyncio.run(second.get("a")) is None


class TestJsonFileTeamRepository:
    def test_persists_across_instances(self, make_team, tmp_path):
        path = str(tmp_path / "data" / "teams.json")
        repo = JsonFileTeamRepository(path)
        asyncio.run(repo.create(make_team("a")))
        asyncio.run(repo.update("a", {"name": "Saved"}))

        reloaded = JsonFileTeamRepository(path)
        team = asyncio.run(reloaded.get("a"))
        assert team.name == "Saved"
        assert team.players[0].position == "GK"

    def test_delete_persists(self, make_team, tmp_path):
        path = str(tmp_path / "teams.json")
        repo = JsonFileTeamRepository(path)
        asyncio.run(repo.create(make_team("a")))
        asyncio.run(repo.delete("a"))
        with open(path) as f:
            assert json.load(f) == {"teams": {}}

    def test_missing_file_starts_empty(self, tmp_path):
        repo = JsonFileTeamRepository(str(tmp_path / "absent.json"))
        assert asyncio.run(repo.list()) == []

    def test_failed_write_leaves_memory_unchanged(self, make_team, tmp_path):
        path = str(tmp_path / "teams.json")
        repo = JsonFileTeamRepository(path)
        asyncio.run(repo.create(make_team("a")))

        with patch.object(repo, "save", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                asyncio.run(repo.create(make_team("b")))
            with pytest.raises(OSError):
                asyncio.run(repo.update("a", {"name": "Lost"}))
            with pytest.raises(OSError):
                asyncio.run(repo.delete("a"))

        assert [t.id for t in asyncio.run(repo.list())] == ["a"]
        assert asyncio.run(repo.get("a")).name == "My XI"
        reloaded = JsonFileTeamRepository(path)
        assert [t.id for t in asyncio.run(reloaded.list())] == ["a"]

    def test_update_and_delete_missing(self, tmp_path):
        path = str(tmp_path / "teams.json")
        repo = JsonFileTeamRepository(path)
        assert asyncio.run(repo.update("nope", {"name": "x"})) is None
        assert asyncio.run(repo.delete("nope")) is False
        assert not os.path.exists(path)
