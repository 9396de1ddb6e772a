"""
FantaGPT - Team Repository Module

Storage for fantasy teams behind a small create/get/update/delete/list
interface. Handlers receive a repository through FastAPI dependency
injection instead of reaching for module-level state.
"""

import asyncio
import json
import os
import random
import string
import time
import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict, List, Any

from fantagpt.config import APP_CONFIG
from fantagpt.models import FantasyTeam
from fantagpt.rules import calculate_team_value

logger = logging.getLogger("fantagpt")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_team_id() -> str:
    """team_<epoch ms>_<9 base36 chars>"""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"team_{int(time.time() * 1000)}_{suffix}"


def apply_team_changes(team: FantasyTeam, changes: Dict[str, Any]) -> FantasyTeam:
    """Merge changes into a copy of team, recomputing value figures when players or budget move."""
    data = team.model_dump()
    data.update(changes)
    updated = FantasyTeam.model_validate(data)
    if "players" in changes or "budget" in changes:
        total_value = calculate_team_value([p.to_player() for p in updated.players])
        updated = updated.model_copy(update={
            "total_value": total_value,
            "remaining_budget": updated.budget - total_value,
        })
    return updated


class TeamRepository(ABC):
    @abstractmethod
    async def create(self, team: FantasyTeam) -> FantasyTeam:
        ...

    @abstractmethod
    async def get(self, team_id: str) -> Optional[FantasyTeam]:
        ...

    @abstractmethod
    async def update(self, team_id: str, changes: Dict[str, Any]) -> Optional[FantasyTeam]:
        """Apply a partial update. Returns None if the team does not exist."""

    @abstractmethod
    async def delete(self, team_id: str) -> bool:
        ...

    @abstractmethod
    async def list(self) -> List[FantasyTeam]:
        ...


class InMemoryTeamRepository(TeamRepository):
    def __init__(self):
        self.teams: Dict[str, FantasyTeam] = {}

    async def create(self, team: FantasyTeam) -> FantasyTeam:
        self.teams[team.id] = team
        return team

    async def get(self, team_id: str) -> Optional[FantasyTeam]:
        return self.teams.get(team_id)

    async def update(self, team_id: str, changes: Dict[str, Any]) -> Optional[FantasyTeam]:
        team = self.teams.get(team_id)
        if team is None:
            return None
        updated = apply_team_changes(team, changes)
        self.teams[team_id] = updated
        return updated

    async def delete(self, team_id: str) -> bool:
        return self.teams.pop(team_id, None) is not None

    async def list(self) -> List[FantasyTeam]:
        return list(self.teams.values())


class JsonFileTeamRepository(InMemoryTeamRepository):
    """
    In-memory map mirrored to a JSON file after every write.

    Each write builds the next state, persists it in a worker thread and
    only then swaps it in, so a failed write leaves memory matching disk.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = path
        self._lock = asyncio.Lock()
        self.load()

    def load(self) -> bool:
        if not os.path.exists(self.path):
            return False
        with open(self.path, "r") as f:
            data = json.load(f)
        self.teams = {
            team_id: FantasyTeam.model_validate(raw)
            for team_id, raw in data.get("teams", {}).items()
        }
        logger.info(f"Loaded {len(self.teams)} teams from {self.path}")
        return True

    def save(self, teams: Optional[Dict[str, FantasyTeam]] = None):
        teams = self.teams if teams is None else teams
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump({"teams": {k: v.model_dump(mode="json") for k, v in teams.items()}}, f)
        os.replace(tmp_path, self.path)

    async def _commit(self, teams: Dict[str, FantasyTeam]):
        await asyncio.to_thread(self.save, teams)
        self.teams = teams

    async def create(self, team: FantasyTeam) -> FantasyTeam:
        async with self._lock:
            await self._commit({**self.teams, team.id: team})
        return team

    async def update(self, team_id: str, changes: Dict[str, Any]) -> Optional[FantasyTeam]:
        async with self._lock:
            team = self.teams.get(team_id)
            if team is None:
                return None
            updated = apply_team_changes(team, changes)
            await self._commit({**self.teams, team_id: updated})
        return updated

    async def delete(self, team_id: str) -> bool:
        async with self._lock:
            if team_id not in self.teams:
                return False
            await self._commit({k: v for k, v in self.teams.items() if k != team_id})
        return True


def create_repository() -> TeamRepository:
    storage = APP_CONFIG["storage"]
    if storage.backend == "json":
        logger.info(f"Using JSON team storage at {storage.path}")
        return JsonFileTeamRepository(storage.path)
    if storage.backend != "memory":
        logger.warning(f"Unknown storage backend {storage.backend!r}, using memory")
    return InMemoryTeamRepository()
