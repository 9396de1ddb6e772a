"""Shared fixtures for FantaGPT test suite."""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from fantagpt.models import Player, Position, Roster

CLUBS = ["ARS", "AVL", "BOU", "BRE", "BHA", "CHE", "CRY", "EVE"]


@pytest.fixture
def make_player():
    """Factory for creating domain players."""
    def _make(**overrides):
        base = {
            "id": 1,
            "name": "TestPlayer",
            "club": "ARS",
            "position": Position.MID,
            "price": 4.0,
            "form": 3.0,
            "total_points": 50,
        }
        base.update(overrides)
        return Player(**base)
    return _make


@pytest.fixture
def make_squad(make_player):
    """Factory for a 2 GK / 5 DEF / 5 MID / 3 FWD squad, ids 1-15, each priced 4.0."""
    def _make(price=4.0, **overrides):
        layout = [Position.GK] * 2 + [Position.DEF] * 5 + [Position.MID] * 5 + [Position.FWD] * 3
        return [
            make_player(
                id=i + 1,
                name=f"Player{i + 1}",
                club=CLUBS[i % len(CLUBS)],
                position=pos,
                price=price,
                **overrides,
            )
            for i, pos in enumerate(layout)
        ]
    return _make


@pytest.fixture
def make_roster(make_squad):
    """Factory for rosters. Captain/vice default to the first two players."""
    def _make(players=None, budget=100.0, captain=None, vice_captain=None, formation="4-4-2"):
        if players is None:
            players = make_squad()
        return Roster(
            players=players,
            budget=budget,
            captain=captain if captain is not None else players[0],
            vice_captain=vice_captain if vice_captain is not None else players[1],
            formation=formation,
        )
    return _make


@pytest.fixture
def make_element():
    """Factory for upstream bootstrap elements."""
    def _make(**overrides):
        base = {
            "id": 1,
            "web_name": "TestPlayer",
            "first_name": "Test",
            "second_name": "Player",
            "team": 1,
            "element_type": 3,  # MID
            "now_cost": 70,  # 7.0
            "form": "5.2",
            "total_points": 104,
            "selected_by_percent": "12.5",
            "status": "a",
        }
        base.update(overrides)
        return base
    return _make


@pytest.fixture
def make_bootstrap(make_element):
    """Bootstrap payload with a pool deep enough to build a squad."""
    def _make(per_position=8, clubs=8):
        teams = [{"id": i + 1, "name": f"Club {i + 1}", "short_name": CLUBS[i]} for i in range(clubs)]
        elements = []
        pid = 1
        for element_type in (1, 2, 3, 4):
            for n in range(per_position):
                elements.append(make_element(
                    id=pid,
                    web_name=f"P{pid}",
                    team=(n % clubs) + 1,
                    element_type=element_type,
                    now_cost=40 + 5 * n,
                    form=str(2.0 + n * 0.5),
                    total_points=40 + 10 * n,
                ))
                pid += 1
        return {
            "teams": teams,
            "elements": elements,
            "events": [{"id": 1, "is_current": False}, {"id": 2, "is_current": True}],
        }
    return _make
