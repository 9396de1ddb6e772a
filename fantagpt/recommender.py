"""
FantaGPT - Recommender Module

Turns a budget and user preferences into a full squad, a starting shape
and a captaincy pick. The app only depends on the Recommender interface;
GreedyRecommender is the built-in implementation working off the
upstream player pool.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from fantagpt.config import APP_CONFIG
from fantagpt.constants import GAMEWEEKS_PER_SEASON
from fantagpt.models import (
    Player, Position, PlayerSchema, Recommendation, UserPreferences,
    CaptainStrategy,
)
from fantagpt.rules import calculate_team_value

logger = logging.getLogger("fantagpt")

# Legal starting line sizes given a 2/5/5/3 squad
LINE_LIMITS = {"DEF": (3, 5), "MID": (2, 5), "FWD": (1, 3)}


class RecommendationError(Exception):
    """The player pool cannot produce a squad under the given constraints."""


# ============ SCORING ============

def parse_formation(label: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """'4-4-2' -> (4, 4, 2). None unless it is a legal outfield shape."""
    if not label:
        return None
    try:
        lines = tuple(int(part) for part in label.strip().split("-"))
    except ValueError:
        return None
    if len(lines) != 3 or sum(lines) != 10:
        return None
    for count, (low, high) in zip(lines, LINE_LIMITS.values()):
        if not low <= count <= high:
            return None
    return lines


def formation_label(shape: Tuple[int, int, int]) -> str:
    return "-".join(str(n) for n in shape)


def score_player(player: Player, preferences: UserPreferences) -> float:
    """Blend of recent form and season points per gameweek, per unit of price."""
    cfg = APP_CONFIG["recommender"]
    w = cfg.form_weight.get(preferences.risk_tolerance.value, 0.5)
    season_ppg = player.total_points / GAMEWEEKS_PER_SEASON
    score = w * player.form + (1 - w) * season_ppg
    preferred = {t.lower() for t in preferences.preferred_teams}
    if player.club.lower() in preferred:
        score *= cfg.preferred_team_bonus
    return score


def captain_key(player: Player, strategy: CaptainStrategy) -> float:
    if strategy == CaptainStrategy.DIFFERENTIAL:
        # Reward form that few managers own
        return player.form * (1 - min(player.selected_by_percent, 100.0) / 100.0)
    if strategy == CaptainStrategy.FIXTURE:
        # No fixture data on Player; season output is the steadier proxy
        return player.total_points / GAMEWEEKS_PER_SEASON
    return player.form


# ============ SQUAD BUILDING ============

def _cheapest_fill(
    by_position: Dict[str, List[Player]],
    needed: Dict[str, int],
    taken: set,
) -> float:
    """Lowest spend that could fill the open slots, ignoring club limits."""
    total = 0.0
    for pos, count in needed.items():
        if count <= 0:
            continue
        prices = [p.price for p in by_position.get(pos, []) if p.id not in taken][:count]
        if len(prices) < count:
            return float("inf")
        total += sum(prices)
    return total


def build_squad(pool: List[Player], budget: float, preferences: UserPreferences) -> List[Player]:
    """
    Greedy squad fill by score per price.

    Each pick must leave enough budget for the cheapest possible fill of
    the remaining slots, so the result is always within budget.
    """
    cfg = APP_CONFIG["recommender"]
    avoid = {t.lower() for t in preferences.avoid_teams}
    candidates = [
        p for p in pool
        if p.status not in cfg.excluded_statuses and p.club.lower() not in avoid
    ]

    by_price: Dict[str, List[Player]] = defaultdict(list)
    for p in sorted(candidates, key=lambda x: x.price):
        by_price[Position(p.position).value].append(p)

    ranked = sorted(candidates, key=lambda x: -score_player(x, preferences) / max(x.price, 0.1))

    needed = dict(cfg.squad_quota)
    selected: List[Player] = []
    taken = set()
    club_counts = defaultdict(int)
    remaining_budget = budget

    for pos in cfg.squad_quota:
        for p in ranked:
            if needed[pos] <= 0:
                break
            if p.position != pos or p.id in taken:
                continue
            if club_counts[p.club] >= cfg.max_per_club:
                continue
            needed[pos] -= 1
            taken.add(p.id)
            reserve = _cheapest_fill(by_price, needed, taken)
            if p.price + reserve > remaining_budget:
                needed[pos] += 1
                taken.discard(p.id)
                continue
            selected.append(p)
            remaining_budget -= p.price
            club_counts[p.club] += 1

        if needed[pos] > 0:
            raise RecommendationError(
                f"Could not fill {needed[pos]} {pos} slot(s) within budget {budget}"
            )

    return selected


def pick_starting_xi(
    squad: List[Player],
    formation: Tuple[int, int, int],
    preferences: UserPreferences,
) -> Tuple[List[Player], List[Player]]:
    """Split a squad into a starting XI for the formation and an ordered bench."""
    ranked = sorted(squad, key=lambda p: -score_player(p, preferences))
    shape = {"GK": 1, "DEF": formation[0], "MID": formation[1], "FWD": formation[2]}
    starters: List[Player] = []
    for pos, count in shape.items():
        starters.extend([p for p in ranked if p.position == pos][:count])
    starter_ids = {p.id for p in starters}
    # Backup keeper sits first on the bench
    bench = sorted(
        (p for p in ranked if p.id not in starter_ids),
        key=lambda p: p.position != Position.GK,
    )
    return starters, bench


# ============ RECOMMENDERS ============

class Recommender(ABC):
    @abstractmethod
    async def recommend(self, budget: float, preferences: UserPreferences) -> Recommendation:
        ...


class GreedyRecommender(Recommender):
    def __init__(self, player_source: Callable[[], Awaitable[List[Player]]]):
        self.player_source = player_source

    async def recommend(self, budget: float, preferences: UserPreferences) -> Recommendation:
        pool = await self.player_source()
        return recommend_from_pool(pool, budget, preferences)


def recommend_from_pool(pool: List[Player], budget: float, preferences: UserPreferences) -> Recommendation:
    cfg = APP_CONFIG["recommender"]
    squad = build_squad(pool, budget, preferences)

    formation = parse_formation(preferences.preferred_formation)
    if formation is None:
        if preferences.preferred_formation:
            logger.warning(f"Unusable formation {preferences.preferred_formation!r}, using {cfg.default_formation}")
        formation = parse_formation(cfg.default_formation)
    label = formation_label(formation)

    starters, bench = pick_starting_xi(squad, formation, preferences)
    by_captaincy = sorted(starters, key=lambda p: -captain_key(p, preferences.captain_strategy))
    captain, vice_captain = by_captaincy[0], by_captaincy[1]

    expected_points = sum(p.form for p in starters) + captain.form
    total_value = calculate_team_value(squad)
    reasoning = (
        f"{label} built from {len(pool)} players by "
        f"{preferences.risk_tolerance.value}-risk score per price. "
        f"Squad value {total_value:.1f} of {budget:.1f}. "
        f"{captain.name} captains on {preferences.captain_strategy.value}, "
        f"{vice_captain.name} is vice."
    )
    logger.info(f"Recommended {label} squad worth {total_value:.1f} (budget {budget:.1f})")

    return Recommendation(
        players=[PlayerSchema.from_player(p) for p in squad],
        formation=label,
        captain=PlayerSchema.from_player(captain),
        vice_captain=PlayerSchema.from_player(vice_captain),
        bench=[PlayerSchema.from_player(p) for p in bench],
        reasoning=reasoning,
        expected_points=round(expected_points, 1),
        risk_level=preferences.risk_tolerance,
        strategy=preferences.captain_strategy.value,
    )
