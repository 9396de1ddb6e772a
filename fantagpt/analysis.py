"""
FantaGPT - Analysis Module

Team, player and formation analysis. Everything here is derived from the
roster rules and the recommender's scoring, so the same squad always gets
the same report.
"""

import logging
from collections import Counter
from dataclasses import asdict
from itertools import product
from typing import Any, Dict, List, Optional, Tuple

from fantagpt.config import APP_CONFIG
from fantagpt.constants import POSITION_LABELS, format_amount
from fantagpt.models import (
    Player, Position, PlayerSchema, Roster, UserPreferences, CaptainStrategy,
)
from fantagpt.recommender import (
    LINE_LIMITS, captain_key, formation_label, parse_formation,
    pick_starting_xi, score_player,
)
from fantagpt.rules import compute_roster_stats, validate_roster

logger = logging.getLogger("fantagpt")


def resolve_captain_strategy(value: Optional[str]) -> CaptainStrategy:
    """Free-form strategy name -> CaptainStrategy, defaulting to form."""
    try:
        return CaptainStrategy(value)
    except ValueError:
        return CaptainStrategy.FORM


# ============ FORMATIONS ============

def legal_formations() -> List[Tuple[int, int, int]]:
    """Every D-M-F outfield shape a squad may start, e.g. (3, 4, 3)."""
    ranges = [range(low, high + 1) for low, high in LINE_LIMITS.values()]
    return [shape for shape in product(*ranges) if sum(shape) == 10]


def rank_formations(players: List[Player], preferences: UserPreferences) -> List[Dict[str, Any]]:
    """
    Pick the best XI for every legal shape the players can fill and rank
    the shapes by projected points (starters' form plus the captain's form
    again). Ties go to the higher blended score, then the label.

    Shapes the players cannot fill are left out, so an unbalanced list may
    yield only a few options or none.
    """
    counts = Counter(Position(p.position).value for p in players)
    options = []
    for shape in legal_formations():
        need = {"GK": 1, "DEF": shape[0], "MID": shape[1], "FWD": shape[2]}
        if any(counts[pos] < n for pos, n in need.items()):
            continue
        starters, bench = pick_starting_xi(players, shape, preferences)
        captain = max(starters, key=lambda p: captain_key(p, preferences.captain_strategy))
        options.append({
            "formation": formation_label(shape),
            "projected_points": round(sum(p.form for p in starters) + captain.form, 1),
            "xi_score": round(sum(score_player(p, preferences) for p in starters), 2),
            "captain": PlayerSchema.from_player(captain),
            "starters": [PlayerSchema.from_player(p) for p in starters],
            "bench": [PlayerSchema.from_player(p) for p in bench],
        })
    options.sort(key=lambda o: (-o["projected_points"], -o["xi_score"], o["formation"]))
    return options


def suggest_formations(
    players: List[Player],
    budget: Optional[float],
    preferences: UserPreferences,
) -> Dict[str, Any]:
    options = rank_formations(players, preferences)
    total_value = round(sum(p.price for p in players), 1)
    return {
        "best": options[0]["formation"] if options else None,
        "total_value": total_value,
        "within_budget": None if budget is None else total_value <= budget,
        "options": options,
    }


# ============ TEAM ANALYSIS ============

def analyze_team(roster: Roster, preferences: Optional[UserPreferences] = None) -> Dict[str, Any]:
    """
    Rules verdict, statistics and a list of strengths and weaknesses.

    Weaknesses cover rule violations, clubs above the per-club limit,
    out-of-form or unavailable players, a better-projecting formation and
    a stronger captain option under the chosen captain strategy.
    """
    preferences = preferences or UserPreferences()
    cfg = APP_CONFIG["analysis"]
    max_per_club = APP_CONFIG["recommender"].max_per_club
    excluded = APP_CONFIG["recommender"].excluded_statuses
    strategy = preferences.captain_strategy

    validation = validate_roster(roster)
    stats = compute_roster_stats(roster)
    over_limit = {club: n for club, n in stats.club_breakdown.items() if n > max_per_club}

    options = rank_formations(roster.players, preferences)
    best = options[0] if options else None
    shape = parse_formation(roster.formation)
    current = None
    if shape is not None:
        current = next((o for o in options if o["formation"] == formation_label(shape)), None)

    best_captain = max(roster.players, key=lambda p: captain_key(p, strategy), default=None)

    strengths: List[str] = []
    weaknesses: List[str] = list(validation.errors)

    if validation.valid:
        strengths.append("Squad satisfies every squad rule")
    if stats.remaining_budget >= 0:
        strengths.append(f"{format_amount(round(stats.remaining_budget, 1))} left in the bank")

    for club, count in sorted(over_limit.items()):
        weaknesses.append(f"{count} players from {club} (limit {max_per_club})")
    for p in sorted(roster.players, key=lambda p: p.form):
        if p.status in excluded:
            weaknesses.append(f"{p.name} is flagged unavailable")
        elif p.form < cfg.low_form:
            weaknesses.append(f"{p.name} is out of form ({format_amount(p.form)})")

    if best is not None and current is not None:
        if best["projected_points"] > current["projected_points"]:
            weaknesses.append(
                f"{best['formation']} projects {format_amount(best['projected_points'])} points "
                f"against {format_amount(current['projected_points'])} for {current['formation']}"
            )
        else:
            strengths.append(f"{current['formation']} is the best-projecting formation")

    if best_captain is not None:
        if captain_key(best_captain, strategy) > captain_key(roster.captain, strategy):
            weaknesses.append(
                f"{best_captain.name} is a stronger {strategy.value} captain than {roster.captain.name}"
            )
        else:
            strengths.append(f"{roster.captain.name} is the best {strategy.value} captain")

    logger.info(
        f"Analyzed roster of {len(roster.players)}: "
        f"{len(strengths)} strengths, {len(weaknesses)} weaknesses"
    )
    return {
        "validation": asdict(validation),
        "stats": asdict(stats),
        "club_concentration": over_limit,
        "formation": {
            "current": roster.formation,
            "current_projection": current["projected_points"] if current else None,
            "suggested": best["formation"] if best else None,
            "suggested_projection": best["projected_points"] if best else None,
        },
        "captain_suggestion": PlayerSchema.from_player(best_captain) if best_captain else None,
        "strengths": strengths,
        "weaknesses": weaknesses,
    }


# ============ PLAYER ANALYSIS ============

def ownership_band(selected_by_percent: float) -> str:
    """template / popular / differential / punt, from most to least owned."""
    cfg = APP_CONFIG["analysis"]
    if selected_by_percent >= cfg.template_ownership:
        return "template"
    if selected_by_percent >= cfg.popular_ownership:
        return "popular"
    if selected_by_percent >= cfg.differential_ownership:
        return "differential"
    return "punt"


def analyze_player(player: Player, pool: List[Player]) -> Dict[str, Any]:
    """Where a player stands among same-position peers in the pool."""
    cfg = APP_CONFIG["analysis"]
    others = [p for p in pool if p.id != player.id]
    peers = [p for p in others if p.position == player.position]

    form_rank = 1 + sum(1 for p in peers if p.form > player.form)
    points_rank = 1 + sum(1 for p in peers if p.total_points > player.total_points)
    overall_form_rank = 1 + sum(1 for p in others if p.form > player.form)
    cheaper = sum(1 for p in peers if p.price < player.price)
    position_count = len(peers) + 1

    available = player.status not in APP_CONFIG["recommender"].excluded_statuses
    plural = POSITION_LABELS[Position(player.position).value][1]

    if not available:
        verdict = "Avoid: flagged unavailable"
    elif form_rank <= max(1, position_count // 4):
        verdict = f"Buy: top-quarter form among {plural}"
    elif player.form < cfg.low_form:
        verdict = "Sell: out of form"
    else:
        verdict = "Hold"

    return {
        "player": PlayerSchema.from_player(player),
        "position_count": position_count,
        "form_rank": form_rank,
        "points_rank": points_rank,
        "price_percentile": round(100 * cheaper / position_count),
        "value": round(player.form / max(player.price, 0.1), 2),
        "points_per_million": round(player.total_points / max(player.price, 0.1), 1),
        "ownership": ownership_band(player.selected_by_percent),
        "available": available,
        "captain_option": available and overall_form_rank <= cfg.captain_pool,
        "verdict": verdict,
    }
