"""
FantaGPT - Squad Rules Module

Structural validation and budget/value accounting for a roster.
Both entry points are pure: no I/O, no mutation of the roster passed in.
"""

import math
from collections import defaultdict
from typing import List, Dict

from fantagpt.config import APP_CONFIG
from fantagpt.constants import POSITION_LABELS, format_amount
from fantagpt.models import Player, Position, Roster, ValidationResult, RosterStats


# ============ AGGREGATES ============

def calculate_team_value(players: List[Player]) -> float:
    return math.fsum(p.price for p in players)


def calculate_total_points(players: List[Player]) -> int:
    return sum(p.total_points for p in players)


def calculate_average_form(players: List[Player]) -> float:
    """Mean form over the players present. 0.0 for an empty list."""
    if not players:
        return 0.0
    return math.fsum(p.form for p in players) / len(players)


def get_position_breakdown(players: List[Player]) -> Dict[str, int]:
    """Count per position, in GK/DEF/MID/FWD order. Absent positions are omitted."""
    counts = defaultdict(int)
    for p in players:
        counts[Position(p.position).value] += 1
    return {pos.value: counts[pos.value] for pos in Position if counts[pos.value]}


def get_club_breakdown(players: List[Player]) -> Dict[str, int]:
    breakdown: Dict[str, int] = {}
    for p in players:
        breakdown[p.club] = breakdown.get(p.club, 0) + 1
    return breakdown


# ============ VALIDATION ============

def validate_roster(roster: Roster) -> ValidationResult:
    """
    Check a roster against every squad rule and report all violations.

    Checks never short-circuit: a 14-man squad with one goalkeeper that is
    over budget yields three messages. Duplicate entries are counted as
    present, not collapsed.

    Precondition: roster.captain and roster.vice_captain are Player values.
    """
    rules = APP_CONFIG["rules"]
    players = roster.players
    errors: List[str] = []

    # Squad size
    if len(players) != rules.squad_size:
        errors.append(f"Team must have exactly {rules.squad_size} players")

    # Position minimums
    counts = defaultdict(int)
    for p in players:
        counts[Position(p.position).value] += 1
    for pos in Position:
        minimum = rules.min_per_position.get(pos.value, 0)
        if counts[pos.value] < minimum:
            singular, plural = POSITION_LABELS[pos.value]
            noun = singular if minimum == 1 else plural
            errors.append(f"Team must have at least {minimum} {noun}")

    # Budget
    total_value = calculate_team_value(players)
    if total_value > roster.budget:
        errors.append(
            f"Team value ({format_amount(total_value)}) exceeds budget ({format_amount(roster.budget)})"
        )

    # Duplicates
    player_ids = [p.id for p in players]
    if len(set(player_ids)) != len(player_ids):
        errors.append("Team contains duplicate players")

    # Captaincy
    if roster.captain.id not in player_ids:
        errors.append("Captain must be in the team")
    if roster.vice_captain.id not in player_ids:
        errors.append("Vice-captain must be in the team")

    return ValidationResult(valid=not errors, errors=errors)


# ============ STATISTICS ============

def compute_roster_stats(roster: Roster) -> RosterStats:
    """Derived figures for any roster, valid or not."""
    players = roster.players
    total_value = calculate_team_value(players)
    return RosterStats(
        total_value=total_value,
        remaining_budget=roster.budget - total_value,
        position_breakdown=get_position_breakdown(players),
        club_breakdown=get_club_breakdown(players),
        average_form=calculate_average_form(players),
        total_points=calculate_total_points(players),
    )
