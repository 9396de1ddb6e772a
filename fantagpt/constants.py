"""
FantaGPT - Constants Module

Lookup tables for the upstream FPL API and small conversion helpers.
"""

from typing import Optional

from fantagpt.config import APP_CONFIG


# ============ CONSTANTS ============

FPL_BASE_URL = APP_CONFIG["fpl_api"].base_url

# Upstream element_type -> position code
POSITION_MAP = {1: "GK", 2: "DEF", 3: "MID", 4: "FWD"}
POSITION_ID_MAP = {"GK": 1, "DEF": 2, "MID": 3, "FWD": 4}

# Plural nouns used in violation messages
POSITION_LABELS = {
    "GK": ("goalkeeper", "goalkeepers"),
    "DEF": ("defender", "defenders"),
    "MID": ("midfielder", "midfielders"),
    "FWD": ("forward", "forwards"),
}

SORT_OPTIONS = ("form", "points", "value", "price")
GAMEWEEKS_PER_SEASON = 38


# ============ UTILITY FUNCTIONS ============

def cost_to_price(now_cost: Optional[int]) -> float:
    """Upstream prices are in tenths of a million (now_cost=75 -> 7.5)."""
    return round((now_cost or 0) / 10.0, 1)


def parse_float(value, default: float = 0.0) -> float:
    """Upstream sends decimals as strings ("5.2") and sometimes null."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def format_amount(value: float) -> str:
    """60.0 -> "60", 99.5 -> "99.5"."""
    return f"{value:g}"
