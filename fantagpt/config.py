import os
from dataclasses import dataclass, field
from typing import Dict, List


# =============================================================================
# APP CONFIGURATION - squad rules, upstream API, storage and recommender knobs
# =============================================================================

@dataclass
class SquadRulesConfig:
    """
    Structural rules a squad must satisfy.

    Minimums are per-position floors, not the exact 2/5/5/3 quota the
    recommender builds to. A squad with 3 GK and 2 FWD is still legal here.
    """

    squad_size: int = 15
    min_per_position: Dict[str, int] = field(default_factory=lambda: {
        "GK": 2,
        "DEF": 3,
        "MID": 3,
        "FWD": 1,
    })
    default_budget: float = 100.0


@dataclass
class FPLApiConfig:
    """Upstream Fantasy Premier League API client settings."""

    base_url: str = "https://fantasy.premierleague.com/api"
    timeout: float = 30.0
    max_retries: int = 3
    base_delay: float = 1.0
    cache_seconds: int = field(default_factory=lambda: int(os.environ.get("FPL_CACHE_SECONDS", "300")))
    breaker_threshold: int = 3   # exhausted fetches before the circuit opens
    breaker_cooldown: int = 60   # seconds
    user_agent: str = "FantaGPT/1.0"


@dataclass
class StorageConfig:
    """Where fantasy teams live. backend is "memory" or "json"."""

    backend: str = field(default_factory=lambda: os.environ.get("FANTAGPT_STORAGE", "memory"))
    path: str = field(default_factory=lambda: os.environ.get(
        "FANTAGPT_STORAGE_PATH",
        os.path.join(os.path.dirname(__file__), "..", "data", "teams.json"),
    ))


@dataclass
class RecommenderConfig:
    """Greedy squad builder settings."""

    # Exact quota the builder fills, unlike the validator's floors
    squad_quota: Dict[str, int] = field(default_factory=lambda: {
        "GK": 2,
        "DEF": 5,
        "MID": 5,
        "FWD": 3,
    })
    max_per_club: int = 3
    default_formation: str = "3-4-3"
    preferred_team_bonus: float = 1.15

    # Weight on form vs season points per risk tolerance.
    # High risk chases recent form, low risk trusts the season total.
    form_weight: Dict[str, float] = field(default_factory=lambda: {
        "low": 0.3,
        "medium": 0.5,
        "high": 0.8,
    })

    # Players flagged unavailable upstream are skipped
    excluded_statuses: List[str] = field(default_factory=lambda: ["i", "s", "u", "n"])


@dataclass
class AnalysisConfig:
    """Thresholds for team, player and formation analysis."""

    low_form: float = 2.0            # starters below this are flagged
    captain_pool: int = 10           # top-N by form counts as a captain option
    # selected_by_percent bands
    template_ownership: float = 30.0
    popular_ownership: float = 15.0
    differential_ownership: float = 5.0


APP_CONFIG = {
    "rules": SquadRulesConfig(),
    "fpl_api": FPLApiConfig(),
    "storage": StorageConfig(),
    "recommender": RecommenderConfig(),
    "analysis": AnalysisConfig(),
}

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")
