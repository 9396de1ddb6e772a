"""
FantaGPT - Services Module

HTTP client, circuit breaker, cached FPL API fetchers and the
element -> Player mapping used by the rest of the app.
"""

import asyncio
import random
import logging
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any

import httpx
from fastapi import HTTPException

from fantagpt.config import APP_CONFIG
from fantagpt.constants import (
    FPL_BASE_URL, POSITION_MAP, POSITION_ID_MAP,
    cost_to_price, parse_float,
)
from fantagpt.models import Player, Position
from fantagpt.cache import cache


logger = logging.getLogger("fantagpt")


# ============ HTTP CLIENT & CIRCUIT BREAKER ============

# Global HTTP client (initialized in lifespan)
http_client: Optional[httpx.AsyncClient] = None

RETRYABLE_STATUSES = (500, 502, 503, 504)


def create_http_client() -> httpx.AsyncClient:
    api = APP_CONFIG["fpl_api"]
    return httpx.AsyncClient(
        timeout=api.timeout,
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
        headers={"User-Agent": api.user_agent},
    )


async def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client, creating one if needed."""
    global http_client
    if http_client is None:
        http_client = create_http_client()
    return http_client


class CircuitBreaker:
    """
    Counts fetches that used up every retry. Once `threshold` of them happen
    back to back, the breaker opens and calls fail fast for `cooldown` seconds.
    Any successful response closes it again.
    """

    def __init__(self, threshold: int, cooldown: int):
        self.threshold = threshold
        self.cooldown = cooldown
        self.consecutive_failures = 0
        self.open_until: Optional[datetime] = None

    def check(self, now: Optional[datetime] = None):
        now = now or datetime.now()
        if self.open_until and now < self.open_until:
            remaining = int((self.open_until - now).total_seconds())
            raise HTTPException(
                status_code=503,
                detail=f"FPL API circuit breaker open, retrying in {remaining}s",
            )

    def record_success(self):
        self.consecutive_failures = 0
        self.open_until = None

    def record_failure(self, now: Optional[datetime] = None):
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.threshold:
            self.open_until = (now or datetime.now()) + timedelta(seconds=self.cooldown)
            logger.error(
                f"Circuit breaker OPEN after {self.consecutive_failures} consecutive failures. "
                f"Cooldown {self.cooldown}s."
            )


circuit_breaker = CircuitBreaker(
    threshold=APP_CONFIG["fpl_api"].breaker_threshold,
    cooldown=APP_CONFIG["fpl_api"].breaker_cooldown,
)


def reset_circuit_breaker():
    circuit_breaker.record_success()


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Exponential backoff with up to a second of jitter."""
    return base_delay * (2 ** attempt) + random.uniform(0, 1)


def rate_limit_delay(response: httpx.Response, attempt: int, base_delay: float) -> float:
    """Seconds to wait after a 429, from Retry-After when the server sends a number."""
    header = response.headers.get("Retry-After")
    fallback = base_delay * (2 ** attempt)
    return parse_float(header, fallback) if header else fallback


async def fetch_with_retry(
    url: str,
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
) -> httpx.Response:
    """
    GET a URL, retrying rate limits, 5xx responses and connection problems.
    Other HTTP errors are raised straight away.
    """
    api = APP_CONFIG["fpl_api"]
    max_retries = api.max_retries if max_retries is None else max_retries
    base_delay = api.base_delay if base_delay is None else base_delay

    circuit_breaker.check()
    client = await get_http_client()
    last_error: Optional[Exception] = None

    for attempt in range(max_retries):
        try:
            response = await client.get(url)
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            last_error = e
            delay = backoff_delay(attempt, base_delay)
            logger.warning(f"Connection error on {url}, retry in {delay:.1f}s: {e}")
            await asyncio.sleep(delay)
            continue

        if response.status_code == 429:
            delay = rate_limit_delay(response, attempt, base_delay)
            logger.warning(f"Rate limited on {url}, waiting {delay}s")
            await asyncio.sleep(delay)
            continue

        if response.status_code in RETRYABLE_STATUSES:
            last_error = httpx.HTTPStatusError(
                f"Server error {response.status_code}", request=response.request, response=response
            )
            delay = backoff_delay(attempt, base_delay)
            logger.warning(f"Server error {response.status_code} on {url}, retry in {delay:.1f}s")
            await asyncio.sleep(delay)
            continue

        response.raise_for_status()
        circuit_breaker.record_success()
        return response

    circuit_breaker.record_failure()
    if last_error:
        raise last_error
    raise HTTPException(status_code=503, detail="Failed after max retries")


async def fetch_with_cache(url: str) -> Any:
    """Return a fresh cached payload or fetch it. Falls back to stale data on failure."""
    cached = cache.get(url)
    if cached is not None:
        return cached
    try:
        response = await fetch_with_retry(url)
        data = response.json()
        cache.clear_stale()
        cache.set(url, data)
        return data
    except (httpx.HTTPError, HTTPException) as e:
        if isinstance(e, httpx.HTTPStatusError) and e.response.status_code == 404:
            raise HTTPException(status_code=404, detail="Resource not found on FPL API")
        stale = cache.get_any(url)
        if stale is not None:
            logger.warning(f"Serving stale data for {url}: {e}")
            return stale
        logger.error(f"Error fetching from FPL API: {url}: {e}")
        raise HTTPException(status_code=503, detail=f"FPL API unavailable: {str(e)}")


# ============ MAPPING ============

def build_teams_dict(teams: List[Dict]) -> Dict[int, Dict]:
    return {t["id"]: t for t in teams}


def element_to_player(element: Dict, teams_dict: Dict[int, Dict]) -> Player:
    """Map an upstream bootstrap element to a domain Player."""
    team = teams_dict.get(element.get("team"), {})
    return Player(
        id=element["id"],
        name=element.get("web_name") or f"{element.get('first_name', '')} {element.get('second_name', '')}".strip(),
        club=team.get("short_name", "???"),
        position=Position(POSITION_MAP.get(element.get("element_type"), "MID")),
        price=cost_to_price(element.get("now_cost")),
        form=max(parse_float(element.get("form")), 0.0),
        total_points=max(int(element.get("total_points") or 0), 0),
        selected_by_percent=parse_float(element.get("selected_by_percent")),
        status=element.get("status", "a"),
    )


# ============ FPL API FETCHERS ============

async def get_bootstrap_data() -> Dict:
    return await fetch_with_cache(f"{FPL_BASE_URL}/bootstrap-static/")


def players_from_bootstrap(bootstrap: Dict) -> List[Player]:
    teams_dict = build_teams_dict(bootstrap.get("teams", []))
    return [element_to_player(e, teams_dict) for e in bootstrap.get("elements", [])]


async def get_all_players() -> List[Player]:
    return players_from_bootstrap(await get_bootstrap_data())


def match_clubs(query: str, clubs: List[Dict]) -> set:
    """Short codes of the clubs whose full name or short code contains query."""
    needle = query.lower()
    return {
        c["short_name"] for c in clubs
        if needle in c.get("name", "").lower() or needle in c.get("short_name", "").lower()
    }


def filter_players(
    players: List[Player],
    position: Optional[str] = None,
    team: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort_by: str = "form",
    clubs: Optional[List[Dict]] = None,
) -> List[Player]:
    """
    Filter and sort a player list.

    team is matched case-insensitively against the club's full name or short
    code when the upstream clubs list is given, otherwise against the code alone.
    """
    result = list(players)

    if position:
        position = position.upper()
        if position not in POSITION_ID_MAP:
            raise HTTPException(status_code=400, detail=f"Unknown position: {position}")
        result = [p for p in result if p.position == position]

    if team:
        if clubs is not None:
            codes = match_clubs(team, clubs)
            result = [p for p in result if p.club in codes]
        else:
            needle = team.lower()
            result = [p for p in result if needle in p.club.lower()]

    if min_price is not None:
        result = [p for p in result if p.price >= min_price]

    if max_price is not None:
        result = [p for p in result if p.price <= max_price]

    sort_keys = {
        "form": lambda p: -p.form,
        "points": lambda p: -p.total_points,
        "value": lambda p: -(p.form / max(p.price, 0.1)),
        "price": lambda p: p.price,
    }
    result.sort(key=sort_keys.get(sort_by, sort_keys["form"]))
    return result


async def get_players(
    position: Optional[str] = None,
    team: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    sort_by: str = "form",
) -> List[Player]:
    bootstrap = await get_bootstrap_data()
    return filter_players(
        players_from_bootstrap(bootstrap), position, team, min_price, max_price, sort_by,
        clubs=bootstrap.get("teams", []),
    )


async def get_player_by_id(player_id: int) -> Optional[Player]:
    for p in await get_all_players():
        if p.id == player_id:
            return p
    return None


async def get_player_stats(player_id: int) -> Optional[Dict]:
    """Element summary plus the finished fixtures the player featured in."""
    try:
        history, fixtures = await asyncio.gather(
            fetch_with_cache(f"{FPL_BASE_URL}/element-summary/{player_id}/"),
            get_fixtures(),
        )
    except HTTPException as e:
        logger.error(f"Error fetching player stats for ID {player_id}: {e.detail}")
        if e.status_code == 404:
            return None
        raise

    involved = [
        f for f in fixtures
        if any(
            entry.get("element") == player_id
            for stat in f.get("stats", [])
            for entry in stat.get("h", []) + stat.get("a", [])
        )
    ]
    return {"history": history, "fixtures": involved}


async def get_teams() -> List[Dict]:
    bootstrap = await get_bootstrap_data()
    return bootstrap.get("teams", [])


async def get_team_by_id(team_id: int) -> Optional[Dict]:
    return build_teams_dict(await get_teams()).get(team_id)


def get_current_gameweek(events: List[Dict]) -> int:
    for event in events:
        if event.get("is_current"):
            return event["id"]
    return 1


async def fetch_current_gameweek() -> int:
    bootstrap = await get_bootstrap_data()
    return get_current_gameweek(bootstrap.get("events", []))


async def get_fixtures() -> List[Dict]:
    return await fetch_with_cache(f"{FPL_BASE_URL}/fixtures/")


async def get_live_data(gameweek: int) -> Dict:
    return await fetch_with_cache(f"{FPL_BASE_URL}/event/{gameweek}/live/")
