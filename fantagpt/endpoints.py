"""
FantaGPT - Endpoints Module

FastAPI app initialization, CORS middleware, lifespan handler,
response envelope and all API endpoint handlers.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional, Any

from fastapi import FastAPI, HTTPException, Query, Path, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fantagpt.config import APP_CONFIG, CORS_ORIGINS
from fantagpt.constants import SORT_OPTIONS
from fantagpt.models import (
    PlayerSchema, FantasyTeam, RosterRequest, UserPreferences,
    CreateTeamRequest, UpdateTeamRequest, OptimizeRequest,
    TeamAnalysisRequest, FormationRequest, ApiResponse, ApiError,
)
from fantagpt.analysis import (
    analyze_team, analyze_player, suggest_formations, resolve_captain_strategy,
)
from fantagpt.cache import cache
from fantagpt.repository import TeamRepository, create_repository, generate_team_id
from fantagpt.recommender import Recommender, GreedyRecommender, RecommendationError
from fantagpt.rules import validate_roster, compute_roster_stats, calculate_team_value
import fantagpt.services as services_module


logger = logging.getLogger("fantagpt")


# ============ ENVELOPE ============

def ok(data: Any) -> dict:
    return {"success": True, "data": data}


def error_response(status_code: int, message: str, code: Optional[str] = None) -> JSONResponse:
    body = ApiResponse(success=False, error=ApiError(message=message, code=code))
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# ============ DEPENDENCIES ============

def get_repository(request: Request) -> TeamRepository:
    return request.app.state.repository


def get_recommender(request: Request) -> Recommender:
    return request.app.state.recommender


async def require_team(team_id: str, repo: TeamRepository = Depends(get_repository)) -> FantasyTeam:
    team = await repo.get(team_id)
    if team is None:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


# ============ LIFESPAN ============

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup - create shared HTTP client
    services_module.http_client = services_module.create_http_client()

    # Tests may install their own collaborators before startup
    if not hasattr(app.state, "repository"):
        app.state.repository = create_repository()
    if not hasattr(app.state, "recommender"):
        app.state.recommender = GreedyRecommender(services_module.get_all_players)
    logger.info(f"FantaGPT API started with {APP_CONFIG['storage'].backend} storage")

    yield

    # Shutdown - close HTTP client
    if services_module.http_client:
        await services_module.http_client.aclose()
        services_module.http_client = None


# ============ APP INITIALIZATION ============

app = FastAPI(title="FantaGPT API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=False,  # Set to True only with specific origins, not "*"
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404 and exc.detail == "Not Found":
        return error_response(404, f"Route {request.url.path} not found")
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return error_response(422, message, code="VALIDATION_ERROR")


@app.exception_handler(RecommendationError)
async def recommendation_exception_handler(request: Request, exc: RecommendationError):
    logger.warning(f"Recommendation failed: {exc}")
    return error_response(422, str(exc), code="RECOMMENDATION_FAILED")


# ============ HEALTH CHECK ============

@app.get("/api/health")
async def health_check():
    """Health check endpoint with cache status."""
    return {
        "status": "ok",
        "cache": {
            "entries": len(cache.entries),
            "cache_duration": cache.cache_duration,
        },
        "storage": APP_CONFIG["storage"].backend,
    }


# ============ PLAYERS ============

@app.get("/api/players")
async def list_players(
    position: Optional[str] = None,
    team: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort_by: str = Query("form"),
):
    if sort_by not in SORT_OPTIONS:
        raise HTTPException(status_code=400, detail=f"sort_by must be one of {', '.join(SORT_OPTIONS)}")
    players = await services_module.get_players(position, team, min_price, max_price, sort_by)
    return ok([PlayerSchema.from_player(p) for p in players])


@app.get("/api/players/{player_id}")
async def get_player(player_id: int):
    player = await services_module.get_player_by_id(player_id)
    if player is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return ok(PlayerSchema.from_player(player))


@app.get("/api/players/{player_id}/stats")
async def get_player_stats(player_id: int):
    stats = await services_module.get_player_stats(player_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Player stats not found")
    return ok(stats)


# ============ CLUBS & GAMEWEEKS ============

@app.get("/api/clubs")
async def list_clubs():
    return ok(await services_module.get_teams())


@app.get("/api/clubs/{club_id}")
async def get_club(club_id: int):
    club = await services_module.get_team_by_id(club_id)
    if club is None:
        raise HTTPException(status_code=404, detail="Club not found")
    return ok(club)


@app.get("/api/gameweek/current")
async def current_gameweek():
    return ok({"gameweek": await services_module.fetch_current_gameweek()})


@app.get("/api/fixtures")
async def list_fixtures():
    return ok(await services_module.get_fixtures())


@app.get("/api/gameweek/{gameweek}/live")
async def live_gameweek(gameweek: int = Path(..., ge=1, le=38)):
    return ok(await services_module.get_live_data(gameweek))


# ============ RECOMMENDATIONS ============

@app.post("/api/recommendations")
@app.post("/api/ai/recommendations")
async def get_recommendations(
    preferences: UserPreferences,
    recommender: Recommender = Depends(get_recommender),
):
    budget = preferences.budget or APP_CONFIG["rules"].default_budget
    return ok(await recommender.recommend(budget, preferences))


# ============ TEAMS ============

@app.get("/api/teams")
async def list_teams(repo: TeamRepository = Depends(get_repository)):
    return ok(await repo.list())


@app.post("/api/teams", status_code=201)
async def create_team(
    body: CreateTeamRequest,
    repo: TeamRepository = Depends(get_repository),
    recommender: Recommender = Depends(get_recommender),
):
    recommendation = await recommender.recommend(body.budget, body.preferences)
    total_value = calculate_team_value([p.to_player() for p in recommendation.players])

    team = FantasyTeam(
        id=generate_team_id(),
        name=body.name,
        budget=body.budget,
        players=recommendation.players,
        formation=recommendation.formation,
        captain=recommendation.captain,
        vice_captain=recommendation.vice_captain,
        bench=recommendation.bench,
        total_value=total_value,
        remaining_budget=body.budget - total_value,
        expected_points=recommendation.expected_points,
    )
    await repo.create(team)
    logger.info(f"Created team {team.id} ({team.name}) worth {team.total_value:.1f}")
    return ok(team)


@app.get("/api/teams/{team_id}")
async def get_team(team: FantasyTeam = Depends(require_team)):
    return ok(team)


@app.put("/api/teams/{team_id}")
async def update_team(
    team_id: str,
    body: UpdateTeamRequest,
    repo: TeamRepository = Depends(get_repository),
):
    changes = body.model_dump(exclude_unset=True)
    team = await repo.update(team_id, changes)
    if team is None:
        raise HTTPException(status_code=404, detail="Team not found")
    return ok(team)


@app.delete("/api/teams/{team_id}")
async def delete_team(team_id: str, repo: TeamRepository = Depends(get_repository)):
    if not await repo.delete(team_id):
        raise HTTPException(status_code=404, detail="Team not found")
    return {"success": True, "message": "Team deleted successfully"}


@app.get("/api/teams/{team_id}/validate")
async def validate_team(team: FantasyTeam = Depends(require_team)):
    return ok(asdict(validate_roster(team.to_roster())))


@app.get("/api/teams/{team_id}/stats")
async def get_team_stats(team: FantasyTeam = Depends(require_team)):
    stats = asdict(compute_roster_stats(team.to_roster()))
    stats["formation"] = team.formation
    stats["expected_points"] = team.expected_points
    return ok(stats)


@app.post("/api/teams/{team_id}/optimize")
async def optimize_team(
    body: OptimizeRequest,
    team: FantasyTeam = Depends(require_team),
    recommender: Recommender = Depends(get_recommender),
):
    """Re-run the recommender for this team's budget. The stored team is left untouched."""
    preferences = UserPreferences(
        budget=team.budget,
        preferred_formation=team.formation,
        risk_tolerance=body.risk_level,
        captain_strategy=resolve_captain_strategy(body.strategy),
    )
    recommendation = await recommender.recommend(team.budget, preferences)
    optimized = team.model_copy(update={
        "players": recommendation.players,
        "formation": recommendation.formation,
        "captain": recommendation.captain,
        "vice_captain": recommendation.vice_captain,
        "bench": recommendation.bench,
        "expected_points": recommendation.expected_points,
    })
    stats = compute_roster_stats(optimized.to_roster())
    optimized = optimized.model_copy(update={
        "total_value": stats.total_value,
        "remaining_budget": stats.remaining_budget,
    })
    return ok(optimized)


# ============ AD-HOC ROSTERS ============

@app.post("/api/rosters/validate")
async def validate_roster_endpoint(body: RosterRequest):
    return ok(asdict(validate_roster(body.to_roster())))


@app.post("/api/rosters/stats")
async def roster_stats_endpoint(body: RosterRequest):
    return ok(asdict(compute_roster_stats(body.to_roster())))


# ============ ANALYSIS ============

@app.post("/api/ai/analyze")
async def analyze_roster_endpoint(body: TeamAnalysisRequest):
    preferences = UserPreferences(
        captain_strategy=body.captain_strategy,
        risk_tolerance=body.risk_tolerance,
    )
    return ok(analyze_team(body.to_roster(), preferences))


@app.get("/api/teams/{team_id}/analysis")
async def analyze_stored_team(team: FantasyTeam = Depends(require_team)):
    return ok(analyze_team(team.to_roster()))


@app.post("/api/ai/formations")
async def formation_suggestions(body: FormationRequest):
    preferences = UserPreferences(
        captain_strategy=resolve_captain_strategy(body.strategy),
        risk_tolerance=body.risk_tolerance,
    )
    players = [p.to_player() for p in body.players]
    return ok(suggest_formations(players, body.budget, preferences))


@app.get("/api/ai/player/{player_id}/analysis")
async def player_analysis(player_id: int):
    pool = await services_module.get_all_players()
    player = next((p for p in pool if p.id == player_id), None)
    if player is None:
        raise HTTPException(status_code=404, detail="Player not found")
    return ok(analyze_player(player, pool))
