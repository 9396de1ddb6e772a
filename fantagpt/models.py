from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from enum import Enum
from pydantic import BaseModel, Field, field_validator


# ============ ENUMS ============

class Position(str, Enum):
    GK = "GK"
    DEF = "DEF"
    MID = "MID"
    FWD = "FWD"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CaptainStrategy(str, Enum):
    FORM = "form"
    FIXTURE = "fixture"
    DIFFERENTIAL = "differential"


class ChipStrategy(str, Enum):
    EARLY = "early"
    LATE = "late"
    BALANCED = "balanced"


# =============================================================================
# DOMAIN DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class Player:
    """A player as supplied by the data source. Never mutated by the core."""
    id: int
    name: str
    club: str
    position: Position
    price: float
    form: float = 0.0
    total_points: int = 0
    selected_by_percent: float = 0.0
    status: str = "a"


@dataclass
class Roster:
    """
    A squad under consideration.

    players may hold any number of entries; the validator reports the size.
    captain and vice_captain must be Player values (None is a caller bug,
    not a violation).
    """
    players: List[Player]
    budget: float
    captain: Player
    vice_captain: Player
    formation: str = ""


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class RosterStats:
    """Snapshot of derived roster figures. remaining_budget may be negative."""
    total_value: float
    remaining_budget: float
    position_breakdown: Dict[str, int]
    club_breakdown: Dict[str, int]
    average_form: float
    total_points: int


# ============ REQUEST / RESPONSE SCHEMAS ============
# These provide contract stability between frontend and backend

class PlayerSchema(BaseModel):
    """Schema for a player in any team or roster payload."""
    id: int
    name: str
    club: str
    position: Position
    price: float = Field(ge=0)
    form: float = Field(default=0.0, ge=0)
    total_points: int = Field(default=0, ge=0)
    selected_by_percent: float = 0.0
    status: str = "a"

    def to_player(self) -> Player:
        return Player(**self.model_dump())

    @classmethod
    def from_player(cls, player: Player) -> "PlayerSchema":
        return cls(
            id=player.id,
            name=player.name,
            club=player.club,
            position=player.position,
            price=player.price,
            form=player.form,
            total_points=player.total_points,
            selected_by_percent=player.selected_by_percent,
            status=player.status,
        )


class UserPreferences(BaseModel):
    budget: Optional[float] = None  # Falls back to the team budget
    preferred_formation: Optional[str] = None
    risk_tolerance: RiskLevel = RiskLevel.MEDIUM
    preferred_teams: List[str] = []
    avoid_teams: List[str] = []
    captain_strategy: CaptainStrategy = CaptainStrategy.FORM
    chip_strategy: ChipStrategy = ChipStrategy.BALANCED


class Recommendation(BaseModel):
    """Output of a recommender: a full squad plus its starting shape."""
    players: List[PlayerSchema]
    formation: str
    captain: PlayerSchema
    vice_captain: PlayerSchema
    bench: List[PlayerSchema] = []
    reasoning: str = ""
    expected_points: float = 0.0
    risk_level: RiskLevel = RiskLevel.MEDIUM
    strategy: str = ""


class RosterRequest(BaseModel):
    """Ad-hoc roster sent for validation or statistics."""
    players: List[PlayerSchema]
    budget: float = Field(gt=0)
    captain: PlayerSchema
    vice_captain: PlayerSchema
    formation: str = ""

    def to_roster(self) -> Roster:
        return Roster(
            players=[p.to_player() for p in self.players],
            budget=self.budget,
            captain=self.captain.to_player(),
            vice_captain=self.vice_captain.to_player(),
            formation=self.formation,
        )


class TeamAnalysisRequest(RosterRequest):
    """Roster to analyze plus the lens to analyze it through."""
    captain_strategy: CaptainStrategy = CaptainStrategy.FORM
    risk_tolerance: RiskLevel = RiskLevel.MEDIUM


class FormationRequest(BaseModel):
    players: List[PlayerSchema] = Field(min_length=1)
    budget: Optional[float] = Field(default=None, gt=0)
    strategy: Optional[str] = None  # captain strategy name; unknown values mean "form"
    risk_tolerance: RiskLevel = RiskLevel.MEDIUM


class FantasyTeam(BaseModel):
    """A stored fantasy team."""
    id: str
    name: str
    budget: float
    players: List[PlayerSchema]
    formation: str
    captain: PlayerSchema
    vice_captain: PlayerSchema
    bench: List[PlayerSchema] = []
    total_value: float = 0.0
    remaining_budget: float = 0.0
    expected_points: float = 0.0

    def to_roster(self) -> Roster:
        return Roster(
            players=[p.to_player() for p in self.players],
            budget=self.budget,
            captain=self.captain.to_player(),
            vice_captain=self.vice_captain.to_player(),
            formation=self.formation,
        )


class CreateTeamRequest(BaseModel):
    name: str = Field(min_length=1)
    budget: float = Field(default=100.0, gt=0)
    preferences: UserPreferences = UserPreferences()


class UpdateTeamRequest(BaseModel):
    """Partial update. Fields may be left out but not sent as null."""
    name: Optional[str] = Field(default=None, min_length=1)
    budget: Optional[float] = Field(default=None, gt=0)
    players: Optional[List[PlayerSchema]] = None
    formation: Optional[str] = None
    captain: Optional[PlayerSchema] = None
    vice_captain: Optional[PlayerSchema] = None
    bench: Optional[List[PlayerSchema]] = None

    @field_validator("*", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class OptimizeRequest(BaseModel):
    strategy: Optional[str] = None
    risk_level: RiskLevel = RiskLevel.MEDIUM


class ApiError(BaseModel):
    message: str
    code: Optional[str] = None


class ApiResponse(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[ApiError] = None
