# app/schemas/parlay.py
"""
Pydantic schemas for the parlay generation API.

Wire format is camelCase; schemas convert into the generation core's
dataclasses. Missing event or rosters are left to the core's request check
so they surface with their specific error codes.
"""
from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from generation.models import (
    AUTO_BACKEND,
    Event,
    GenerationOptions,
    GenerationRequest,
    Player,
    Rosters,
    StrategyConfig,
    Team,
    VarietyFactors,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Request Schemas
# =============================================================================


class TeamSchema(CamelModel):
    id: str
    display_name: str = Field(min_length=1)
    abbreviation: str = ""

    def to_team(self) -> Team:
        return Team(id=self.id, display_name=self.display_name, abbreviation=self.abbreviation)


class PositionSchema(CamelModel):
    abbreviation: str


class PlayerSchema(CamelModel):
    id: str
    display_name: Optional[str] = None
    full_name: Optional[str] = None
    position: Union[str, PositionSchema] = ""
    jersey: Optional[str] = None

    def to_player(self) -> Player:
        position = self.position
        if isinstance(position, PositionSchema):
            position = position.abbreviation
        return Player(
            id=self.id,
            display_name=self.display_name or "",
            position=position.upper(),
            jersey=self.jersey or "",
            full_name=self.full_name or "",
        )


class EventSchema(CamelModel):
    """The game a parlay is generated for."""
    id: str
    week: int = Field(ge=1, le=25)
    home_team: TeamSchema
    away_team: TeamSchema
    date: str = ""
    season_type: int = 2
    venue_type: Optional[str] = None
    weather: Optional[str] = None
    home_rest_days: Optional[int] = Field(default=None, ge=0)
    away_rest_days: Optional[int] = Field(default=None, ge=0)

    def to_event(self) -> Event:
        return Event(
            id=self.id,
            week=self.week,
            home_team=self.home_team.to_team(),
            away_team=self.away_team.to_team(),
            date=self.date,
            season_type=self.season_type,
            venue_type=self.venue_type,
            weather=self.weather,
            home_rest_days=self.home_rest_days,
            away_rest_days=self.away_rest_days,
        )


class RostersSchema(CamelModel):
    home_roster: List[PlayerSchema] = Field(default_factory=list)
    away_roster: List[PlayerSchema] = Field(default_factory=list)

    def to_rosters(self) -> Rosters:
        return Rosters(
            home=tuple(p.to_player() for p in self.home_roster),
            away=tuple(p.to_player() for p in self.away_roster),
        )


class StrategySchema(CamelModel):
    """
    Strategy settings. Omitted fields come from the preset named by
    risk_level.
    """
    risk_level: Literal["conservative", "moderate", "aggressive"] = "moderate"
    name: Optional[str] = None
    description: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    focus_areas: Optional[List[str]] = None
    bet_type_weights: Optional[Dict[str, float]] = None
    context_factors: Optional[List[str]] = None
    confidence_range: Optional[Tuple[int, int]] = None
    preferred_game_scripts: Optional[List[str]] = None

    def to_config(self) -> StrategyConfig:
        overrides: Dict[str, Any] = {}
        for key, value in self.model_dump(exclude={"risk_level"}, exclude_none=True).items():
            overrides[key] = tuple(value) if isinstance(value, list) else value
        return dataclasses.replace(StrategyConfig.preset(self.risk_level), **overrides)


class VarietyFactorsSchema(CamelModel):
    strategy: str = "balanced"
    focus_area: str = "balanced"
    game_script: str = "close_game"
    risk_tolerance: float = Field(default=0.5, ge=0.0, le=1.0)
    focus_player: Optional[PlayerSchema] = None
    player_tier: Optional[str] = None
    market_bias: Optional[str] = None
    time_context: Optional[str] = None
    motivational_factors: List[str] = Field(default_factory=list)

    def to_factors(self) -> VarietyFactors:
        return VarietyFactors(
            strategy=self.strategy,
            focus_area=self.focus_area,
            game_script=self.game_script,
            risk_tolerance=self.risk_tolerance,
            focus_player=self.focus_player.to_player() if self.focus_player else None,
            player_tier=self.player_tier,
            market_bias=self.market_bias,
            time_context=self.time_context,
            motivational_factors=tuple(self.motivational_factors),
        )


class GenerationOptionsSchema(CamelModel):
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    backend_choice: str = Field(
        default=AUTO_BACKEND,
        validation_alias=AliasChoices("backendChoice", "backend_choice", "provider"),
    )
    max_retries: Optional[int] = Field(default=None, ge=1, le=5)


class GenerateParlayRequestSchema(CamelModel):
    """
    Request body for POST /generateParlay.

    {
      "event": { ... },            (also accepted as "game")
      "rosters": {"homeRoster": [...], "awayRoster": [...]},
      "strategy": { ... optional ... },
      "varietyFactors": { ... optional ... },
      "options": {"temperature": 0.7, "backendChoice": "auto", "maxRetries": 3}
    }
    """
    event: Optional[EventSchema] = Field(
        default=None, validation_alias=AliasChoices("event", "game")
    )
    rosters: Optional[RostersSchema] = None
    strategy: Optional[StrategySchema] = None
    variety_factors: Optional[VarietyFactorsSchema] = None
    options: GenerationOptionsSchema = Field(default_factory=GenerationOptionsSchema)

    def to_request(self) -> GenerationRequest:
        strategy = self.strategy.to_config() if self.strategy else StrategyConfig.moderate()
        factors = self.variety_factors.to_factors() if self.variety_factors else VarietyFactors()
        return GenerationRequest(
            event=self.event.to_event() if self.event else None,
            rosters=self.rosters.to_rosters() if self.rosters else None,
            strategy=strategy,
            variety_factors=factors,
            options=GenerationOptions(
                backend_choice=self.options.backend_choice or AUTO_BACKEND,
                temperature=self.options.temperature,
                max_retries=self.options.max_retries,
            ),
        )


# =============================================================================
# Response Schemas
# =============================================================================


class ErrorBodySchema(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponseSchema(BaseModel):
    success: bool = False
    error: ErrorBodySchema


class RateLimitInfoSchema(CamelModel):
    remaining: int
    total: int
    reset_time: str
    current_count: int


class GenerateParlayResponseSchema(CamelModel):
    success: bool = True
    data: Dict[str, Any]
    metadata: Dict[str, Any]
    rate_limit_info: RateLimitInfoSchema


class RateLimitStatusResponseSchema(BaseModel):
    success: bool = True
    data: RateLimitInfoSchema
