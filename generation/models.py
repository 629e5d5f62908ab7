# generation/models.py
"""
Core types for parlay generation.

Request side: Event, Rosters, StrategyConfig, VarietyFactors, GenerationRequest.
Context side: EventContext, AntiTemplateHints, GenerationContext.
Output side: Leg, GameSummary, GeneratedSet, BackendResponse.
Bookkeeping: HealthRecord, AttemptOutcome, GenerationMetadata, GenerationResult.

Output Invariants (checked by GeneratedSet.validate):
- every leg confidence in [1, 10]
- overall confidence in [1, 10]
- odds are signed American integers, e.g. "-110", "+140"
- exactly LEG_COUNT legs
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from generation.errors import MalformedOutput


# =============================================================================
# Constants
# =============================================================================

LEG_COUNT = 3
MIN_CONFIDENCE = 1
MAX_CONFIDENCE = 10
AUTO_BACKEND = "auto"

AMERICAN_ODDS_PATTERN = re.compile(r"^[+-][1-9]\d*$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class BetType(str, Enum):
    """Bet types a leg can carry."""
    SPREAD = "spread"
    TOTAL = "total"
    MONEYLINE = "moneyline"
    PLAYER_PROP = "player_prop"
    PLAYER_PASSING = "player_passing"
    PLAYER_RUSHING = "player_rushing"
    PLAYER_RECEIVING = "player_receiving"
    TEAM_TOTAL = "team_total"
    FIRST_TOUCHDOWN = "first_touchdown"
    DEFENSIVE_PROPS = "defensive_props"


class LegCategory(str, Enum):
    """Coarse grouping of bet types used for variety scoring."""
    TEAM = "team"
    PLAYER = "player"
    GAME = "game"
    SPECIAL = "special"


_TEAM_BET_TYPES = frozenset({BetType.SPREAD, BetType.MONEYLINE, BetType.TEAM_TOTAL})
_SPECIAL_BET_TYPES = frozenset({BetType.FIRST_TOUCHDOWN, BetType.DEFENSIVE_PROPS})


def category_for(bet_type: BetType) -> LegCategory:
    """Map a bet type onto its category."""
    if bet_type.value.startswith("player_"):
        return LegCategory.PLAYER
    if bet_type in _TEAM_BET_TYPES:
        return LegCategory.TEAM
    if bet_type in _SPECIAL_BET_TYPES:
        return LegCategory.SPECIAL
    return LegCategory.GAME


class GameFlow(str, Enum):
    """Expected shape of the game in the structured summary."""
    HIGH_SCORING_SHOOTOUT = "high_scoring_shootout"
    DEFENSIVE_GRIND = "defensive_grind"
    BALANCED_TEMPO = "balanced_tempo"
    POTENTIAL_BLOWOUT = "potential_blowout"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# Request Types
# =============================================================================


@dataclass(frozen=True)
class Team:
    """A team taking part in an event."""
    id: str
    display_name: str
    abbreviation: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Team":
        return cls(
            id=str(data.get("id", "")),
            display_name=data.get("displayName") or data.get("display_name") or "",
            abbreviation=data.get("abbreviation", ""),
        )


@dataclass(frozen=True)
class Player:
    """A rostered player."""
    id: str
    display_name: str
    position: str
    jersey: str = ""
    full_name: str = ""

    @property
    def name(self) -> str:
        return self.display_name or self.full_name or "Unknown"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Player":
        position = data.get("position", "")
        # Rosters arrive with either "QB" or {"abbreviation": "QB", ...}
        if isinstance(position, dict):
            position = position.get("abbreviation", "")
        return cls(
            id=str(data.get("id", "")),
            display_name=data.get("displayName") or data.get("display_name") or "",
            position=str(position or "").upper(),
            jersey=str(data.get("jersey") or ""),
            full_name=data.get("fullName") or data.get("full_name") or "",
        )


@dataclass(frozen=True)
class Event:
    """
    The sporting event a set is generated for.

    weather, venue_type and the rest-day fields are optional hints; the
    context builder falls back to heuristics when they are absent.
    """
    id: str
    week: int
    home_team: Team
    away_team: Team
    date: str = ""
    season_type: int = 2
    venue_type: Optional[str] = None  # "dome" | "outdoor"
    weather: Optional[str] = None  # "indoor" | "clear" | "rain" | "snow" | "wind"
    home_rest_days: Optional[int] = None
    away_rest_days: Optional[int] = None

    @property
    def matchup(self) -> str:
        return f"{self.away_team.display_name} @ {self.home_team.display_name}"


@dataclass(frozen=True)
class Rosters:
    home: Tuple[Player, ...]
    away: Tuple[Player, ...]

    def by_position(self, side: str, position: str) -> List[Player]:
        players = self.home if side == "home" else self.away
        return [p for p in players if p.position == position]


@dataclass(frozen=True)
class StrategyConfig:
    """How aggressive and where to look when building a set."""
    name: str
    description: str
    temperature: float
    risk_level: str  # conservative | moderate | aggressive
    focus_areas: Tuple[str, ...] = ()
    bet_type_weights: Dict[str, float] = field(default_factory=dict)
    context_factors: Tuple[str, ...] = ()
    confidence_range: Tuple[int, int] = (5, 9)
    preferred_game_scripts: Tuple[str, ...] = ()

    @classmethod
    def conservative(cls) -> "StrategyConfig":
        return cls(
            name="Conservative Strategy",
            description="Low-risk approach focusing on high-probability bets",
            temperature=0.3,
            risk_level="conservative",
            focus_areas=("balanced",),
            bet_type_weights={
                "spread": 0.3,
                "total": 0.3,
                "moneyline": 0.2,
                "player_passing": 0.1,
                "player_rushing": 0.1,
            },
            context_factors=("weather", "injuries", "home_field"),
            confidence_range=(6, 9),
            preferred_game_scripts=("close_game", "balanced_tempo"),
        )

    @classmethod
    def moderate(cls) -> "StrategyConfig":
        return cls(
            name="Moderate Strategy",
            description="Balanced approach with mix of risk levels",
            temperature=0.7,
            risk_level="moderate",
            focus_areas=("offense", "defense"),
            bet_type_weights={
                "spread": 0.25,
                "total": 0.25,
                "player_passing": 0.2,
                "player_rushing": 0.15,
                "player_receiving": 0.15,
            },
            context_factors=("weather", "injuries", "recent_form", "matchup"),
            confidence_range=(5, 8),
            preferred_game_scripts=("balanced_tempo", "close_game"),
        )

    @classmethod
    def aggressive(cls) -> "StrategyConfig":
        return cls(
            name="Aggressive Strategy",
            description="High-risk approach with exotic bets and player props",
            temperature=1.2,
            risk_level="aggressive",
            focus_areas=("offense",),
            bet_type_weights={
                "player_passing": 0.3,
                "player_rushing": 0.25,
                "player_receiving": 0.25,
                "first_touchdown": 0.1,
                "defensive_props": 0.1,
            },
            context_factors=("motivation", "rivalry", "pace", "efficiency"),
            confidence_range=(4, 7),
            preferred_game_scripts=("high_scoring", "fast_pace"),
        )

    @classmethod
    def preset(cls, risk_level: str) -> "StrategyConfig":
        presets = {
            "conservative": cls.conservative,
            "moderate": cls.moderate,
            "aggressive": cls.aggressive,
        }
        if risk_level not in presets:
            raise ValueError(f"Unknown strategy preset: {risk_level}")
        return presets[risk_level]()


@dataclass(frozen=True)
class VarietyFactors:
    """Per-request knobs that push generation away from repeated output."""
    strategy: str = "balanced"
    focus_area: str = "balanced"  # offense | defense | special_teams | balanced
    game_script: str = "close_game"  # high_scoring | defensive | blowout | close_game
    risk_tolerance: float = 0.5
    focus_player: Optional[Player] = None
    player_tier: Optional[str] = None
    market_bias: Optional[str] = None
    time_context: Optional[str] = None
    motivational_factors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class GenerationOptions:
    backend_choice: str = AUTO_BACKEND
    temperature: Optional[float] = None
    max_retries: Optional[int] = None


@dataclass(frozen=True)
class GenerationRequest:
    event: Optional[Event]
    rosters: Optional[Rosters]
    strategy: Optional[StrategyConfig]
    variety_factors: Optional[VarietyFactors]
    options: GenerationOptions = field(default_factory=GenerationOptions)


# =============================================================================
# Context Types
# =============================================================================


@dataclass(frozen=True)
class Weather:
    condition: str  # indoor | clear | rain | snow | wind
    temperature: Optional[int] = None
    wind_speed: Optional[int] = None


@dataclass(frozen=True)
class RestDays:
    home: int
    away: int


@dataclass(frozen=True)
class EventContext:
    """Heuristic flags derived from the event descriptor."""
    weather: Weather
    rest_days: RestDays
    is_rivalry: bool
    is_playoffs: bool
    is_primetime: bool
    injuries: Tuple[str, ...] = ()

    @property
    def has_weather_impact(self) -> bool:
        return self.weather.condition not in ("indoor", "clear")

    @property
    def has_unusual_rest(self) -> bool:
        return any(days < 6 or days > 10 for days in (self.rest_days.home, self.rest_days.away))


@dataclass(frozen=True)
class AntiTemplateHints:
    """Advisory instructions a backend feeds into its prompt."""
    avoid_generic_phrases: Tuple[str, ...]
    required_context_factors: Tuple[str, ...]
    emphasize_game_specifics: Tuple[str, ...]
    recent_bet_type_patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class GenerationContext:
    strategy: StrategyConfig
    variety_factors: VarietyFactors
    event_context: EventContext
    anti_template_hints: AntiTemplateHints
    temperature: float
    max_retries: Optional[int] = None


# =============================================================================
# Output Types
# =============================================================================


@dataclass(frozen=True)
class Leg:
    """One atomic prediction within a generated set."""
    id: str
    bet_type: BetType
    selection: str
    target: str
    reasoning: str
    confidence: int
    odds: str

    @property
    def category(self) -> LegCategory:
        return category_for(self.bet_type)

    @property
    def is_player_prop(self) -> bool:
        return self.category == LegCategory.PLAYER

    @property
    def confidence_level(self) -> RiskLevel:
        if self.confidence <= 4:
            return RiskLevel.LOW
        if self.confidence <= 7:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    def problems(self) -> List[str]:
        """List invariant violations for this leg (empty when valid)."""
        found = []
        if not self.id:
            found.append("leg id is empty")
        if not isinstance(self.bet_type, BetType):
            found.append(f"leg {self.id}: unknown bet type {self.bet_type!r}")
        if not self.selection:
            found.append(f"leg {self.id}: selection is empty")
        if (
            isinstance(self.confidence, bool)
            or not isinstance(self.confidence, int)
            or not MIN_CONFIDENCE <= self.confidence <= MAX_CONFIDENCE
        ):
            found.append(f"leg {self.id}: confidence {self.confidence!r} outside 1-10")
        if not isinstance(self.odds, str) or not AMERICAN_ODDS_PATTERN.match(self.odds):
            found.append(f"leg {self.id}: odds {self.odds!r} are not American format")
        return found

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "betType": self.bet_type.value,
            "selection": self.selection,
            "target": self.target,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "odds": self.odds,
        }


@dataclass(frozen=True)
class GameSummary:
    matchup_analysis: str
    game_flow: GameFlow
    key_factors: Tuple[str, ...]
    prediction: str
    confidence: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matchupAnalysis": self.matchup_analysis,
            "gameFlow": self.game_flow.value,
            "keyFactors": list(self.key_factors),
            "prediction": self.prediction,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class GeneratedSet:
    """An ordered set of legs plus overall reasoning for one event."""
    id: str
    legs: Tuple[Leg, ...]
    event_context: str
    reasoning: str
    overall_confidence: int
    combined_odds: str
    summary: Optional[GameSummary] = None
    created_at: datetime = field(default_factory=utc_now)

    def problems(self) -> List[str]:
        found = []
        if len(self.legs) != LEG_COUNT:
            found.append(f"expected exactly {LEG_COUNT} legs, got {len(self.legs)}")
        for leg in self.legs:
            found.extend(leg.problems())
        if (
            isinstance(self.overall_confidence, bool)
            or not isinstance(self.overall_confidence, int)
            or not MIN_CONFIDENCE <= self.overall_confidence <= MAX_CONFIDENCE
        ):
            found.append(f"overall confidence {self.overall_confidence!r} outside 1-10")
        if not isinstance(self.combined_odds, str) or not AMERICAN_ODDS_PATTERN.match(
            self.combined_odds
        ):
            found.append(f"combined odds {self.combined_odds!r} are not American format")
        return found

    def validate(self) -> None:
        """Raise MalformedOutput when any invariant is violated."""
        found = self.problems()
        if found:
            raise MalformedOutput(
                f"Generated set {self.id} failed validation: {'; '.join(found)}",
                details={"problems": found},
            )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "legs": [leg.to_dict() for leg in self.legs],
            "gameContext": self.event_context,
            "aiReasoning": self.reasoning,
            "overallConfidence": self.overall_confidence,
            "estimatedOdds": self.combined_odds,
            "createdAt": self.created_at.isoformat(),
        }
        if self.summary is not None:
            result["gameSummary"] = self.summary.to_dict()
        return result


@dataclass(frozen=True)
class BackendResponse:
    """A generated set plus the call metadata a backend reports."""
    generated_set: GeneratedSet
    model: str
    latency_ms: float
    tokens: Optional[int] = None


@dataclass(frozen=True)
class ModelInfo:
    name: str
    version: str
    capabilities: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "capabilities": list(self.capabilities),
        }


# =============================================================================
# Health / Attempt Bookkeeping
# =============================================================================


@dataclass(frozen=True)
class HealthRecord:
    name: str
    healthy: bool = True
    latency_ms: Optional[float] = None
    last_error: Optional[str] = None
    last_checked: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "latency": self.latency_ms,
            "lastError": self.last_error,
            "lastChecked": self.last_checked.isoformat(),
        }


@dataclass(frozen=True)
class AttemptOutcome:
    backend_name: str
    succeeded: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class GenerationMetadata:
    backend_name: str
    model: str
    latency_ms: float
    confidence: int
    attempt_count: int
    fallback_used: bool
    tokens: Optional[int] = None
    variety_score: Optional[float] = None
    template_risk: Optional[RiskLevel] = None
    # A set with a conflicting pair is flagged invalid for combination
    has_conflicts: bool = False
    classification: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backendName": self.backend_name,
            "model": self.model,
            "tokens": self.tokens,
            "latency": self.latency_ms,
            "confidence": self.confidence,
            "fallbackUsed": self.fallback_used,
            "attemptCount": self.attempt_count,
            "varietyScore": self.variety_score,
            "templateRisk": self.template_risk.value if self.template_risk else None,
            "hasConflicts": self.has_conflicts,
            "classification": self.classification,
        }


@dataclass(frozen=True)
class GenerationResult:
    generated_set: GeneratedSet
    metadata: GenerationMetadata
