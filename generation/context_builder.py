# generation/context_builder.py
"""
Context Builder - turns a request into a GenerationContext.

Pure functions, no I/O. Event flags come from lightweight rules rather than
live feeds: weather defaults to clear skies unless the event says otherwise,
rest days default to a normal week, rivalry detection uses a static pair
list, and primetime is read off the kickoff time when one is available.

Anti-template hints are advisory text for the backend's prompt step. Nothing
here checks whether a backend follows them.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from generation.models import (
    AntiTemplateHints,
    Event,
    EventContext,
    GenerationContext,
    GenerationRequest,
    RestDays,
    Rosters,
    StrategyConfig,
    Weather,
)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_REST_DAYS = 7
SHORT_REST_DAYS = 6
EXTENDED_REST_DAYS = 10
STRATEGY_TEMPERATURE_FACTOR = 0.8
PLAYOFF_SEASON_TYPE = 3
PLAYOFF_WEEK = 18
EARLY_SEASON_LAST_WEEK = 4
LATE_SEASON_FIRST_WEEK = 15
PRIMETIME_KICKOFF_HOUR = 20
PRIMETIME_WEEKDAYS = (0, 3)  # Monday, Thursday
# Kickoff times arrive in UTC; the broadcast schedule is Eastern
BROADCAST_TZ = ZoneInfo("America/New_York")

DEFAULT_WEATHER = Weather(condition="clear", temperature=65, wind_speed=5)
INDOOR_WEATHER = Weather(condition="indoor")

RIVALRY_PAIRS: Tuple[Tuple[str, str], ...] = (
    ("patriots", "jets"),
    ("cowboys", "eagles"),
    ("packers", "bears"),
    ("steelers", "ravens"),
    ("chiefs", "raiders"),
    ("49ers", "seahawks"),
    ("giants", "eagles"),
    ("bills", "dolphins"),
)

AVOID_GENERIC_PHRASES: Tuple[str, ...] = (
    "home team advantage",
    "recent form suggests",
    "both teams have",
    "expect a competitive game",
    "value in this bet",
)

# Required factor names
FACTOR_WEATHER = "weather_impact_on_game_plan"
FACTOR_RIVALRY = "divisional_rivalry_dynamics"
FACTOR_REST = "rest_advantage_analysis"
FACTOR_PRIMETIME = "prime_time_performance_factors"


# =============================================================================
# Event Flags
# =============================================================================


def infer_weather(event: Event) -> Weather:
    if event.weather:
        condition = event.weather.lower()
        if condition == "indoor":
            return INDOOR_WEATHER
        return Weather(condition=condition)
    if (event.venue_type or "").lower() == "dome":
        return INDOOR_WEATHER
    return DEFAULT_WEATHER


def calculate_rest_days(event: Event) -> RestDays:
    return RestDays(
        home=event.home_rest_days if event.home_rest_days is not None else DEFAULT_REST_DAYS,
        away=event.away_rest_days if event.away_rest_days is not None else DEFAULT_REST_DAYS,
    )


def detect_rivalry(event: Event) -> bool:
    home = event.home_team.display_name.lower()
    away = event.away_team.display_name.lower()
    return any(
        (first in home and second in away) or (second in home and first in away)
        for first, second in RIVALRY_PAIRS
    )


def is_playoff_game(event: Event) -> bool:
    return event.season_type == PLAYOFF_SEASON_TYPE or event.week >= PLAYOFF_WEEK


def _parse_kickoff(date: str) -> Optional[datetime]:
    """Parse an ISO kickoff into Eastern time; None when there is no time part."""
    if not date or "T" not in date:
        return None
    try:
        kickoff = datetime.fromisoformat(date.replace("Z", "+00:00"))
    except ValueError:
        return None
    if kickoff.tzinfo is None:
        kickoff = kickoff.replace(tzinfo=timezone.utc)
    return kickoff.astimezone(BROADCAST_TZ)


def is_primetime_game(event: Event) -> bool:
    kickoff = _parse_kickoff(event.date)
    if kickoff is None:
        # No kickoff time to go on; some weeks carry more national games
        return event.week % 3 == 0
    return kickoff.hour >= PRIMETIME_KICKOFF_HOUR or kickoff.weekday() in PRIMETIME_WEEKDAYS


def analyze_event(event: Event) -> EventContext:
    return EventContext(
        weather=infer_weather(event),
        rest_days=calculate_rest_days(event),
        is_rivalry=detect_rivalry(event),
        is_playoffs=is_playoff_game(event),
        is_primetime=is_primetime_game(event),
    )


# =============================================================================
# Anti-Template Hints
# =============================================================================


def required_context_factors(event_context: EventContext) -> List[str]:
    """Factors the backend must address, one per active flag."""
    required = []
    if event_context.has_weather_impact:
        required.append(FACTOR_WEATHER)
    if event_context.is_rivalry:
        required.append(FACTOR_RIVALRY)
    if event_context.has_unusual_rest:
        required.append(FACTOR_REST)
    if event_context.is_primetime:
        required.append(FACTOR_PRIMETIME)
    return required


def _rest_factors(rest_days: RestDays) -> List[str]:
    factors = []
    for side, days in (("Home", rest_days.home), ("Away", rest_days.away)):
        if days < SHORT_REST_DAYS:
            factors.append(f"{side} team on short rest: {days} days between games")
        elif days > EXTENDED_REST_DAYS:
            factors.append(f"{side} team on extended rest: {days} days since last game")
    return factors


def key_player_factors(rosters: Rosters) -> List[str]:
    """Roster-composition notes: QB controversies and thin RB rooms."""
    factors = []
    for side in ("home", "away"):
        if len(rosters.by_position(side, "QB")) > 1:
            factors.append(f"QB situation for {side} team: multiple QBs available")
    for side in ("home", "away"):
        if len(rosters.by_position(side, "RB")) < 2:
            factors.append(f"{side.capitalize()} team has limited RB depth")
    return factors


def matchup_factors(event: Event) -> List[str]:
    factors = []
    if event.week <= EARLY_SEASON_LAST_WEEK:
        factors.append("Early season game with teams still establishing identity")
    elif event.week >= LATE_SEASON_FIRST_WEEK:
        factors.append("Late season game with playoff implications")
    factors.append(f"Matchup: {event.matchup}")
    return factors


def game_specific_factors(
    event: Event, rosters: Rosters, event_context: EventContext
) -> List[str]:
    factors = []
    if event_context.has_weather_impact:
        factors.append(f"Weather impact: {event_context.weather.condition} conditions expected")
    factors.extend(_rest_factors(event_context.rest_days))
    if event_context.is_rivalry:
        factors.append("Divisional rivalry game with historical significance")
    if event_context.is_primetime:
        factors.append("Prime time game with national audience")
    if event_context.is_playoffs:
        factors.append("Playoff implications affecting team motivation")
    factors.extend(key_player_factors(rosters))
    factors.extend(matchup_factors(event))
    return factors


def build_anti_template_hints(
    event: Event, rosters: Rosters, event_context: EventContext
) -> AntiTemplateHints:
    return AntiTemplateHints(
        avoid_generic_phrases=AVOID_GENERIC_PHRASES,
        required_context_factors=tuple(required_context_factors(event_context)),
        emphasize_game_specifics=tuple(game_specific_factors(event, rosters, event_context)),
    )


# =============================================================================
# Entry Point
# =============================================================================


def resolve_temperature(strategy: StrategyConfig, override: Optional[float]) -> float:
    if override is not None:
        return override
    return round(strategy.temperature * STRATEGY_TEMPERATURE_FACTOR, 4)


def build_context(request: GenerationRequest) -> GenerationContext:
    """
    Build the generation context for a request.

    Expects event, rosters, strategy and variety factors to be present;
    callers validate requests before getting here.
    """
    event_context = analyze_event(request.event)
    return GenerationContext(
        strategy=request.strategy,
        variety_factors=request.variety_factors,
        event_context=event_context,
        anti_template_hints=build_anti_template_hints(
            request.event, request.rosters, event_context
        ),
        temperature=resolve_temperature(request.strategy, request.options.temperature),
        max_retries=request.options.max_retries,
    )
