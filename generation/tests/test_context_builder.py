# generation/tests/test_context_builder.py
"""Tests for event analysis and anti-template hints."""
import pytest

from builders import build_event, build_request, build_rosters
from generation.context_builder import (
    AVOID_GENERIC_PHRASES,
    FACTOR_PRIMETIME,
    FACTOR_REST,
    FACTOR_RIVALRY,
    FACTOR_WEATHER,
    analyze_event,
    build_context,
    calculate_rest_days,
    detect_rivalry,
    game_specific_factors,
    infer_weather,
    is_playoff_game,
    is_primetime_game,
    key_player_factors,
    required_context_factors,
    resolve_temperature,
)
from generation.models import (
    EventContext,
    GenerationOptions,
    Player,
    RestDays,
    Rosters,
    StrategyConfig,
    Team,
    Weather,
)


def flags(**overrides) -> EventContext:
    fields = dict(
        weather=Weather(condition="clear"),
        rest_days=RestDays(home=7, away=7),
        is_rivalry=False,
        is_playoffs=False,
        is_primetime=False,
    )
    fields.update(overrides)
    return EventContext(**fields)


class TestEventFlags:

    def test_weather_defaults_to_clear(self):
        assert infer_weather(build_event()).condition == "clear"

    def test_weather_from_event(self):
        assert infer_weather(build_event(weather="Snow")).condition == "snow"

    def test_dome_is_indoor(self):
        assert infer_weather(build_event(venue_type="dome")).condition == "indoor"

    def test_rest_days_default_and_override(self):
        assert calculate_rest_days(build_event()) == RestDays(home=7, away=7)
        assert calculate_rest_days(build_event(away_rest_days=4)) == RestDays(home=7, away=4)

    def test_rivalry_detection_either_side(self):
        assert detect_rivalry(build_event()) is False
        raiders = Team(id="13", display_name="Las Vegas Raiders")
        assert detect_rivalry(build_event(away_team=raiders)) is True
        assert detect_rivalry(
            build_event(
                home_team=raiders,
                away_team=Team(id="12", display_name="Kansas City Chiefs"),
            )
        ) is True

    def test_playoffs(self):
        assert is_playoff_game(build_event()) is False
        assert is_playoff_game(build_event(season_type=3, week=1)) is True
        assert is_playoff_game(build_event(week=18)) is True

    @pytest.mark.parametrize(
        "date,expected",
        [
            ("2024-10-20T17:00:00Z", False),  # Sunday 1:00pm EDT
            ("2024-10-20T20:25:00Z", False),  # Sunday 4:25pm EDT
            ("2024-10-21T00:20:00Z", True),   # Sunday 8:20pm EDT
            ("2024-10-22T00:15:00Z", True),   # Monday 8:15pm EDT
            ("2024-10-25T00:15:00Z", True),   # Thursday 8:15pm EDT
            ("2024-12-09T01:20Z", True),      # Sunday 8:20pm EST
            ("2024-12-08T21:25Z", False),     # Sunday 4:25pm EST
            ("2024-10-20T17:00:00", False),   # no offset, read as UTC
            ("2024-10-20T20:20:00-04:00", True),
        ],
    )
    def test_primetime_from_kickoff(self, date, expected):
        assert is_primetime_game(build_event(date=date)) is expected

    def test_primetime_without_kickoff_uses_week(self):
        assert is_primetime_game(build_event(date="", week=9)) is True
        assert is_primetime_game(build_event(date="2024-10-20", week=7)) is False

    def test_analyze_event(self):
        context = analyze_event(build_event(weather="rain", home_rest_days=12))
        assert context.has_weather_impact is True
        assert context.has_unusual_rest is True
        assert context.is_rivalry is False


class TestHints:

    def test_no_required_factors_for_plain_game(self):
        assert required_context_factors(flags()) == []

    def test_required_factors_follow_flags(self):
        context = flags(
            weather=Weather(condition="wind"),
            rest_days=RestDays(home=5, away=7),
            is_rivalry=True,
            is_primetime=True,
        )
        assert required_context_factors(context) == [
            FACTOR_WEATHER,
            FACTOR_RIVALRY,
            FACTOR_REST,
            FACTOR_PRIMETIME,
        ]

    def test_indoor_weather_has_no_impact(self):
        assert required_context_factors(flags(weather=Weather(condition="indoor"))) == []

    def test_key_player_factors(self):
        rosters = Rosters(
            home=(
                Player(id="1", display_name="QB One", position="QB"),
                Player(id="2", display_name="QB Two", position="QB"),
                Player(id="3", display_name="RB One", position="RB"),
                Player(id="4", display_name="RB Two", position="RB"),
            ),
            away=(Player(id="5", display_name="RB Three", position="RB"),),
        )
        assert key_player_factors(rosters) == [
            "QB situation for home team: multiple QBs available",
            "Away team has limited RB depth",
        ]

    def test_game_specifics_include_matchup_and_season_phase(self):
        factors = game_specific_factors(
            build_event(week=2), build_rosters(), flags(is_playoffs=True)
        )
        assert "Playoff implications affecting team motivation" in factors
        assert "Early season game with teams still establishing identity" in factors
        assert factors[-1] == "Matchup: Denver Broncos @ Kansas City Chiefs"

    def test_rest_factor_wording(self):
        factors = game_specific_factors(
            build_event(), build_rosters(), flags(rest_days=RestDays(home=4, away=13))
        )
        assert "Home team on short rest: 4 days between games" in factors
        assert "Away team on extended rest: 13 days since last game" in factors


class TestBuildContext:

    def test_temperature_scaled_from_strategy(self):
        assert resolve_temperature(StrategyConfig.moderate(), None) == pytest.approx(0.56)
        assert resolve_temperature(StrategyConfig.aggressive(), None) == pytest.approx(0.96)

    def test_temperature_override_wins(self):
        assert resolve_temperature(StrategyConfig.moderate(), 0.2) == 0.2

    def test_build_context(self):
        request = build_request(
            options=GenerationOptions(temperature=0.4, max_retries=2),
        )
        context = build_context(request)

        assert context.strategy is request.strategy
        assert context.temperature == 0.4
        assert context.max_retries == 2
        assert context.anti_template_hints.avoid_generic_phrases == AVOID_GENERIC_PHRASES
        assert context.event_context.weather.condition == "clear"
