# generation/tests/test_models.py
"""Tests for core model invariants and serialization."""
import pytest

from builders import build_leg, build_set
from generation.errors import MalformedOutput
from generation.models import (
    BetType,
    EventContext,
    GenerationMetadata,
    LegCategory,
    Player,
    RestDays,
    RiskLevel,
    StrategyConfig,
    Team,
    Weather,
    category_for,
)


class TestCategories:

    @pytest.mark.parametrize(
        "bet_type,category",
        [
            (BetType.SPREAD, LegCategory.TEAM),
            (BetType.MONEYLINE, LegCategory.TEAM),
            (BetType.TEAM_TOTAL, LegCategory.TEAM),
            (BetType.TOTAL, LegCategory.GAME),
            (BetType.PLAYER_PROP, LegCategory.PLAYER),
            (BetType.PLAYER_RUSHING, LegCategory.PLAYER),
            (BetType.FIRST_TOUCHDOWN, LegCategory.SPECIAL),
            (BetType.DEFENSIVE_PROPS, LegCategory.SPECIAL),
        ],
    )
    def test_category_for(self, bet_type, category):
        assert category_for(bet_type) == category

    def test_leg_properties(self):
        leg = build_leg(BetType.PLAYER_PASSING, confidence=8)
        assert leg.is_player_prop is True
        assert leg.confidence_level == RiskLevel.HIGH
        assert build_leg(confidence=4).confidence_level == RiskLevel.LOW


class TestLegValidation:

    def test_valid_leg(self):
        assert build_leg().problems() == []

    @pytest.mark.parametrize("confidence", [0, 11, True, 7.5])
    def test_confidence_out_of_contract(self, confidence):
        problems = build_leg(confidence=confidence).problems()
        assert len(problems) == 1
        assert "confidence" in problems[0]

    @pytest.mark.parametrize("odds", ["110", "-1.5", "EVEN", "", "+0", "-007"])
    def test_odds_out_of_contract(self, odds):
        problems = build_leg(odds=odds).problems()
        assert problems == [f"leg leg-1: odds {odds!r} are not American format"]

    def test_empty_selection(self):
        assert build_leg(selection="").problems() == ["leg leg-1: selection is empty"]


class TestGeneratedSet:

    def test_valid_set(self):
        build_set().validate()

    def test_wrong_leg_count(self):
        generated = build_set(legs=[build_leg()])
        with pytest.raises(MalformedOutput) as exc_info:
            generated.validate()
        assert exc_info.value.code == "PARSE_ERROR"
        assert "expected exactly 3 legs, got 1" in exc_info.value.details["problems"]

    def test_collects_every_problem(self):
        generated = build_set(overall_confidence=0, combined_odds="6.29")
        problems = generated.problems()
        assert len(problems) == 2

    def test_to_dict_uses_wire_names(self):
        as_dict = build_set().to_dict()

        assert set(as_dict) == {
            "id",
            "legs",
            "gameContext",
            "aiReasoning",
            "overallConfidence",
            "estimatedOdds",
            "createdAt",
        }
        assert as_dict["legs"][0]["betType"] == "spread"
        assert as_dict["estimatedOdds"] == "+629"


class TestRequestTypes:

    def test_player_from_dict_with_position_object(self):
        player = Player.from_dict(
            {"id": 15, "displayName": "Patrick Mahomes", "position": {"abbreviation": "qb"}}
        )
        assert player.id == "15"
        assert player.position == "QB"
        assert player.name == "Patrick Mahomes"

    def test_player_name_falls_back(self):
        assert Player.from_dict({"fullName": "Kareem Hunt", "position": "RB"}).name == "Kareem Hunt"
        assert Player(id="1", display_name="", position="RB").name == "Unknown"

    def test_team_from_dict(self):
        team = Team.from_dict({"id": 12, "displayName": "Kansas City Chiefs", "abbreviation": "KC"})
        assert team == Team(id="12", display_name="Kansas City Chiefs", abbreviation="KC")

    @pytest.mark.parametrize("level", ["conservative", "moderate", "aggressive"])
    def test_strategy_presets(self, level):
        strategy = StrategyConfig.preset(level)
        assert strategy.risk_level == level
        low, high = strategy.confidence_range
        assert 1 <= low <= high <= 10

    def test_unknown_strategy_preset(self):
        with pytest.raises(ValueError):
            StrategyConfig.preset("reckless")


class TestEventContext:

    def _context(self, condition="clear", home=7, away=7):
        return EventContext(
            weather=Weather(condition=condition),
            rest_days=RestDays(home=home, away=away),
            is_rivalry=False,
            is_playoffs=False,
            is_primetime=False,
        )

    @pytest.mark.parametrize(
        "condition,expected",
        [("clear", False), ("indoor", False), ("rain", True), ("snow", True), ("wind", True)],
    )
    def test_weather_impact(self, condition, expected):
        assert self._context(condition=condition).has_weather_impact is expected

    @pytest.mark.parametrize(
        "home,away,expected",
        [(7, 7, False), (6, 10, False), (5, 7, True), (7, 11, True)],
    )
    def test_unusual_rest(self, home, away, expected):
        assert self._context(home=home, away=away).has_unusual_rest is expected


class TestMetadata:

    def test_to_dict(self):
        metadata = GenerationMetadata(
            backend_name="openai",
            model="gpt-4o-mini",
            latency_ms=840.0,
            confidence=7,
            attempt_count=2,
            fallback_used=True,
            tokens=1200,
            variety_score=1.0,
            template_risk=RiskLevel.LOW,
        )
        assert metadata.to_dict() == {
            "backendName": "openai",
            "model": "gpt-4o-mini",
            "tokens": 1200,
            "latency": 840.0,
            "confidence": 7,
            "fallbackUsed": True,
            "attemptCount": 2,
            "varietyScore": 1.0,
            "templateRisk": "low",
            "hasConflicts": False,
            "classification": None,
        }
