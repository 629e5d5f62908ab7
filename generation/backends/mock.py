# generation/backends/mock.py
"""
Mock backend for development and testing.

Builds sets from strategy-aware templates filled with the event's team and
roster names. Output always satisfies the GeneratedSet invariants. Latency
and failures are simulated with a seedable random source so tests stay
deterministic.
"""
from __future__ import annotations

import random
import time
from typing import Dict, List, Optional

from generation.backends.base import GenerationBackend
from generation.classifier import combined_odds
from generation.errors import BackendError
from generation.models import (
    BackendResponse,
    BetType,
    Event,
    GameFlow,
    GameSummary,
    GeneratedSet,
    GenerationContext,
    GenerationRequest,
    Leg,
    ModelInfo,
    Player,
    Rosters,
)

MOCK_MODEL = "mock-gpt-4o-mini"

# Placeholders: {home}, {away}, {home_qb}, {away_qb}, {home_rb}, {away_wr}
_TEMPLATES: Dict[str, List[dict]] = {
    "conservative": [
        {
            "legs": [
                ("spread", "{home} +7.5", "+7.5", "Home underdog getting a full touchdown in a game that projects close.", 7, "-110"),
                ("total", "Under 42.5", "42.5", "Two deliberate offenses should keep the clock running.", 6, "-105"),
                ("player_passing", "{home_qb}", "Over 205.5 passing yards", "Volume floor is safe even in a slow script.", 7, "-115"),
            ],
            "reasoning": "Safe margins built around a slow, defensive game script.",
            "flow": GameFlow.DEFENSIVE_GRIND,
            "analysis": "{away} at {home} pairs two defenses capable of limiting explosive plays.",
            "key_factors": ("Defensive strength", "Time of possession", "Field position"),
            "prediction": "Low-scoring game with {home} keeping it within a score.",
            "confidence": 7,
        },
    ],
    "moderate": [
        {
            "legs": [
                ("spread", "{away} -3.5", "-3.5", "Visitors hold the edge in the trenches on both sides.", 6, "-110"),
                ("total", "Over 45.5", "45.5", "Both offenses have moved the ball consistently between the twenties.", 6, "-110"),
                ("player_rushing", "{home_rb}", "Over 62.5 rushing yards", "Lead back should see steady early-down work.", 6, "-115"),
            ],
            "reasoning": "Spread value paired with a moderate scoring expectation and a steady rushing floor.",
            "flow": GameFlow.BALANCED_TEMPO,
            "analysis": "Even matchup between {away} and {home} with a slight edge to the visitors.",
            "key_factors": ("Line play", "Red zone efficiency", "Early-down rushing"),
            "prediction": "{away} win a close game and cover a small number.",
            "confidence": 6,
        },
        {
            "legs": [
                ("moneyline", "{home}", "Win", "Home side matches up well against the visitors' pass rush.", 6, "-135"),
                ("player_receiving", "{away_wr}", "Over 54.5 receiving yards", "Primary target should be busy chasing points.", 6, "-110"),
                ("team_total", "{away} Over 20.5", "20.5", "Visitors keep pace even in a loss.", 5, "-110"),
            ],
            "reasoning": "Home win with the visiting offense staying productive through the air.",
            "flow": GameFlow.BALANCED_TEMPO,
            "analysis": "{home} protect home field while {away} lean on their passing game.",
            "key_factors": ("Pass rush", "Target share", "Home field"),
            "prediction": "{home} win by a field goal in a back-and-forth game.",
            "confidence": 6,
        },
    ],
    "aggressive": [
        {
            "legs": [
                ("player_passing", "{away_qb}", "Over 285.5 passing yards", "Shootout script forces volume through the air.", 5, "-110"),
                ("first_touchdown", "{home_rb}", "Anytime first touchdown", "Goal-line role on the opening drive.", 4, "+650"),
                ("total", "Over 51.5", "51.5", "Two fast-paced offenses against tired secondaries.", 5, "-110"),
            ],
            "reasoning": "Leaning into a high-scoring script with a long-shot scorer.",
            "flow": GameFlow.HIGH_SCORING_SHOOTOUT,
            "analysis": "{away} and {home} both play fast, which should inflate possessions.",
            "key_factors": ("Pace", "Explosive plays", "Goal-line usage"),
            "prediction": "Points early and often with {away} landing the final score.",
            "confidence": 5,
        },
    ],
}

_RISK_ALIASES = {"conservative": "conservative", "aggressive": "aggressive"}


def _first(players: List[Player], fallback: str) -> str:
    return players[0].name if players else fallback


class MockBackend(GenerationBackend):
    """
    Template-driven backend.

    Args:
        latency_ms: (min, max) simulated latency in milliseconds
        error_rate: Probability that a call raises a transient BackendError
        seed: Seed for the random source
    """

    def __init__(
        self,
        name: str = "mock",
        latency_ms: tuple = (0, 0),
        error_rate: float = 0.0,
        seed: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("max_retries", 1)
        super().__init__(name, **kwargs)
        self.latency_ms = latency_ms
        self.error_rate = error_rate
        self._random = random.Random(seed)

    async def generate(
        self, request: GenerationRequest, context: GenerationContext
    ) -> BackendResponse:
        self.validate_inputs(request, context)
        start = time.monotonic()
        generated = await self.with_retry(
            lambda: self._generate_once(request, context),
            label="mock",
            max_retries=context.max_retries,
        )
        return BackendResponse(
            generated_set=generated,
            model=MOCK_MODEL,
            latency_ms=(time.monotonic() - start) * 1000,
            tokens=self._random.randint(500, 1500),
        )

    async def _generate_once(
        self, request: GenerationRequest, context: GenerationContext
    ) -> GeneratedSet:
        low, high = self.latency_ms
        if high > 0:
            await self._sleep(self._random.uniform(low, high) / 1000)
        if self.error_rate and self._random.random() < self.error_rate:
            raise BackendError("Mock backend simulated failure")

        risk = _RISK_ALIASES.get(context.strategy.risk_level, "moderate")
        template = self._random.choice(_TEMPLATES[risk])
        return self._fill(template, request.event, request.rosters)

    def _fill(self, template: dict, event: Event, rosters: Rosters) -> GeneratedSet:
        names = {
            "home": event.home_team.display_name,
            "away": event.away_team.display_name,
            "home_qb": _first(rosters.by_position("home", "QB"), f"{event.home_team.display_name} QB"),
            "away_qb": _first(rosters.by_position("away", "QB"), f"{event.away_team.display_name} QB"),
            "home_rb": _first(rosters.by_position("home", "RB"), f"{event.home_team.display_name} RB"),
            "away_wr": _first(rosters.by_position("away", "WR"), f"{event.away_team.display_name} WR"),
        }
        legs = tuple(
            Leg(
                id=f"mock-leg-{i + 1}",
                bet_type=BetType(bet_type),
                selection=selection.format(**names),
                target=target,
                reasoning=reasoning,
                confidence=confidence,
                odds=odds,
            )
            for i, (bet_type, selection, target, reasoning, confidence, odds)
            in enumerate(template["legs"])
        )
        summary = GameSummary(
            matchup_analysis=template["analysis"].format(**names),
            game_flow=template["flow"],
            key_factors=template["key_factors"],
            prediction=template["prediction"].format(**names),
            confidence=template["confidence"],
        )
        return GeneratedSet(
            id=self.new_set_id(),
            legs=legs,
            event_context=f"{event.matchup} - Week {event.week}",
            reasoning=template["reasoning"],
            overall_confidence=template["confidence"],
            combined_odds=combined_odds(leg.odds for leg in legs),
            summary=summary,
        )

    async def validate_connection(self) -> bool:
        return True

    def describe_model(self) -> ModelInfo:
        return ModelInfo(
            name="Mock Generator",
            version=MOCK_MODEL,
            capabilities=("strategy_awareness", "error_simulation", "fast_response"),
        )
