# generation/backends/openai.py
"""
OpenAI chat-completions backend.

Calls the API through the openai SDK (AsyncOpenAI), asking for a JSON
object response. The system prompt carries the strategy and the
anti-template hints; the user prompt carries the event, a position-limited
roster listing and the variety factors.

Error mapping:
- APIStatusError -> OpenAIError with status_code (400/401/403 and
  quota-exhausted 429 are terminal)
- APIConnectionError -> OpenAIError, transient
- no content -> EmptyResponse
- unusable content -> MalformedOutput (from decoding)
"""
from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, List, Optional

import httpx
import openai

from generation.backends.base import GenerationBackend
from generation.decoding import decode_generated_set
from generation.errors import EmptyResponse, MissingApiKey, OpenAIError
from generation.models import (
    BackendResponse,
    BetType,
    GameFlow,
    GenerationContext,
    GenerationRequest,
    ModelInfo,
    Player,
)

_logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT_SECONDS = 60.0

# Players listed per position in the user prompt
ROSTER_POSITION_LIMITS = (
    ("QB", 2),
    ("RB", 3),
    ("WR", 6),
    ("TE", 2),
    ("K", 2),
    ("DEF", 2),
)

FALLBACK_REASONING = "Strategic parlay built from matchup analysis."


def _format_roster(players: List[Player]) -> str:
    lines = []
    for position, limit in ROSTER_POSITION_LIMITS:
        matching = [p for p in players if p.position == position][:limit]
        if matching:
            listed = ", ".join(f"{p.name} (#{p.jersey or '??'})" for p in matching)
            lines.append(f"{position}: {listed}")
    return "\n".join(lines)


def build_system_prompt(context: GenerationContext) -> str:
    strategy = context.strategy
    hints = context.anti_template_hints
    bet_types = "|".join(b.value for b in BetType)
    game_flows = "|".join(f.value for f in GameFlow)

    prompt = f"""You are an expert NFL betting analyst building three-leg parlays from real football analysis.

STRATEGY: {strategy.name}
{strategy.description}

CORE INSTRUCTIONS:
1. Create EXACTLY 3 legs using different bet types
2. Use player names from the provided rosters ONLY
3. Reason from matchups, trends and conditions, not betting cliches
4. Give each leg a whole-number confidence from 1 to 10
5. Give each leg realistic American odds such as "-110" or "+150"
6. Include a game summary

REQUIRED JSON FORMAT:
{{
  "legs": [
    {{
      "id": "leg-1",
      "betType": "{bet_types}",
      "selection": "Specific selection",
      "target": "Line or target",
      "reasoning": "Football analysis behind the pick",
      "confidence": 7,
      "odds": "-110"
    }}
  ],
  "aiReasoning": "Overall parlay logic",
  "overallConfidence": 7,
  "estimatedOdds": "+250",
  "gameSummary": {{
    "matchupAnalysis": "How the offenses match up against the defenses",
    "gameFlow": "{game_flows}",
    "keyFactors": ["factor1", "factor2", "factor3"],
    "prediction": "Game prediction with reasoning",
    "confidence": 7
  }}
}}"""
    if hints.avoid_generic_phrases:
        prompt += f"\n\nAVOID these generic phrases: {', '.join(hints.avoid_generic_phrases)}"
    if hints.required_context_factors:
        prompt += f"\n\nREQUIRED CONTEXT FACTORS: {', '.join(hints.required_context_factors)}"
    if hints.emphasize_game_specifics:
        prompt += f"\n\nEMPHASIZE THESE SPECIFICS: {', '.join(hints.emphasize_game_specifics)}"
    if hints.recent_bet_type_patterns:
        prompt += f"\n\nRECENTLY USED COMBINATIONS: {', '.join(hints.recent_bet_type_patterns)}"
    return prompt


def build_user_prompt(request: GenerationRequest, context: GenerationContext) -> str:
    event = request.event
    rosters = request.rosters
    event_context = context.event_context
    factors = context.variety_factors

    game_info = ""
    if event_context.has_weather_impact:
        game_info += f"\nWeather: {event_context.weather.condition}"
        if event_context.weather.temperature is not None:
            game_info += f" ({event_context.weather.temperature}F)"
    if event_context.is_rivalry:
        game_info += "\nContext: Divisional rivalry game"
    if event_context.is_primetime:
        game_info += "\nContext: Prime time national television game"
    if event_context.rest_days.home != event_context.rest_days.away:
        game_info += (
            f"\nRest: Home {event_context.rest_days.home} days, "
            f"Away {event_context.rest_days.away} days"
        )

    variety = (
        "\n\nFOCUS AREAS:"
        f"\n- Strategy: {factors.strategy}"
        f"\n- Focus Area: {factors.focus_area}"
        f"\n- Game Script: {factors.game_script}"
        f"\n- Risk Tolerance: {factors.risk_tolerance * 100:.0f}%"
    )
    if factors.focus_player is not None:
        variety += f"\n- Focus Player: {factors.focus_player.name} ({factors.focus_player.position})"

    return (
        f"GAME: {event.matchup}\n"
        f"Week {event.week} | Date: {event.date or 'TBD'}{game_info}\n\n"
        f"{event.home_team.display_name.upper()} ROSTER:\n{_format_roster(list(rosters.home))}\n\n"
        f"{event.away_team.display_name.upper()} ROSTER:\n{_format_roster(list(rosters.away))}"
        f"{variety}\n\n"
        "Generate a strategic 3-leg parlay with detailed football analysis and a game summary."
    )


def _error_message(error: openai.APIStatusError) -> str:
    body = error.body
    if isinstance(body, dict) and body.get("message"):
        return body["message"]
    return error.message


class OpenAIBackend(GenerationBackend):
    """
    Backend for the OpenAI chat-completions API.

    The SDK's own retries are disabled; with_retry owns the retry policy.

    Raises:
        MissingApiKey: If constructed without an API key
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        base_url: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        default_temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http_client: Optional[httpx.AsyncClient] = None,
        name: str = "openai",
        **kwargs,
    ):
        if not api_key:
            raise MissingApiKey("OpenAI API key is required")
        super().__init__(name, **kwargs)
        self.model = model
        self.max_tokens = max_tokens
        self.default_temperature = default_temperature
        self._client = openai.AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def _create_completion(self, **params: Any) -> Any:
        try:
            return await self._client.chat.completions.create(model=self.model, **params)
        except openai.APIStatusError as e:
            raise OpenAIError(
                f"OpenAI API error ({e.status_code}): {_error_message(e)}",
                status_code=e.status_code,
            )
        except openai.APIConnectionError as e:
            raise OpenAIError(f"OpenAI request failed: {e}")
        except openai.OpenAIError as e:
            raise OpenAIError(f"OpenAI client error: {e}")

    async def generate(
        self, request: GenerationRequest, context: GenerationContext
    ) -> BackendResponse:
        self.validate_inputs(request, context)
        start = time.monotonic()

        params: Dict[str, Any] = dict(
            messages=[
                {"role": "system", "content": build_system_prompt(context)},
                {"role": "user", "content": build_user_prompt(request, context)},
            ],
            response_format={"type": "json_object"},
            temperature=(
                context.temperature
                if context.temperature is not None
                else self.default_temperature
            ),
            max_tokens=self.max_tokens,
            top_p=0.9,
            frequency_penalty=0.3,
            presence_penalty=0.4,
            seed=secrets.randbelow(1_000_000),
        )
        completion = await self.with_retry(
            lambda: self._create_completion(**params),
            label="chat completion",
            max_retries=context.max_retries,
        )

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise EmptyResponse("No response content from OpenAI")

        generated = decode_generated_set(
            content,
            request.event,
            set_id=self.new_set_id(),
            fallback_reasoning=FALLBACK_REASONING,
        )
        latency_ms = (time.monotonic() - start) * 1000
        _logger.info(f"[OPENAI] generated {generated.id} in {latency_ms:.0f}ms")
        return BackendResponse(
            generated_set=generated,
            model=completion.model or self.model,
            latency_ms=latency_ms,
            tokens=completion.usage.total_tokens if completion.usage else None,
        )

    async def validate_connection(self) -> bool:
        try:
            await self._create_completion(
                messages=[{"role": "user", "content": "Test connection"}],
                max_tokens=1,
            )
            return True
        except OpenAIError as e:
            _logger.warning(f"[OPENAI] connection validation failed: {e}")
            return False

    def describe_model(self) -> ModelInfo:
        return ModelInfo(
            name="OpenAI",
            version=self.model,
            capabilities=(
                "chat_completion",
                "json_mode",
                "temperature_control",
                "token_usage_tracking",
            ),
        )

    async def aclose(self) -> None:
        await self._client.close()
