# generation/decoding.py
"""
Strict decoding of model output into a GeneratedSet.

Two stages:
1. Cleanup pre-pass: strip code fences, BOM, control characters and smart
   quotes so that well-formed JSON wrapped in chat formatting parses.
2. Schema validation: every field is checked and anything out of contract
   raises MalformedOutput. Values are never clamped or defaulted into range.

Omitted combined odds are computed from the legs with the canonical
American-odds algorithm.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from generation.classifier import combined_odds
from generation.errors import MalformedOutput
from generation.models import (
    AMERICAN_ODDS_PATTERN,
    LEG_COUNT,
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    BetType,
    Event,
    GameFlow,
    GameSummary,
    GeneratedSet,
    Leg,
)

MAX_KEY_FACTORS = 5

_CODE_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WIDE_SPACES = re.compile("[\u2000-\u200F\u2028-\u202F\u205F-\u206F]")
_WHITESPACE_RUN = re.compile(r"\s+")
_SMART_DOUBLE = re.compile("[\u201c\u201d]")
_SMART_SINGLE = re.compile("[\u2018\u2019]")


# =============================================================================
# Cleanup Pre-pass
# =============================================================================


def clean_response(raw: str) -> str:
    text = raw.strip().lstrip("\ufeff")
    text = _CODE_FENCE.sub("", text)
    text = _CONTROL_CHARS.sub("", text)
    text = _SMART_DOUBLE.sub('"', text)
    text = _SMART_SINGLE.sub("'", text)
    return text.strip()


def clean_text(value: str) -> str:
    text = _CONTROL_CHARS.sub("", value.strip().lstrip("\ufeff"))
    text = _SMART_DOUBLE.sub('"', text)
    text = _SMART_SINGLE.sub("'", text)
    text = _WIDE_SPACES.sub(" ", text)
    return _WHITESPACE_RUN.sub(" ", text).strip()


# =============================================================================
# Field Checks
# =============================================================================


def _require_text(data: Dict[str, Any], key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not clean_text(value):
        raise MalformedOutput(f"{where}: '{key}' must be a non-empty string")
    return clean_text(value)


def _require_confidence(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedOutput(f"{where}: confidence must be a number, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise MalformedOutput(f"{where}: confidence must be a whole number, got {value!r}")
    confidence = int(value)
    if not MIN_CONFIDENCE <= confidence <= MAX_CONFIDENCE:
        raise MalformedOutput(f"{where}: confidence {confidence} outside 1-10")
    return confidence


def _require_odds(value: Any, where: str) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        value = f"+{value}" if value > 0 else str(value)
    if not isinstance(value, str):
        raise MalformedOutput(f"{where}: odds must be a string, got {value!r}")
    odds = clean_text(value)
    if not AMERICAN_ODDS_PATTERN.match(odds) or int(odds) == 0:
        raise MalformedOutput(f"{where}: odds {odds!r} are not American format")
    return odds


def decode_leg(data: Any, index: int) -> Leg:
    where = f"leg {index + 1}"
    if not isinstance(data, dict):
        raise MalformedOutput(f"{where}: expected an object")
    raw_type = data.get("betType")
    try:
        bet_type = BetType(raw_type)
    except ValueError:
        raise MalformedOutput(f"{where}: unknown betType {raw_type!r}")
    leg_id = data.get("id")
    return Leg(
        id=clean_text(leg_id) if isinstance(leg_id, str) and leg_id.strip() else f"leg-{index + 1}",
        bet_type=bet_type,
        selection=_require_text(data, "selection", where),
        target=_require_text(data, "target", where),
        reasoning=_require_text(data, "reasoning", where),
        confidence=_require_confidence(data.get("confidence"), where),
        odds=_require_odds(data.get("odds"), where),
    )


def decode_summary(data: Any) -> Optional[GameSummary]:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise MalformedOutput("gameSummary: expected an object")
    raw_flow = data.get("gameFlow")
    try:
        game_flow = GameFlow(raw_flow)
    except ValueError:
        raise MalformedOutput(f"gameSummary: unknown gameFlow {raw_flow!r}")
    key_factors = data.get("keyFactors", [])
    if not isinstance(key_factors, list) or not all(isinstance(f, str) for f in key_factors):
        raise MalformedOutput("gameSummary: keyFactors must be a list of strings")
    return GameSummary(
        matchup_analysis=_require_text(data, "matchupAnalysis", "gameSummary"),
        game_flow=game_flow,
        key_factors=tuple(clean_text(f) for f in key_factors[:MAX_KEY_FACTORS]),
        prediction=_require_text(data, "prediction", "gameSummary"),
        confidence=_require_confidence(data.get("confidence"), "gameSummary"),
    )


# =============================================================================
# Entry Point
# =============================================================================


def decode_generated_set(
    raw: str,
    event: Event,
    set_id: str,
    fallback_reasoning: str,
) -> GeneratedSet:
    """
    Decode raw model output into a validated GeneratedSet.

    Raises:
        MalformedOutput: If the output is not valid JSON or breaks the contract
    """
    try:
        parsed = json.loads(clean_response(raw))
    except json.JSONDecodeError as e:
        raise MalformedOutput(f"Model output is not valid JSON: {e.msg}")
    if not isinstance(parsed, dict):
        raise MalformedOutput("Model output must be a JSON object")

    raw_legs = parsed.get("legs")
    if not isinstance(raw_legs, list) or len(raw_legs) != LEG_COUNT:
        count = len(raw_legs) if isinstance(raw_legs, list) else 0
        raise MalformedOutput(
            f"Model output must contain exactly {LEG_COUNT} legs, got {count}"
        )
    legs: List[Leg] = [decode_leg(leg, i) for i, leg in enumerate(raw_legs)]

    estimated = parsed.get("estimatedOdds")
    if estimated is None:
        odds = combined_odds(leg.odds for leg in legs)
    else:
        odds = _require_odds(estimated, "estimatedOdds")

    reasoning = parsed.get("aiReasoning")
    if not isinstance(reasoning, str) or not clean_text(reasoning):
        reasoning = fallback_reasoning

    generated = GeneratedSet(
        id=set_id,
        legs=tuple(legs),
        event_context=f"{event.matchup} - Week {event.week}",
        reasoning=clean_text(reasoning),
        overall_confidence=_require_confidence(
            parsed.get("overallConfidence"), "overallConfidence"
        ),
        combined_odds=odds,
        summary=decode_summary(parsed.get("gameSummary")),
    )
    generated.validate()
    return generated
