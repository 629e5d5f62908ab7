# generation/classifier.py
"""
Output Classifier - stateless scoring over a generated set.

Used for validation and telemetry. Nothing here rejects output; the engine
attaches the variety score and template risk to result metadata.

Variety score:
- unique bet types / total legs
- +0.1 for each distinct category beyond the first
- capped at 1.0

Template risk:
- template = sorted bet types match a known generic pattern, or every leg
  is a team bet, or every leg is a player prop
- not a template: low
- template: variety >= 0.8 low, >= 0.6 medium, else high

Conflicts (pairwise):
- spread with moneyline
- total with team_total
- two player props on the same selection with different bet types

Combined odds:
- American -> decimal: +n -> n/100 + 1, -n -> 100/n + 1
- multiply all decimals
- decimal -> American: >= 2 -> "+" round((d - 1) * 100), else round(-100 / (d - 1))
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from itertools import combinations
from typing import Iterable, List, Sequence, Tuple

from generation.models import (
    AMERICAN_ODDS_PATTERN,
    BetType,
    GeneratedSet,
    Leg,
    LegCategory,
    RiskLevel,
)


# =============================================================================
# Constants
# =============================================================================

CATEGORY_BONUS = 0.1

# Stored sorted so they compare directly against a sorted multiset
TEMPLATE_PATTERNS: Tuple[Tuple[str, ...], ...] = (
    tuple(sorted(["spread", "player_rushing", "total"])),
    tuple(sorted(["player_passing", "player_rushing", "player_receiving"])),
)

_CONFLICTING_TYPE_PAIRS = (
    frozenset({BetType.SPREAD, BetType.MONEYLINE}),
    frozenset({BetType.TOTAL, BetType.TEAM_TOTAL}),
)

_BASE_RISK = {
    BetType.MONEYLINE: RiskLevel.LOW,
    BetType.TOTAL: RiskLevel.LOW,
    BetType.SPREAD: RiskLevel.MEDIUM,
    BetType.TEAM_TOTAL: RiskLevel.MEDIUM,
    BetType.PLAYER_PASSING: RiskLevel.MEDIUM,
    BetType.PLAYER_RUSHING: RiskLevel.MEDIUM,
    BetType.PLAYER_RECEIVING: RiskLevel.MEDIUM,
    BetType.FIRST_TOUCHDOWN: RiskLevel.HIGH,
    BetType.DEFENSIVE_PROPS: RiskLevel.HIGH,
}


# =============================================================================
# Variety / Template Risk
# =============================================================================


def variety_score(legs: Sequence[Leg]) -> float:
    """Score bet-type and category diversity on a 0-1 scale."""
    if not legs:
        return 0.0
    unique_types = len({leg.bet_type for leg in legs})
    categories = {leg.category for leg in legs}
    score = unique_types / len(legs) + (len(categories) - 1) * CATEGORY_BONUS
    return min(1.0, score)


def is_template_pattern(legs: Sequence[Leg]) -> bool:
    """Check whether the legs follow a known generic pattern."""
    if not legs:
        return False
    bet_types = tuple(sorted(leg.bet_type.value for leg in legs))
    if bet_types in TEMPLATE_PATTERNS:
        return True
    if all(leg.category == LegCategory.TEAM for leg in legs):
        return True
    return all(leg.category == LegCategory.PLAYER for leg in legs)


def template_risk(legs: Sequence[Leg]) -> RiskLevel:
    if not is_template_pattern(legs):
        return RiskLevel.LOW
    score = variety_score(legs)
    if score >= 0.8:
        return RiskLevel.LOW
    if score >= 0.6:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


# =============================================================================
# Conflict Detection
# =============================================================================


def conflicts_with(leg_a: Leg, leg_b: Leg) -> bool:
    """Check whether two legs cannot sensibly be combined."""
    if frozenset({leg_a.bet_type, leg_b.bet_type}) in _CONFLICTING_TYPE_PAIRS:
        return True
    return (
        leg_a.is_player_prop
        and leg_b.is_player_prop
        and leg_a.selection == leg_b.selection
        and leg_a.bet_type != leg_b.bet_type
    )


def conflicting_pairs(legs: Sequence[Leg]) -> List[Tuple[str, str]]:
    """Return the ids of every conflicting pair."""
    return [
        (leg_a.id, leg_b.id)
        for leg_a, leg_b in combinations(legs, 2)
        if conflicts_with(leg_a, leg_b)
    ]


def has_conflicting_legs(legs: Sequence[Leg]) -> bool:
    return any(conflicts_with(a, b) for a, b in combinations(legs, 2))


# =============================================================================
# Odds
# =============================================================================


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def american_to_decimal(odds: str) -> float:
    """
    Convert American odds to decimal odds.

    Raises:
        ValueError: If odds are not a signed, non-zero integer string
    """
    if not isinstance(odds, str) or not AMERICAN_ODDS_PATTERN.match(odds):
        raise ValueError(f"Invalid American odds: {odds!r}")
    value = int(odds)
    if value == 0:
        raise ValueError("American odds cannot be zero")
    if value > 0:
        return value / 100 + 1
    return 100 / abs(value) + 1


def decimal_to_american(decimal_odds: float) -> str:
    if decimal_odds <= 1:
        raise ValueError(f"Decimal odds must be greater than 1, got {decimal_odds}")
    if decimal_odds >= 2:
        return f"+{_round_half_up((decimal_odds - 1) * 100)}"
    return str(_round_half_up(-100 / (decimal_odds - 1)))


def combined_odds(odds: Iterable[str]) -> str:
    """
    Combine leg odds into parlay odds in American format.

    Decimals are multiplied in sorted order so the result does not depend
    on leg order.
    """
    decimals = sorted(american_to_decimal(o) for o in odds)
    if not decimals:
        raise ValueError("At least one leg is required to combine odds")
    product = 1.0
    for value in decimals:
        product *= value
    return decimal_to_american(product)


# =============================================================================
# Risk
# =============================================================================


def leg_risk_level(leg: Leg) -> RiskLevel:
    """Risk from bet type, raised by low confidence."""
    base = _BASE_RISK.get(leg.bet_type, RiskLevel.MEDIUM)
    if base == RiskLevel.HIGH or leg.confidence <= 5:
        return RiskLevel.HIGH
    if base == RiskLevel.MEDIUM or leg.confidence <= 8:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def set_risk_level(legs: Sequence[Leg]) -> RiskLevel:
    levels = [leg_risk_level(leg) for leg in legs]
    high = levels.count(RiskLevel.HIGH)
    medium = levels.count(RiskLevel.MEDIUM)
    if high >= 2:
        return RiskLevel.HIGH
    if high == 1 or medium >= 2:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def is_balanced(legs: Sequence[Leg]) -> bool:
    """A set is balanced when its legs span at least two risk levels."""
    return len({leg_risk_level(leg) for leg in legs}) >= 2


# =============================================================================
# Aggregate
# =============================================================================


@dataclass(frozen=True)
class Classification:
    variety_score: float
    is_template: bool
    template_risk: RiskLevel
    has_conflicts: bool
    conflicting_pairs: Tuple[Tuple[str, str], ...]
    combined_odds: str
    risk_level: RiskLevel
    is_balanced: bool

    def to_dict(self) -> dict:
        return {
            "varietyScore": self.variety_score,
            "isTemplate": self.is_template,
            "templateRisk": self.template_risk.value,
            "hasConflicts": self.has_conflicts,
            "conflictingPairs": [list(pair) for pair in self.conflicting_pairs],
            "combinedOdds": self.combined_odds,
            "riskLevel": self.risk_level.value,
            "isBalanced": self.is_balanced,
        }


def classify(generated_set: GeneratedSet) -> Classification:
    legs = generated_set.legs
    pairs = tuple(conflicting_pairs(legs))
    return Classification(
        variety_score=variety_score(legs),
        is_template=is_template_pattern(legs),
        template_risk=template_risk(legs),
        has_conflicts=bool(pairs),
        conflicting_pairs=pairs,
        combined_odds=combined_odds(leg.odds for leg in legs),
        risk_level=set_risk_level(legs),
        is_balanced=is_balanced(legs),
    )
