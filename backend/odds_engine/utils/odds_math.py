from __future__ import annotations

from fractions import Fraction


def american_to_decimal(american_odds: int | float) -> float:
    """Convert American odds to decimal. -110 -> 1.909, +150 -> 2.5"""
    if american_odds == 0:
        raise ValueError("American odds cannot be 0")
    if -100 < american_odds < 100:
        raise ValueError("American odds must be <= -100 or >= 100")
    if american_odds > 0:
        return 1 + (american_odds / 100)
    return 1 + (100 / abs(american_odds))


def decimal_to_american(decimal_odds: float) -> int:
    """Convert decimal odds to American. 1.909 -> -110, 2.5 -> +150"""
    if decimal_odds <= 1:
        raise ValueError("Decimal odds must be greater than 1")
    if decimal_odds >= 2:
        return int(round((decimal_odds - 1) * 100))
    return int(round(-100 / (decimal_odds - 1)))


def fractional_to_decimal(fractional: str) -> float:
    """Convert fractional odds to decimal. '5/2' -> 3.5"""
    try:
        value = Fraction(fractional.strip())
    except (ValueError, ZeroDivisionError) as exc:
        raise ValueError(f"Invalid fractional odds: {fractional!r}") from exc
    if value <= 0:
        raise ValueError("Fractional odds must be positive")
    return 1 + float(value)


def decimal_to_implied_prob(decimal_odds: float) -> float:
    """Implied probability of a decimal price. 2.0 -> 0.5"""
    if decimal_odds <= 1:
        raise ValueError("Decimal odds must be greater than 1")
    return 1 / decimal_odds


def american_to_implied_prob(american_odds: int) -> float:
    """Convert American odds to implied probability. -110 -> 0.5238"""
    return decimal_to_implied_prob(american_to_decimal(american_odds))


def remove_vig(probs: list[float]) -> list[float]:
    """Normalize overround probabilities to sum to 1.0 (remove vig/juice)."""
    if not probs:
        return []
    if any(p < 0 for p in probs):
        raise ValueError("Probabilities must be non-negative")
    total = sum(probs)
    if total <= 0:
        raise ValueError("Sum of probabilities must be positive")
    return [p / total for p in probs]


def fair_probability(side_prob: float, other_side_probs: list[float]) -> float:
    """Two-way (or n-way) de-vig of one side against its complements."""
    if not other_side_probs:
        return side_prob
    return remove_vig([side_prob, *other_side_probs])[0]


def bps_change(from_decimal: float, to_decimal: float) -> int:
    """Signed basis-point move from one decimal price to another."""
    if from_decimal <= 0:
        raise ValueError("Reference decimal odds must be positive")
    return int(round(((to_decimal - from_decimal) / from_decimal) * 10000))


def edge_percent(best_decimal: float, consensus_decimal: float) -> float:
    """Percent by which the best price beats the consensus price."""
    if consensus_decimal <= 0:
        raise ValueError("Consensus decimal odds must be positive")
    return ((best_decimal - consensus_decimal) / consensus_decimal) * 100
