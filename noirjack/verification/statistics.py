"""
Statistical checks for noirjack tables.

Two questions are answered here: does the shoe's shuffle put every rank at
every position equally often, and what did a run of settled rounds return per
unit wagered, with a confidence interval around it.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import scipy.stats as stats

from noirjack.common.card import Rank
from noirjack.common.shoe import RandomBytes, create_shoe
from noirjack.blackjack.outcome import RoundOutcomeSummary

_RANKS = list(Rank)


@dataclass
class ConfidenceInterval:
    """
    Represents a confidence interval with lower and upper bounds.

    Attributes:
        lower: The lower bound of the confidence interval
        upper: The upper bound of the confidence interval
        confidence: The confidence level (e.g., 0.95 for 95% confidence)
    """

    lower: float
    upper: float
    confidence: float

    def contains(self, value: float) -> bool:
        """Check if the interval contains a value."""
        return self.lower <= value <= self.upper

    def to_dict(self) -> Dict[str, float]:
        """Convert to a dictionary."""
        return {"lower": self.lower, "upper": self.upper, "confidence": self.confidence}


def calculate_confidence_interval(
    values: Sequence[float], confidence: float = 0.95
) -> ConfidenceInterval:
    """
    Calculate a t-based confidence interval for the mean of ``values``.

    Args:
        values: At least two observations
        confidence: The confidence level (e.g., 0.95 for 95% confidence)

    Raises:
        ValueError: With fewer than two values
    """
    if len(values) < 2:
        raise ValueError("A confidence interval needs at least two values")
    mean = float(np.mean(values))
    std_err = float(stats.sem(values))
    margin = std_err * float(stats.t.ppf((1 + confidence) / 2, len(values) - 1))
    return ConfidenceInterval(mean - margin, mean + margin, confidence)


@dataclass
class ShuffleAuditResult:
    """
    Outcome of `audit_shuffle`.

    Attributes:
        trials: Number of shoes shuffled
        positions: Number of leading shoe positions examined
        p_values: Chi-square p-value of the rank distribution at each position
        alpha: Family-wise significance level
        failing_positions: Positions whose p-value is below the corrected level
    """

    trials: int
    positions: int
    p_values: List[float]
    alpha: float
    failing_positions: List[int]

    @property
    def passed(self) -> bool:
        return not self.failing_positions

    @property
    def min_p_value(self) -> float:
        return min(self.p_values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trials": self.trials,
            "positions": self.positions,
            "min_p_value": self.min_p_value,
            "alpha": self.alpha,
            "failing_positions": self.failing_positions,
            "passed": self.passed,
        }


def rank_position_counts(
    num_decks: int,
    trials: int,
    positions: int,
    random_bytes: Optional[RandomBytes] = None,
) -> np.ndarray:
    """
    Shuffle ``trials`` fresh shoes and count the rank dealt at each position.

    Returns:
        Array of shape (positions, 13); column order follows `Rank`
    """
    counts = np.zeros((positions, len(_RANKS)), dtype=np.int64)
    rank_column = {rank: i for i, rank in enumerate(_RANKS)}
    for _ in range(trials):
        shoe = create_shoe(num_decks, 1.0, random_bytes)
        # Cards are dealt from the tail.
        dealt = shoe.cards[::-1][:positions]
        for position, card in enumerate(dealt):
            counts[position, rank_column[card.rank]] += 1
    return counts


def audit_shuffle(
    num_decks: int = 1,
    trials: int = 2000,
    positions: int = 5,
    alpha: float = 0.01,
    random_bytes: Optional[RandomBytes] = None,
) -> ShuffleAuditResult:
    """
    Test that every rank is equally likely at the first ``positions`` cards.

    Each position gets a chi-square goodness-of-fit test against the uniform
    rank distribution; ``alpha`` is Bonferroni-corrected across positions.

    Raises:
        ValueError: If trials or positions are not positive
    """
    if trials < 1 or positions < 1:
        raise ValueError("trials and positions must be positive")
    counts = rank_position_counts(num_decks, trials, positions, random_bytes)
    expected = np.full(len(_RANKS), trials / len(_RANKS))
    p_values = [
        float(stats.chisquare(counts[position], f_exp=expected).pvalue)
        for position in range(positions)
    ]
    threshold = alpha / positions
    failing = [i for i, p in enumerate(p_values) if p < threshold]
    return ShuffleAuditResult(
        trials=trials,
        positions=positions,
        p_values=p_values,
        alpha=alpha,
        failing_positions=failing,
    )


def summarize_returns(
    outcomes: Sequence[RoundOutcomeSummary], confidence: float = 0.95
) -> Dict[str, Any]:
    """
    Return per unit wagered over a run of settled rounds.

    Args:
        outcomes: Round summaries, e.g. from `calculate_round_outcome`
        confidence: Confidence level for the interval

    Returns:
        Dictionary with rounds, total wagered, total net, mean return per
        round (net / wagered) and, with two or more rounds, its interval
    """
    returns = [
        o.net / (o.total_bet + o.total_insurance)
        for o in outcomes
        if o.total_bet + o.total_insurance > 0
    ]
    result: Dict[str, Any] = {
        "rounds": len(returns),
        "total_wagered": float(sum(o.total_bet + o.total_insurance for o in outcomes)),
        "total_net": float(sum(o.net for o in outcomes)),
        "mean_return": float(np.mean(returns)) if returns else 0.0,
        "confidence_interval": None,
    }
    if len(returns) >= 2:
        result["confidence_interval"] = calculate_confidence_interval(
            returns, confidence
        ).to_dict()
    return result
