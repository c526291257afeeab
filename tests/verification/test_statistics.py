"""
Tests for return statistics and confidence intervals.
"""

import random

import pytest

from noirjack.blackjack.outcome import RoundOutcomeSummary, calculate_round_outcome
from noirjack.state.transitions import (
    deal,
    init_game,
    play_dealer,
    player_stand,
    prepare_next_round,
    set_bet,
    settle_all_hands,
    sit,
    skip_insurance,
)
from noirjack.state import Phase
from noirjack.verification import (
    ConfidenceInterval,
    calculate_confidence_interval,
    summarize_returns,
)


def summary(bet, net):
    return RoundOutcomeSummary(
        total_bet=bet,
        total_insurance=0.0,
        base_payout=bet + net,
        insurance_payout=0.0,
        base_net=net,
        insurance_net=0.0,
        net=net,
        kind="win" if net > 0 else "lose" if net < 0 else "push",
        dealer_total=20,
        dealer_bust=False,
        dealer_blackjack=False,
        hand_ids=("hand-0-1",),
    )


class TestConfidenceInterval:
    def test_symmetric_around_mean(self):
        ci = calculate_confidence_interval([1.0, 2.0, 3.0, 4.0, 5.0])
        assert ci.confidence == 0.95
        assert (ci.lower + ci.upper) / 2 == pytest.approx(3.0)
        assert ci.contains(3.0)
        assert not ci.contains(10.0)

    def test_wider_at_higher_confidence(self):
        values = [0.5, -1.0, 1.0, 0.0, 1.5, -1.0]
        narrow = calculate_confidence_interval(values, 0.90)
        wide = calculate_confidence_interval(values, 0.99)
        assert wide.upper - wide.lower > narrow.upper - narrow.lower

    def test_needs_two_values(self):
        with pytest.raises(ValueError):
            calculate_confidence_interval([1.0])

    def test_to_dict(self):
        assert ConfidenceInterval(-1.0, 1.0, 0.95).to_dict() == {
            "lower": -1.0,
            "upper": 1.0,
            "confidence": 0.95,
        }


class TestSummarizeReturns:
    def test_empty(self):
        result = summarize_returns([])
        assert result["rounds"] == 0
        assert result["mean_return"] == 0.0
        assert result["confidence_interval"] is None

    def test_returns_per_unit(self):
        result = summarize_returns([summary(10, 10), summary(20, -20), summary(10, 0)])
        assert result["rounds"] == 3
        assert result["total_wagered"] == 40
        assert result["total_net"] == -10
        assert result["mean_return"] == pytest.approx(0.0)
        assert result["confidence_interval"]["lower"] < 0 < result["confidence_interval"]["upper"]

    def test_from_played_rounds(self):
        state = init_game(bankroll=10000, random_bytes=random.Random(5).randbytes)
        state = set_bet(sit(state, 0), 0, 10)
        outcomes = []
        for _ in range(25):
            state = deal(state)
            if state.phase is Phase.INSURANCE:
                state = skip_insurance(state)
            while state.phase is Phase.PLAYER_ACTIONS:
                state = player_stand(state)
            state = settle_all_hands(play_dealer(state))
            outcomes.append(calculate_round_outcome(state))
            state = prepare_next_round(state)

        result = summarize_returns(outcomes)
        assert result["rounds"] == 25
        assert result["total_wagered"] == 250
        assert result["total_net"] == pytest.approx(state.bankroll - 10000)
        assert -1.0 <= result["mean_return"] <= 1.5
