"""
Tests for the settled-round summary.
"""

import pytest

from noirjack.blackjack.outcome import calculate_round_outcome
from noirjack.state.models import HandOutcome
from noirjack.state.transitions import (
    deal,
    init_game,
    player_hit,
    player_stand,
    player_surrender,
    play_dealer,
    set_bet,
    settle_all_hands,
    sit,
    skip_insurance,
    take_insurance,
)


def play_round(state):
    state = play_dealer(state)
    return settle_all_hands(state)


class TestRoundOutcome:
    def test_none_before_settlement(self, table):
        assert calculate_round_outcome(table) is None

    def test_natural_three_to_two(self, table, stack):
        state = set_bet(table, 0, 20)
        state = deal(stack(state, "A 9 K 8"))
        assert state.bankroll == 80
        state = play_round(state)
        hand = state.seats[0].hands[0]
        assert hand.outcome is HandOutcome.BLACKJACK
        assert hand.payout == 50
        assert state.bankroll == 130

        summary = calculate_round_outcome(state)
        assert summary.kind == "blackjack"
        assert summary.total_bet == 20
        assert summary.net == 30
        assert summary.dealer_total == 17
        assert not summary.dealer_bust
        assert summary.hand_ids == (hand.id,)

    def test_six_to_five(self, stack, random_bytes):
        state = init_game({"blackjackPayout": "6:5"}, random_bytes=random_bytes)
        state = set_bet(sit(state, 0), 0, 10)
        state = play_round(deal(stack(state, "A 9 K 8")))
        assert calculate_round_outcome(state).net == pytest.approx(12)

    def test_insurance_against_dealer_blackjack(self, table, stack):
        state = set_bet(table, 0, 20)
        state = deal(stack(state, "10 A 9 K"))
        hand_id = state.seats[0].hands[0].id
        state = take_insurance(state, 0, hand_id, 10)
        assert state.bankroll == 70
        state = settle_all_hands(state)

        hand = state.seats[0].hands[0]
        assert hand.outcome is HandOutcome.LOSE
        assert hand.insurance_payout == 30
        assert state.bankroll == 100

        summary = calculate_round_outcome(state)
        assert summary.dealer_blackjack
        assert summary.base_net == -20
        assert summary.insurance_net == 20
        assert summary.net == 0
        assert summary.kind == "push"

    def test_loss(self, table, stack):
        state = deal(stack(table, "10 10 8 9"))
        state = play_round(player_stand(state))
        summary = calculate_round_outcome(state)
        assert summary.kind == "lose"
        assert summary.net == -10

    def test_win_on_dealer_bust(self, table, stack):
        state = deal(stack(table, "10 6 8 10 K"))
        state = play_round(player_stand(state))
        summary = calculate_round_outcome(state)
        assert summary.dealer_bust
        assert summary.kind == "win"
        assert summary.net == 10

    def test_surrender(self, table, stack):
        state = deal(stack(table, "10 10 6 7"))
        state = player_surrender(state)
        state = play_round(state)
        summary = calculate_round_outcome(state)
        assert summary.base_payout == 5
        assert summary.net == -5
        assert summary.kind == "lose"

    def test_bust(self, table, stack):
        state = deal(stack(table, "10 7 6 10 9"))
        state = player_hit(state)
        state = play_round(state)
        assert state.seats[0].hands[0].outcome is HandOutcome.BUST
        assert calculate_round_outcome(state).net == -10

    def test_declined_insurance_push(self, table, stack):
        state = deal(stack(table, "10 A 7 6"))
        state = skip_insurance(state)
        state = play_round(player_stand(state))
        # The dealer stands on soft 17.
        summary = calculate_round_outcome(state)
        assert summary.dealer_total == 17
        assert summary.total_insurance == 0
        assert summary.kind == "push"
