"""
Tests for hand evaluation.
"""

import random

import pytest

from noirjack.blackjack.predicates import allowed_actions
from noirjack.blackjack.hand import (
    HandTotals,
    best_total,
    hand_totals,
    is_blackjack,
    is_bust,
    is_pair,
    is_soft,
)
from noirjack.state import Phase
from noirjack.state.transitions import (
    deal,
    init_game,
    play_dealer,
    player_hit,
    player_stand,
    prepare_next_round,
    set_bet,
    settle_all_hands,
    sit,
    skip_insurance,
)


class TestHandTotals:
    @pytest.mark.parametrize(
        "hand, hard, soft",
        [
            ("", 0, None),
            ("10 7", 17, None),
            ("A 6", 7, 17),
            ("A A", 2, 12),
            ("A A 9", 11, 21),
            ("A 5 10", 16, None),
            ("A A A A", 4, 14),
            ("K Q", 20, None),
            ("5 A 5", 11, 21),
            ("K Q 5", 25, None),
        ],
    )
    def test_totals(self, cards, hand, hard, soft):
        assert hand_totals(cards(hand)) == HandTotals(hard, soft)

    def test_best_total_prefers_soft(self, cards):
        assert best_total(cards("A 7")) == 18
        assert best_total(cards("A 7 9")) == 17

    def test_soft(self, cards):
        assert is_soft(cards("A 6"))
        assert not is_soft(cards("A 6 10"))
        assert not is_soft(cards("9 7"))

    def test_bust(self, cards):
        assert is_bust(cards("10 6 6"))
        assert not is_bust(cards("A A 10 9"))


class TestBlackjack:
    @pytest.mark.parametrize("hand", ["A K", "10 A", "J A", "A Q"])
    def test_two_card_twenty_one(self, cards, hand):
        assert is_blackjack(cards(hand))

    @pytest.mark.parametrize("hand", ["A 5 5", "7 7 7", "K Q", "A"])
    def test_not_blackjack(self, cards, hand):
        assert not is_blackjack(cards(hand))


class TestPairs:
    def test_equal_ranks(self, cards):
        assert is_pair(cards("8 8"))
        assert is_pair(cards("A♠ A♥"))

    def test_mixed_ten_values(self, cards):
        assert not is_pair(cards("K Q"))
        assert is_pair(cards("K Q"), equal_rank_only=False)
        assert is_pair(cards("10 J"), equal_rank_only=False)

    def test_not_a_pair(self, cards):
        assert not is_pair(cards("8 9"), equal_rank_only=False)
        assert not is_pair(cards("8 8 8"))
        assert not is_pair(cards("9 K"), equal_rank_only=False)


def test_best_total_stays_in_range():
    """Hitting every hand for as long as the table allows never passes 30."""
    state = init_game(bankroll=100000, random_bytes=random.Random(99).randbytes)
    state = set_bet(sit(state, 0), 0, 10)
    for _ in range(300):
        state = deal(state)
        assert state.phase is not Phase.BETTING
        if state.phase is Phase.INSURANCE:
            state = skip_insurance(state)
        while state.phase is Phase.PLAYER_ACTIONS:
            hand = state.active_hand
            assert 0 <= hand.best_total <= 21
            if allowed_actions(state).hit:
                state = player_hit(state)
            else:
                state = player_stand(state)
        for hand in state.iter_hands():
            assert 0 <= best_total(hand.cards) <= 30
            assert is_bust(hand.cards) == (hand_totals(hand.cards).hard > 21)
        state = prepare_next_round(settle_all_hands(play_dealer(state)))
