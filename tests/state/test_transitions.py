"""
Tests for table setup, betting, dealing, insurance and the dealer peek.
"""

from dataclasses import replace

import pytest

from noirjack.common.card import Rank
from noirjack.blackjack.constants import MESSAGE_LOG_LIMIT
from noirjack.state import HandOutcome, Phase
from noirjack.state.transitions import (
    decline_insurance,
    deal,
    init_game,
    leave,
    player_stand,
    play_dealer,
    prepare_next_round,
    set_bet,
    settle_all_hands,
    sit,
    skip_insurance,
    take_insurance,
)


def event_names(events):
    return [name for name, _ in events]


class TestInitGame:
    def test_new_table(self, random_bytes, events):
        state = init_game(random_bytes=random_bytes)
        assert state.phase is Phase.BETTING
        assert len(state.seats) == 5
        assert not any(seat.occupied for seat in state.seats)
        assert state.bankroll == 100
        assert state.shoe.cards_remaining == 312
        assert state.message_log[0].startswith("New 6-deck shoe")
        assert event_names(events) == ["GAME_CREATED", "SHUFFLE"]
        assert events[0][1]["game_id"] == state.id
        assert "timestamp" in events[0][1]

    def test_overrides(self, random_bytes):
        state = init_game(
            {"numberOfDecks": 2, "minBet": 5},
            bankroll=250,
            seat_count=3,
            random_bytes=random_bytes,
        )
        assert state.rules.num_decks == 2
        assert state.shoe.cards_remaining == 104
        assert state.bankroll == 250
        assert len(state.seats) == 3

    @pytest.mark.parametrize(
        "kwargs",
        [{"seat_count": 0}, {"bankroll": -1}, {"rule_overrides": {"bogus": 1}}],
    )
    def test_invalid(self, random_bytes, kwargs):
        with pytest.raises(ValueError):
            init_game(random_bytes=random_bytes, **kwargs)


class TestBetting:
    def test_sit_and_leave(self, random_bytes, events):
        state = init_game(random_bytes=random_bytes)
        events.clear()
        state = sit(state, 2)
        assert state.seats[2].occupied
        state = set_bet(state, 2, 15)
        state = leave(state, 2)
        assert not state.seats[2].occupied
        assert state.seats[2].base_bet == 0
        assert event_names(events) == ["SEAT_TAKEN", "BET_PLACED", "SEAT_LEFT"]

    def test_illegal_calls_return_same_state(self, table, events):
        events.clear()
        assert sit(table, 0) is table
        assert sit(table, 9) is table
        assert leave(table, 3) is table
        assert set_bet(table, 4, 10) is table
        assert set_bet(table, 0, 10) is table
        assert player_stand(table) is table
        assert skip_insurance(table) is table
        assert settle_all_hands(table) is table
        assert events == []

    def test_bet_is_clamped(self, random_bytes):
        state = init_game({"minBet": 5, "maxBet": 50}, random_bytes=random_bytes)
        state = sit(state, 0)
        assert set_bet(state, 0, 2).seats[0].base_bet == 5
        assert set_bet(state, 0, 75).seats[0].base_bet == 50
        assert set_bet(state, 0, 12.9).seats[0].base_bet == 12

    def test_fractional_minimum_rounds_up(self, random_bytes):
        state = sit(init_game({"minBet": 2.5}, random_bytes=random_bytes), 0)
        state = set_bet(state, 0, 2.5)
        assert state.seats[0].base_bet == 3
        assert deal(state).phase is not Phase.BETTING

    @pytest.mark.parametrize("amount", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_bet_is_ignored(self, table, events, amount):
        assert set_bet(table, 0, amount) is table
        assert events == []

    def test_bet_does_not_touch_bankroll(self, table):
        assert table.bankroll == 100
        assert table.seats[0].base_bet == 10

    def test_clear_bet(self, table):
        assert set_bet(table, 0, 0).seats[0].base_bet == 0

    def test_no_betting_during_round(self, table, stack):
        state = deal(stack(table, "10 9 7 8"))
        assert sit(state, 1) is state
        assert set_bet(state, 0, 20) is state
        assert leave(state, 0) is state


class TestDeal:
    def test_deal_order_single_seat(self, table, stack, events):
        events.clear()
        state = deal(stack(table, "2 3 4 5"))
        hand = state.seats[0].hands[0]
        assert [c.rank for c in hand.cards] == [Rank.TWO, Rank.FOUR]
        assert state.dealer.upcard.rank is Rank.THREE
        assert state.dealer.hole_card.rank is Rank.FIVE
        assert hand.id == "hand-0-1"
        assert hand.bet == 10
        assert state.bankroll == 90
        assert state.phase is Phase.PLAYER_ACTIONS
        assert state.active_hand_id == hand.id

        assert event_names(events)[0] == "ROUND_STARTED"
        dealt = [data for name, data in events if name == "CARD_DEALT"]
        assert [d["card"] for d in dealt] == ["2♠", "3♠", "4♠", None]
        assert dealt[-1]["face_down"]
        assert "BANKROLL_UPDATED" in event_names(events)

    def test_deal_order_two_seats(self, table, stack):
        state = set_bet(sit(table, 2), 2, 10)
        state = deal(stack(state, "2 3 4 5 6 7"))
        first, second = state.seats[0].hands[0], state.seats[2].hands[0]
        assert [c.rank for c in first.cards] == [Rank.TWO, Rank.FIVE]
        assert [c.rank for c in second.cards] == [Rank.THREE, Rank.SIX]
        assert state.dealer.upcard.rank is Rank.FOUR
        assert state.dealer.hole_card.rank is Rank.SEVEN
        assert state.bankroll == 80
        assert state.active_seat_index == 0

    def test_hand_ids_keep_counting(self, table, stack):
        state = deal(stack(table, "10 9 7 8"))
        state = settle_all_hands(play_dealer(player_stand(state)))
        state = deal(stack(prepare_next_round(state), "10 9 7 8"))
        assert state.seats[0].hands[0].id == "hand-0-2"

    def test_no_bets(self, random_bytes):
        state = sit(init_game(random_bytes=random_bytes), 0)
        assert deal(state) is state

    def test_bets_exceed_bankroll(self, random_bytes):
        state = init_game(bankroll=15, random_bytes=random_bytes)
        state = set_bet(sit(state, 0), 0, 20)
        assert deal(state) is state

    def test_bet_below_minimum_after_rule_change(self, table):
        state = replace(table, rules=table.rules.with_overrides({"minBet": 25}))
        assert deal(state) is state

    def test_natural_is_resolved(self, table, stack):
        state = deal(stack(table, "A 9 K 7"))
        hand = state.seats[0].hands[0]
        assert hand.is_blackjack
        assert hand.is_resolved
        assert state.phase is Phase.DEALER_PLAY
        assert state.active_hand_id is None

    def test_reshuffles_when_flagged(self, table, events):
        state = replace(table, pending_reshuffle=True)
        events.clear()
        state = deal(state)
        assert "SHUFFLE" in event_names(events)
        assert not state.pending_reshuffle
        assert state.shoe.cards_remaining == 312 - 4
        assert "Shoe reshuffled" in state.message_log


class TestInsurance:
    def test_offered_on_ace(self, table, stack, events):
        events.clear()
        state = deal(stack(table, "10 A 7 6"))
        assert state.phase is Phase.INSURANCE
        assert state.active_hand_id is None
        assert "INSURANCE_OFFERED" in event_names(events)
        assert not state.dealer.has_peeked

    def test_not_offered_when_disabled(self, random_bytes, stack):
        state = init_game({"allowInsurance": False}, random_bytes=random_bytes)
        state = set_bet(sit(state, 0), 0, 10)
        state = deal(stack(state, "10 A 7 6"))
        assert state.phase is Phase.PLAYER_ACTIONS
        assert state.dealer.has_peeked

    def test_take_half_bet(self, table, stack):
        state = deal(stack(table, "10 A 7 6"))
        hand_id = state.seats[0].hands[0].id
        state = take_insurance(state, 0, hand_id, 50)
        hand = state.seats[0].hands[0]
        assert hand.insurance_bet == 5
        assert state.bankroll == 85
        assert state.dealer.has_peeked
        assert state.phase is Phase.PLAYER_ACTIONS

    def test_zero_amount_declines(self, table, stack):
        state = deal(stack(table, "10 A 7 6"))
        hand_id = state.seats[0].hands[0].id
        state = take_insurance(state, 0, hand_id, 0)
        assert state.seats[0].hands[0].insurance_bet == 0.0
        assert state.bankroll == 90

    def test_decline(self, table, stack, events):
        state = deal(stack(table, "10 A 7 6"))
        hand_id = state.seats[0].hands[0].id
        events.clear()
        state = decline_insurance(state, 0, hand_id)
        assert state.seats[0].hands[0].insurance_bet == 0.0
        assert event_names(events)[:2] == ["INSURANCE_DECISION", "DEALER_PEEK"]
        # Already decided.
        assert decline_insurance(state, 0, hand_id) is state

    @pytest.mark.parametrize("amount", [float("nan"), float("inf")])
    def test_non_finite_amount_is_ignored(self, table, stack, amount):
        state = deal(stack(table, "10 A 7 6"))
        hand_id = state.seats[0].hands[0].id
        assert take_insurance(state, 0, hand_id, amount) is state
        assert state.seats[0].hands[0].insurance_bet is None
        assert state.bankroll == 90
        assert state.phase is Phase.INSURANCE

    def test_unknown_hand(self, table, stack):
        state = deal(stack(table, "10 A 7 6"))
        assert take_insurance(state, 0, "hand-9-9", 5) is state
        assert take_insurance(state, 3, state.seats[0].hands[0].id, 5) is state

    def test_waits_for_every_hand(self, table, stack):
        state = set_bet(sit(table, 1), 1, 10)
        state = deal(stack(state, "10 9 A 7 8 6"))
        first = state.seats[0].hands[0].id
        second = state.seats[1].hands[0].id
        state = decline_insurance(state, 0, first)
        assert state.phase is Phase.INSURANCE
        state = take_insurance(state, 1, second, 5)
        assert state.phase is Phase.PLAYER_ACTIONS

    def test_natural_also_decides(self, table, stack):
        state = deal(stack(table, "A A K 6"))
        hand = state.seats[0].hands[0]
        assert hand.is_blackjack
        assert state.phase is Phase.INSURANCE
        state = skip_insurance(state)
        assert state.phase is Phase.DEALER_PLAY

    def test_skip_then_dealer_blackjack(self, table, stack):
        state = deal(stack(table, "10 A 7 K"))
        state = skip_insurance(state)
        assert state.phase is Phase.SETTLEMENT
        assert state.dealer.has_blackjack
        assert all(hand.is_resolved for hand in state.iter_hands())


class TestPeek:
    def test_ten_upcard_dealer_blackjack(self, table, stack, events):
        events.clear()
        state = deal(stack(table, "9 K 9 A"))
        assert state.phase is Phase.SETTLEMENT
        assert state.dealer.has_peeked
        peeks = [data for name, data in events if name == "DEALER_PEEK"]
        assert peeks[0]["dealer_blackjack"] is True
        state = settle_all_hands(state)
        assert state.seats[0].hands[0].outcome is HandOutcome.LOSE
        assert state.bankroll == 90

    def test_natural_pushes_dealer_blackjack(self, table, stack):
        state = deal(stack(table, "A K K A"))
        state = settle_all_hands(state)
        assert state.seats[0].hands[0].outcome is HandOutcome.PUSH
        assert state.bankroll == 100

    def test_no_peek_on_low_upcard(self, table, stack):
        state = deal(stack(table, "9 6 9 A"))
        assert not state.dealer.has_peeked
        assert state.phase is Phase.PLAYER_ACTIONS

    def test_peek_disabled_finds_blackjack_at_settlement(self, random_bytes, stack):
        state = init_game({"dealerPeekOnTenOrAce": False}, random_bytes=random_bytes)
        state = set_bet(sit(state, 0), 0, 10)
        state = deal(stack(state, "9 K 9 A"))
        assert state.phase is Phase.PLAYER_ACTIONS
        assert not state.dealer.has_peeked
        state = settle_all_hands(play_dealer(player_stand(state)))
        assert state.seats[0].hands[0].outcome is HandOutcome.LOSE


class TestMessageLog:
    def test_log_is_capped(self, table):
        state = table
        for amount in range(11, 11 + MESSAGE_LOG_LIMIT + 10):
            state = set_bet(state, 0, amount)
        assert len(state.message_log) == MESSAGE_LOG_LIMIT
        assert state.message_log[-1] == f"Seat 1 bets {amount}"
