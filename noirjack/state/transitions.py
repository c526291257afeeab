"""
State transition functions for the noirjack engine.

This module provides pure functions for transitioning between game states,
without modifying the original state objects.

Every operation returns either a new `GameState` or, when the call is not
legal right now (wrong phase, unknown seat or hand, a rule forbids it, the
bankroll is short), the very same state object it was given. Illegal calls
never raise: a stale button press from a UI must not break the session. The
one exception is `ShoeEmptyError`, which means the table is misconfigured and
propagates unchanged.

Events are collected while a transition is built and published only once it
has been applied, so a transition that fails halfway publishes nothing.
"""

import logging
import math
import secrets
import time
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from noirjack.common.card import Card, Rank
from noirjack.common.shoe import (
    RandomBytes,
    ShoeState,
    create_shoe,
    discard_cards,
    draw_card,
    reshuffle_shoe,
)
from noirjack.blackjack.action import Action
from noirjack.blackjack.constants import (
    INSURANCE_PAYOUT_MULTIPLE,
    MESSAGE_LOG_LIMIT,
    SEAT_COUNT,
    STARTING_BANKROLL,
)
from noirjack.blackjack.hand import best_total, is_blackjack, is_bust
from noirjack.blackjack import predicates
from noirjack.blackjack.rules import RuleConfig
from noirjack.state.models import (
    DealerState,
    GameState,
    HandOutcome,
    HandState,
    Phase,
    SeatState,
)
from noirjack.events import EventBus, EngineEventType

logger = logging.getLogger("noirjack.engine")

Event = Tuple[EngineEventType, Dict[str, Any]]


def _reject(state: GameState, operation: str, reason: str) -> GameState:
    logger.debug("Ignoring %s: %s", operation, reason)
    return state


def _publish(state: GameState, events: Iterable[Event]) -> None:
    event_bus = EventBus.get_instance()
    for event_type, data in events:
        event_bus.emit(
            event_type, {"game_id": state.id, "timestamp": time.time(), **data}
        )


def _append_log(log: Tuple[str, ...], messages: Iterable[str]) -> Tuple[str, ...]:
    return (log + tuple(messages))[-MESSAGE_LOG_LIMIT:]


def _seat_label(seat_index: int) -> str:
    return f"Seat {seat_index + 1}"


def _money(amount: float) -> str:
    return f"{amount:.2f}"


def _get_seat(state: GameState, seat_index: int) -> Optional[SeatState]:
    if not isinstance(seat_index, int) or not 0 <= seat_index < len(state.seats):
        return None
    return state.seats[seat_index]


def _with_seat(state: GameState, seat: SeatState) -> GameState:
    seats = state.seats[: seat.index] + (seat,) + state.seats[seat.index + 1 :]
    return replace(state, seats=seats)


def _with_hand(state: GameState, hand: HandState) -> GameState:
    seat = state.seats[hand.seat_index]
    position = seat.hand_position(hand.id)
    hands = seat.hands[:position] + (hand,) + seat.hands[position + 1 :]
    return _with_seat(state, replace(seat, hands=hands))


def _is_peek_card(card: Optional[Card]) -> bool:
    return card is not None and (card.rank is Rank.ACE or card.rank.is_ten_value)


def _advance_to_next_hand(state: GameState) -> GameState:
    """
    Move the cursor to the next hand waiting for a decision.

    Hands are visited in seat-then-hand order. When none is left the dealer
    plays.
    """
    for seat in state.seats:
        for hand in seat.hands:
            if not hand.is_resolved:
                return replace(
                    state,
                    phase=Phase.PLAYER_ACTIONS,
                    active_seat_index=seat.index,
                    active_hand_id=hand.id,
                )
    return replace(
        state,
        phase=Phase.DEALER_PLAY,
        active_seat_index=None,
        active_hand_id=None,
    )


def _peek_and_advance(
    state: GameState, events: List[Event], messages: List[str]
) -> GameState:
    """
    Check the hole card if the rules call for it, then start player decisions.

    A dealer blackjack found by the peek ends the round: every hand is
    resolved and the table goes straight to settlement.
    """
    dealer = state.dealer
    if (
        state.rules.dealer_peek_on_ten_or_ace
        and _is_peek_card(dealer.upcard)
        and not dealer.has_peeked
    ):
        has_blackjack = is_blackjack(dealer.hand.cards)
        dealer = replace(
            dealer,
            has_peeked=True,
            hand=replace(dealer.hand, is_blackjack=has_blackjack),
        )
        state = replace(state, dealer=dealer)
        events.append((EngineEventType.DEALER_PEEK, {"dealer_blackjack": has_blackjack}))

        if has_blackjack:
            messages.append("Dealer has blackjack")
            seats = tuple(
                replace(
                    seat,
                    hands=tuple(replace(h, is_resolved=True) for h in seat.hands),
                )
                for seat in state.seats
            )
            return replace(
                state,
                seats=seats,
                phase=Phase.SETTLEMENT,
                active_seat_index=None,
                active_hand_id=None,
            )
        messages.append("Dealer peeks and has no blackjack")

    state = _advance_to_next_hand(state)
    if state.phase is Phase.DEALER_PLAY:
        messages.append("No hands left to play")
    return state


def _after_player_card(
    hand: HandState, events: List[Event], messages: List[str]
) -> HandState:
    """Resolve a hand that has just busted."""
    if not hand.is_bust:
        return hand
    messages.append(f"{_seat_label(hand.seat_index)} busts with {hand.totals.hard}")
    events.append(
        (
            EngineEventType.HAND_BUSTED,
            {
                "seat_index": hand.seat_index,
                "hand_id": hand.id,
                "total": hand.totals.hard,
            },
        )
    )
    return replace(hand, is_resolved=True, outcome=HandOutcome.BUST)


def _card_event(
    card: Optional[Card], seat_index: int, hand_id: str, face_down: bool = False
) -> Event:
    return (
        EngineEventType.CARD_DEALT,
        {
            "seat_index": seat_index,
            "hand_id": hand_id,
            "card": None if face_down else card.short,
            "face_down": face_down,
        },
    )


def _action_event(hand: HandState, action: Action, card: Optional[Card] = None) -> Event:
    return (
        EngineEventType.PLAYER_ACTION,
        {
            "seat_index": hand.seat_index,
            "hand_id": hand.id,
            "action": action.value,
            "card": card.short if card else None,
        },
    )


def _bankroll_event(state: GameState, delta: float) -> Event:
    return (
        EngineEventType.BANKROLL_UPDATED,
        {"bankroll": state.bankroll, "delta": delta},
    )


class StateTransitionEngine:
    """
    Pure functions for state transitions.

    This class contains static methods that implement game state transitions.
    Each method takes a state and returns a new state, without modifying the
    original.
    """

    @staticmethod
    def init_game(
        rule_overrides: Optional[Mapping[str, Any]] = None,
        *,
        bankroll: float = STARTING_BANKROLL,
        seat_count: int = SEAT_COUNT,
        random_bytes: Optional[RandomBytes] = None,
    ) -> GameState:
        """
        Create a table session.

        Args:
            rule_overrides: Rules to change from the defaults (see `RuleConfig.from_overrides`)
            bankroll: Starting bankroll
            seat_count: Number of seats at the table
            random_bytes: CSPRNG byte source for every shuffle of this session

        Returns:
            A table in the betting phase with a freshly shuffled shoe

        Raises:
            ValueError: If the rules, bankroll or seat count are invalid
        """
        rules = RuleConfig.from_overrides(rule_overrides)
        if seat_count < 1:
            raise ValueError("A table needs at least one seat")
        if bankroll < 0:
            raise ValueError("Bankroll must be non-negative")

        source = random_bytes or secrets.token_bytes
        shoe = create_shoe(rules.num_decks, rules.penetration, source)
        state = GameState(
            seats=tuple(SeatState(index=i) for i in range(seat_count)),
            shoe=shoe,
            bankroll=bankroll,
            rules=rules,
            random_bytes=source,
            message_log=(f"New {rules.num_decks}-deck shoe ({rules.table_ref})",),
        )

        logger.debug("Created table %s with %d seats", state.id, seat_count)
        _publish(
            state,
            [
                (
                    EngineEventType.GAME_CREATED,
                    {
                        "rules": rules.to_dict(),
                        "seat_count": seat_count,
                        "bankroll": bankroll,
                    },
                ),
                (
                    EngineEventType.SHUFFLE,
                    {"num_decks": rules.num_decks, "cards": shoe.cards_remaining},
                ),
            ],
        )
        return state

    @staticmethod
    def sit(state: GameState, seat_index: int) -> GameState:
        """Occupy an empty seat."""
        if state.phase is not Phase.BETTING:
            return _reject(state, "sit", f"phase is {state.phase.value}")
        seat = _get_seat(state, seat_index)
        if seat is None or seat.occupied:
            return _reject(state, "sit", f"seat {seat_index} is not available")

        new_state = _with_seat(state, replace(seat, occupied=True))
        new_state = replace(
            new_state,
            message_log=_append_log(
                state.message_log, [f"{_seat_label(seat_index)} joins the table"]
            ),
        )
        logger.debug("Seat %d taken", seat_index)
        _publish(new_state, [(EngineEventType.SEAT_TAKEN, {"seat_index": seat_index})])
        return new_state

    @staticmethod
    def leave(state: GameState, seat_index: int) -> GameState:
        """Free a seat, clearing its bet."""
        if state.phase is not Phase.BETTING:
            return _reject(state, "leave", f"phase is {state.phase.value}")
        seat = _get_seat(state, seat_index)
        if seat is None or not seat.occupied:
            return _reject(state, "leave", f"seat {seat_index} is not occupied")

        new_state = _with_seat(state, SeatState(index=seat.index))
        new_state = replace(
            new_state,
            message_log=_append_log(
                state.message_log, [f"{_seat_label(seat_index)} leaves the table"]
            ),
        )
        logger.debug("Seat %d left", seat_index)
        _publish(new_state, [(EngineEventType.SEAT_LEFT, {"seat_index": seat_index})])
        return new_state

    @staticmethod
    def set_bet(state: GameState, seat_index: int, amount: float) -> GameState:
        """
        Set the wager an occupied seat plays the next round for.

        The amount is clamped to the table limits and floored to whole units;
        zero or less clears the bet. Chips only leave the bankroll on `deal`.
        """
        if state.phase is not Phase.BETTING:
            return _reject(state, "set_bet", f"phase is {state.phase.value}")
        seat = _get_seat(state, seat_index)
        if seat is None or not seat.occupied:
            return _reject(state, "set_bet", f"seat {seat_index} is not occupied")
        if not math.isfinite(amount):
            return _reject(state, "set_bet", f"amount {amount} is not finite")

        bet = state.rules.clamp_bet(amount)
        if bet == seat.base_bet:
            return state

        new_state = _with_seat(state, replace(seat, base_bet=bet))
        message = (
            f"{_seat_label(seat_index)} bets {bet}"
            if bet
            else f"{_seat_label(seat_index)} clears the bet"
        )
        new_state = replace(
            new_state, message_log=_append_log(state.message_log, [message])
        )
        logger.debug("Seat %d bet set to %d", seat_index, bet)
        _publish(
            new_state,
            [(EngineEventType.BET_PLACED, {"seat_index": seat_index, "amount": bet})],
        )
        return new_state

    @staticmethod
    def deal(state: GameState) -> GameState:
        """
        Start a round.

        Reshuffles first if the cut card was reached, takes every seat's bet
        from the bankroll and deals two cards to each betting seat and to the
        dealer.

        Raises:
            ShoeEmptyError: If the shoe runs out while dealing
        """
        if state.phase is not Phase.BETTING:
            return _reject(state, "deal", f"phase is {state.phase.value}")
        rules = state.rules
        betting = [
            seat
            for seat in state.seats
            if seat.occupied and seat.base_bet > 0 and seat.base_bet >= rules.min_bet
        ]
        if not betting:
            return _reject(state, "deal", "no seat has a bet")
        total_bet = sum(seat.base_bet for seat in betting)
        if total_bet > state.bankroll:
            return _reject(
                state, "deal", f"bets of {total_bet} exceed bankroll {state.bankroll}"
            )

        events: List[Event] = [
            (
                EngineEventType.ROUND_STARTED,
                {
                    "round": state.round_count + 1,
                    "seats": [seat.index for seat in betting],
                    "total_bet": total_bet,
                },
            )
        ]
        messages: List[str] = []

        shoe: ShoeState = state.shoe
        if state.pending_reshuffle or shoe.needs_reshuffle:
            shoe = reshuffle_shoe(shoe, state.random_bytes)
            messages.append("Shoe reshuffled")
            events.append(
                (
                    EngineEventType.SHUFFLE,
                    {"num_decks": shoe.num_decks, "cards": shoe.cards_remaining},
                )
            )

        sequence = state.hand_sequence
        hands: Dict[int, HandState] = {}
        for seat in betting:
            sequence += 1
            hands[seat.index] = HandState(
                id=f"hand-{seat.index}-{sequence}",
                seat_index=seat.index,
                bet=float(seat.base_bet),
            )

        # One card each, dealer up-card, second card each, dealer hole card.
        for seat in betting:
            card, shoe = draw_card(shoe)
            hand = hands[seat.index]
            hands[seat.index] = replace(hand, cards=hand.cards + (card,))
            events.append(_card_event(card, seat.index, hand.id))
        upcard, shoe = draw_card(shoe)
        events.append(_card_event(upcard, -1, "dealer"))
        for seat in betting:
            card, shoe = draw_card(shoe)
            hand = hands[seat.index]
            cards = hand.cards + (card,)
            natural = is_blackjack(cards)
            hands[seat.index] = replace(
                hand, cards=cards, is_blackjack=natural, is_resolved=natural
            )
            events.append(_card_event(card, seat.index, hand.id))
        hole_card, shoe = draw_card(shoe)
        events.append(_card_event(hole_card, -1, "dealer", face_down=True))

        for hand in hands.values():
            cards = " ".join(card.short for card in hand.cards)
            suffix = " (blackjack)" if hand.is_blackjack else ""
            messages.append(f"{_seat_label(hand.seat_index)} dealt {cards}{suffix}")
        messages.append(f"Dealer shows {upcard.short}")

        dealer_cards = (upcard, hole_card)
        dealer = DealerState(
            hand=HandState(
                id="dealer",
                seat_index=-1,
                cards=dealer_cards,
                is_blackjack=is_blackjack(dealer_cards),
            ),
            upcard=upcard,
            hole_card=hole_card,
        )
        seats = tuple(
            replace(seat, hands=(hands[seat.index],) if seat.index in hands else ())
            for seat in state.seats
        )
        new_state = replace(
            state,
            seats=seats,
            dealer=dealer,
            shoe=shoe,
            bankroll=state.bankroll - total_bet,
            hand_sequence=sequence,
            pending_reshuffle=False,
            round_settled=False,
            active_seat_index=None,
            active_hand_id=None,
        )
        events.append(_bankroll_event(new_state, -total_bet))

        if rules.allow_insurance and upcard.rank is Rank.ACE:
            new_state = replace(new_state, phase=Phase.INSURANCE)
            messages.append("Insurance offered")
            events.append(
                (
                    EngineEventType.INSURANCE_OFFERED,
                    {"hand_ids": [hand.id for hand in new_state.iter_hands()]},
                )
            )
        else:
            new_state = _peek_and_advance(new_state, events, messages)

        new_state = replace(
            new_state, message_log=_append_log(state.message_log, messages)
        )
        logger.debug(
            "Dealt round %d: %d seats, %d wagered, phase %s",
            state.round_count + 1,
            len(betting),
            total_bet,
            new_state.phase.value,
        )
        _publish(new_state, events)
        return new_state

    @staticmethod
    def _insurance_target(
        state: GameState, seat_index: int, hand_id: str, operation: str
    ) -> Optional[HandState]:
        if state.phase is not Phase.INSURANCE:
            logger.debug("Ignoring %s: phase is %s", operation, state.phase.value)
            return None
        seat = _get_seat(state, seat_index)
        hand = seat.get_hand(hand_id) if seat is not None else None
        if hand is None:
            logger.debug("Ignoring %s: no hand %s at seat %s", operation, hand_id, seat_index)
            return None
        if hand.insurance_bet is not None:
            logger.debug("Ignoring %s: %s already decided", operation, hand_id)
            return None
        return hand

    @staticmethod
    def _finish_insurance_decision(
        state: GameState, events: List[Event], messages: List[str]
    ) -> GameState:
        if any(hand.insurance_bet is None for hand in state.iter_hands()):
            return state
        return _peek_and_advance(state, events, messages)

    @staticmethod
    def take_insurance(
        state: GameState, seat_index: int, hand_id: str, amount: float
    ) -> GameState:
        """
        Insure one hand against a dealer blackjack.

        The wager is capped at half the hand's bet and at the bankroll. An
        amount that ends up zero or less declines insurance for the hand.
        """
        hand = StateTransitionEngine._insurance_target(
            state, seat_index, hand_id, "take_insurance"
        )
        if hand is None:
            return state
        if not math.isfinite(amount):
            return _reject(state, "take_insurance", f"amount {amount} is not finite")

        wager = min(amount, hand.bet / 2, state.bankroll)
        if wager <= 0:
            return StateTransitionEngine.decline_insurance(state, seat_index, hand_id)
        if not predicates.allowed_actions(state, hand).insurance:
            return _reject(state, "take_insurance", "insurance not available")

        events: List[Event] = []
        messages = [f"{_seat_label(seat_index)} insures for {_money(wager)}"]
        new_state = _with_hand(state, replace(hand, insurance_bet=float(wager)))
        new_state = replace(new_state, bankroll=state.bankroll - wager)
        events.append(
            (
                EngineEventType.INSURANCE_DECISION,
                {
                    "seat_index": seat_index,
                    "hand_id": hand_id,
                    "taken": True,
                    "amount": wager,
                },
            )
        )
        events.append(_bankroll_event(new_state, -wager))
        new_state = StateTransitionEngine._finish_insurance_decision(
            new_state, events, messages
        )
        new_state = replace(
            new_state, message_log=_append_log(state.message_log, messages)
        )
        logger.debug("Insurance %s on %s", _money(wager), hand_id)
        _publish(new_state, events)
        return new_state

    @staticmethod
    def decline_insurance(state: GameState, seat_index: int, hand_id: str) -> GameState:
        """Decline insurance for one hand."""
        hand = StateTransitionEngine._insurance_target(
            state, seat_index, hand_id, "decline_insurance"
        )
        if hand is None:
            return state

        events: List[Event] = [
            (
                EngineEventType.INSURANCE_DECISION,
                {"seat_index": seat_index, "hand_id": hand_id, "taken": False, "amount": 0.0},
            )
        ]
        messages = [f"{_seat_label(seat_index)} declines insurance"]
        new_state = _with_hand(state, replace(hand, insurance_bet=0.0))
        new_state = StateTransitionEngine._finish_insurance_decision(
            new_state, events, messages
        )
        new_state = replace(
            new_state, message_log=_append_log(state.message_log, messages)
        )
        logger.debug("Insurance declined on %s", hand_id)
        _publish(new_state, events)
        return new_state

    @staticmethod
    def skip_insurance(state: GameState) -> GameState:
        """Decline insurance for every hand still undecided and carry on."""
        if state.phase is not Phase.INSURANCE:
            return _reject(state, "skip_insurance", f"phase is {state.phase.value}")

        events: List[Event] = []
        new_state = state
        for hand in state.iter_hands():
            if hand.insurance_bet is None:
                new_state = _with_hand(new_state, replace(hand, insurance_bet=0.0))
                events.append(
                    (
                        EngineEventType.INSURANCE_DECISION,
                        {
                            "seat_index": hand.seat_index,
                            "hand_id": hand.id,
                            "taken": False,
                            "amount": 0.0,
                        },
                    )
                )
        messages = ["Insurance closed"]
        new_state = _peek_and_advance(new_state, events, messages)
        new_state = replace(
            new_state, message_log=_append_log(state.message_log, messages)
        )
        logger.debug("Insurance skipped, phase %s", new_state.phase.value)
        _publish(new_state, events)
        return new_state

    @staticmethod
    def _active_hand(state: GameState, action: Action) -> Optional[HandState]:
        if state.phase is not Phase.PLAYER_ACTIONS:
            logger.debug("Ignoring %s: phase is %s", action.value, state.phase.value)
            return None
        hand = state.active_hand
        if hand is None:
            logger.debug("Ignoring %s: no active hand", action.value)
            return None
        if not predicates.allowed_actions(state, hand).allows(action):
            logger.debug("Ignoring %s: not allowed on %s", action.value, hand.id)
            return None
        return hand

    @staticmethod
    def _finish_player_action(
        state: GameState,
        new_state: GameState,
        events: List[Event],
        messages: List[str],
        advance: bool,
    ) -> GameState:
        if advance:
            new_state = _advance_to_next_hand(new_state)
            if new_state.phase is Phase.DEALER_PLAY:
                messages.append("Dealer's turn")
        new_state = replace(
            new_state, message_log=_append_log(state.message_log, messages)
        )
        _publish(new_state, events)
        return new_state

    @staticmethod
    def player_hit(state: GameState) -> GameState:
        """Draw a card to the active hand."""
        hand = StateTransitionEngine._active_hand(state, Action.HIT)
        if hand is None:
            return state

        card, shoe = draw_card(state.shoe)
        events: List[Event] = [
            _action_event(hand, Action.HIT, card),
            _card_event(card, hand.seat_index, hand.id),
        ]
        messages = [f"{_seat_label(hand.seat_index)} hits {card.short}"]
        hit_hand = _after_player_card(
            replace(hand, cards=hand.cards + (card,)), events, messages
        )
        new_state = replace(_with_hand(state, hit_hand), shoe=shoe)
        logger.debug("Hit %s: %s", hand.id, card.short)
        return StateTransitionEngine._finish_player_action(
            state, new_state, events, messages, hit_hand.is_resolved
        )

    @staticmethod
    def player_stand(state: GameState) -> GameState:
        """Finish the active hand."""
        hand = StateTransitionEngine._active_hand(state, Action.STAND)
        if hand is None:
            return state

        events: List[Event] = [_action_event(hand, Action.STAND)]
        messages = [f"{_seat_label(hand.seat_index)} stands on {hand.best_total}"]
        new_state = _with_hand(state, replace(hand, is_resolved=True))
        logger.debug("Stand %s on %d", hand.id, hand.best_total)
        return StateTransitionEngine._finish_player_action(
            state, new_state, events, messages, True
        )

    @staticmethod
    def player_double(state: GameState) -> GameState:
        """Double the active hand's bet, draw exactly one card and finish it."""
        hand = StateTransitionEngine._active_hand(state, Action.DOUBLE)
        if hand is None:
            return state

        card, shoe = draw_card(state.shoe)
        stake = hand.bet
        events: List[Event] = [
            _action_event(hand, Action.DOUBLE, card),
            _card_event(card, hand.seat_index, hand.id),
        ]
        messages = [f"{_seat_label(hand.seat_index)} doubles and draws {card.short}"]
        doubled = replace(
            hand,
            cards=hand.cards + (card,),
            bet=hand.bet * 2,
            is_doubled=True,
        )
        doubled = replace(
            _after_player_card(doubled, events, messages), is_resolved=True
        )
        new_state = replace(
            _with_hand(state, doubled), shoe=shoe, bankroll=state.bankroll - stake
        )
        events.append(_bankroll_event(new_state, -stake))
        logger.debug("Double %s: %s", hand.id, card.short)
        return StateTransitionEngine._finish_player_action(
            state, new_state, events, messages, True
        )

    @staticmethod
    def player_split(state: GameState) -> GameState:
        """
        Split the active pair into two hands.

        The new hands take the original's place in the seat, each with one of
        the pair and a fresh card, and the cursor moves to the first of them.
        Split Aces are finished after their one card unless the rules allow
        hitting them.
        """
        hand = StateTransitionEngine._active_hand(state, Action.SPLIT)
        if hand is None:
            return state

        rules = state.rules
        seat = state.seats[hand.seat_index]
        first_card, second_card = hand.cards
        aces = first_card.rank is Rank.ACE
        stake = hand.bet

        events: List[Event] = [_action_event(hand, Action.SPLIT)]
        messages = [f"{_seat_label(seat.index)} splits {first_card.rank.rank_str}s"]

        shoe = state.shoe
        sequence = state.hand_sequence
        new_hands: List[HandState] = []
        for pair_card in (first_card, second_card):
            sequence += 1
            card, shoe = draw_card(shoe)
            split_hand = HandState(
                id=f"hand-{seat.index}-{sequence}",
                seat_index=seat.index,
                cards=(pair_card, card),
                bet=stake,
                insurance_bet=None,
                is_split=True,
                is_split_ace=aces,
                is_resolved=aces and not rules.hit_on_split_aces,
            )
            events.append(_card_event(card, seat.index, split_hand.id))
            if aces and not rules.hit_on_split_aces:
                messages.append(f"{_seat_label(seat.index)} split ace gets {card.short}")
            new_hands.append(_after_player_card(split_hand, events, messages))

        # An insurance wager stays with the first hand; the second has none.
        if hand.insurance_bet is not None:
            new_hands[0] = replace(new_hands[0], insurance_bet=hand.insurance_bet)
            new_hands[1] = replace(new_hands[1], insurance_bet=0.0)

        position = seat.hand_position(hand.id)
        hands = seat.hands[:position] + tuple(new_hands) + seat.hands[position + 1 :]
        new_state = _with_seat(state, replace(seat, hands=hands))
        new_state = replace(
            new_state,
            shoe=shoe,
            bankroll=state.bankroll - stake,
            hand_sequence=sequence,
            active_seat_index=seat.index,
            active_hand_id=new_hands[0].id,
        )
        events.append(
            (
                EngineEventType.HAND_SPLIT,
                {
                    "seat_index": seat.index,
                    "hand_id": hand.id,
                    "new_hand_ids": [h.id for h in new_hands],
                },
            )
        )
        events.append(_bankroll_event(new_state, -stake))
        logger.debug("Split %s into %s", hand.id, [h.id for h in new_hands])
        return StateTransitionEngine._finish_player_action(
            state, new_state, events, messages, new_hands[0].is_resolved
        )

    @staticmethod
    def player_surrender(state: GameState) -> GameState:
        """Give up the active hand and take back half its bet."""
        hand = StateTransitionEngine._active_hand(state, Action.SURRENDER)
        if hand is None:
            return state

        refund = hand.bet / 2
        events: List[Event] = [_action_event(hand, Action.SURRENDER)]
        messages = [
            f"{_seat_label(hand.seat_index)} surrenders and receives {_money(refund)}"
        ]
        surrendered = replace(
            hand,
            is_surrendered=True,
            is_resolved=True,
            outcome=HandOutcome.SURRENDER,
            payout=refund,
        )
        new_state = replace(
            _with_hand(state, surrendered), bankroll=state.bankroll + refund
        )
        events.append(_bankroll_event(new_state, refund))
        logger.debug("Surrender %s, refund %s", hand.id, _money(refund))
        return StateTransitionEngine._finish_player_action(
            state, new_state, events, messages, True
        )

    @staticmethod
    def play_dealer_step(state: GameState) -> GameState:
        """
        Play one step of the dealer's hand.

        Draws one card if the dealer must hit; otherwise the dealer stands and
        the round moves to settlement.
        """
        if state.phase is not Phase.DEALER_PLAY:
            return _reject(state, "play_dealer_step", f"phase is {state.phase.value}")

        dealer = state.dealer
        cards = dealer.hand.cards
        if state.rules.should_dealer_hit(cards):
            card, shoe = draw_card(state.shoe)
            new_hand = replace(dealer.hand, cards=cards + (card,))
            new_state = replace(
                state, dealer=replace(dealer, hand=new_hand), shoe=shoe
            )
            events: List[Event] = [
                _card_event(card, -1, "dealer"),
                (
                    EngineEventType.DEALER_ACTION,
                    {"action": Action.HIT.value, "card": card.short, "total": best_total(new_hand.cards)},
                ),
            ]
            message = f"Dealer draws {card.short}"
            logger.debug("Dealer draws %s", card.short)
        else:
            total = best_total(cards)
            bust = is_bust(cards)
            new_state = replace(
                state,
                dealer=replace(dealer, hand=replace(dealer.hand, is_resolved=True)),
                phase=Phase.SETTLEMENT,
            )
            events = [
                (
                    EngineEventType.DEALER_ACTION,
                    {"action": Action.STAND.value, "card": None, "total": total, "bust": bust},
                )
            ]
            message = (
                f"Dealer busts with {total}" if bust else f"Dealer stands with {total}"
            )
            logger.debug("Dealer finishes on %d", total)

        new_state = replace(
            new_state, message_log=_append_log(state.message_log, [message])
        )
        _publish(new_state, events)
        return new_state

    @staticmethod
    def play_dealer(state: GameState) -> GameState:
        """Play the dealer's hand to completion."""
        if state.phase is not Phase.DEALER_PLAY:
            return _reject(state, "play_dealer", f"phase is {state.phase.value}")
        while state.phase is Phase.DEALER_PLAY:
            state = StateTransitionEngine.play_dealer_step(state)
        return state

    @staticmethod
    def settle_all_hands(state: GameState) -> GameState:
        """
        Pay out every hand and every insurance wager.

        Runs once per round; calling it again on a settled round changes
        nothing.
        """
        if state.phase is not Phase.SETTLEMENT:
            return _reject(state, "settle_all_hands", f"phase is {state.phase.value}")
        if state.round_settled:
            return _reject(state, "settle_all_hands", "round already settled")

        rules = state.rules
        dealer_cards = state.dealer.hand.cards
        dealer_blackjack = is_blackjack(dealer_cards)
        dealer_bust = is_bust(dealer_cards)
        dealer_total = best_total(dealer_cards)

        events: List[Event] = []
        messages: List[str] = []
        credit = 0.0
        seats = []
        for seat in state.seats:
            settled_hands = []
            for hand in seat.hands:
                settled = StateTransitionEngine._settle_hand(
                    hand, rules, dealer_blackjack, dealer_bust, dealer_total
                )
                if not hand.is_surrendered:
                    credit += settled.payout
                credit += settled.insurance_payout
                settled_hands.append(settled)
                messages.append(StateTransitionEngine._result_message(settled))
                events.append(
                    (
                        EngineEventType.HAND_RESULT,
                        {
                            "seat_index": settled.seat_index,
                            "hand_id": settled.id,
                            "outcome": settled.outcome.value,
                            "bet": settled.bet,
                            "payout": settled.payout,
                            "insurance_bet": settled.insurance_bet or 0.0,
                            "insurance_payout": settled.insurance_payout,
                        },
                    )
                )
            seats.append(replace(seat, hands=tuple(settled_hands)))

        new_state = replace(
            state,
            seats=tuple(seats),
            bankroll=state.bankroll + credit,
            round_count=state.round_count + 1,
            round_settled=True,
            active_seat_index=None,
            active_hand_id=None,
        )
        events.append(_bankroll_event(new_state, credit))
        events.append(
            (
                EngineEventType.ROUND_ENDED,
                {
                    "round": new_state.round_count,
                    "dealer_total": dealer_total,
                    "dealer_bust": dealer_bust,
                    "dealer_blackjack": dealer_blackjack,
                    "bankroll": new_state.bankroll,
                },
            )
        )
        new_state = replace(
            new_state, message_log=_append_log(state.message_log, messages)
        )
        logger.debug(
            "Settled round %d: credited %s, bankroll %s",
            new_state.round_count,
            _money(credit),
            _money(new_state.bankroll),
        )
        _publish(new_state, events)
        return new_state

    @staticmethod
    def _settle_hand(
        hand: HandState,
        rules: RuleConfig,
        dealer_blackjack: bool,
        dealer_bust: bool,
        dealer_total: int,
    ) -> HandState:
        insurance_payout = 0.0
        if dealer_blackjack and hand.insurance_bet:
            insurance_payout = hand.insurance_bet * INSURANCE_PAYOUT_MULTIPLE
        hand = replace(hand, is_resolved=True, insurance_payout=insurance_payout)

        # Surrender and bust were settled when they happened.
        if hand.outcome.is_terminal:
            return hand

        if hand.is_blackjack and not dealer_blackjack:
            return replace(
                hand,
                outcome=HandOutcome.BLACKJACK,
                payout=hand.bet * (1 + rules.blackjack_multiplier),
            )
        if dealer_blackjack:
            if hand.is_blackjack:
                return replace(hand, outcome=HandOutcome.PUSH, payout=hand.bet)
            return replace(hand, outcome=HandOutcome.LOSE, payout=0.0)
        if dealer_bust:
            return replace(hand, outcome=HandOutcome.WIN, payout=hand.bet * 2)

        player_total = hand.best_total
        if player_total > dealer_total:
            return replace(hand, outcome=HandOutcome.WIN, payout=hand.bet * 2)
        if player_total == dealer_total:
            return replace(hand, outcome=HandOutcome.PUSH, payout=hand.bet)
        return replace(hand, outcome=HandOutcome.LOSE, payout=0.0)

    @staticmethod
    def _result_message(hand: HandState) -> str:
        seat = _seat_label(hand.seat_index)
        match hand.outcome:
            case HandOutcome.BLACKJACK:
                text = f"{seat} blackjack wins {_money(hand.payout - hand.bet)}"
            case HandOutcome.WIN:
                text = f"{seat} wins {_money(hand.payout - hand.bet)}"
            case HandOutcome.PUSH:
                text = f"{seat} pushes"
            case HandOutcome.LOSE:
                text = f"{seat} loses"
            case HandOutcome.BUST:
                text = f"{seat} busts and loses"
            case HandOutcome.SURRENDER:
                text = f"{seat} surrendered"
            case HandOutcome.PENDING:
                text = f"{seat} unsettled"
        if hand.insurance_payout:
            text += f", insurance pays {_money(hand.insurance_payout)}"
        return text

    @staticmethod
    def prepare_next_round(state: GameState) -> GameState:
        """
        Clear the table for the next round.

        All cards go to the discard pile. If the cut card has been reached the
        shoe is flagged for a reshuffle, which happens on the next `deal`.
        Seats keep their bets.
        """
        if state.phase is not Phase.SETTLEMENT:
            return _reject(state, "prepare_next_round", f"phase is {state.phase.value}")
        if not state.round_settled:
            return _reject(state, "prepare_next_round", "round not settled yet")

        used: List[Card] = []
        for hand in state.iter_hands():
            used.extend(hand.cards)
        used.extend(state.dealer.hand.cards)
        shoe = discard_cards(state.shoe, used)

        messages: List[str] = []
        pending_reshuffle = shoe.needs_reshuffle
        if pending_reshuffle:
            messages.append("Cut card reached, shoe will be reshuffled")

        new_state = replace(
            state,
            phase=Phase.BETTING,
            seats=tuple(replace(seat, hands=()) for seat in state.seats),
            dealer=DealerState(),
            shoe=shoe,
            active_seat_index=None,
            active_hand_id=None,
            pending_reshuffle=pending_reshuffle,
            round_settled=False,
            message_log=_append_log(state.message_log, messages),
        )
        logger.debug(
            "Prepared round %d, %d cards left in shoe",
            state.round_count + 1,
            shoe.cards_remaining,
        )
        return new_state


init_game = StateTransitionEngine.init_game
sit = StateTransitionEngine.sit
leave = StateTransitionEngine.leave
set_bet = StateTransitionEngine.set_bet
deal = StateTransitionEngine.deal
take_insurance = StateTransitionEngine.take_insurance
decline_insurance = StateTransitionEngine.decline_insurance
skip_insurance = StateTransitionEngine.skip_insurance
player_hit = StateTransitionEngine.player_hit
player_stand = StateTransitionEngine.player_stand
player_double = StateTransitionEngine.player_double
player_split = StateTransitionEngine.player_split
player_surrender = StateTransitionEngine.player_surrender
play_dealer_step = StateTransitionEngine.play_dealer_step
play_dealer = StateTransitionEngine.play_dealer
settle_all_hands = StateTransitionEngine.settle_all_hands
prepare_next_round = StateTransitionEngine.prepare_next_round
