"""
Immutable state models for the noirjack engine.

This module provides dataclasses for representing the state of a blackjack
table in an immutable manner. These classes are designed to be used with pure
transition functions that create new state instances rather than modifying
existing ones.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple
from enum import Enum
import secrets
import uuid

from noirjack.common.card import Card
from noirjack.common.shoe import RandomBytes, ShoeState
from noirjack.blackjack.constants import STARTING_BANKROLL
from noirjack.blackjack.hand import HandTotals, best_total, hand_totals, is_bust
from noirjack.blackjack.rules import RuleConfig


class Phase(Enum):
    """
    Stages of a blackjack round.
    """

    BETTING = "betting"
    INSURANCE = "insurance"
    PLAYER_ACTIONS = "playerActions"
    DEALER_PLAY = "dealerPlay"
    SETTLEMENT = "settlement"


class HandOutcome(Enum):
    """
    Result of a hand. Moves from PENDING to one terminal value exactly once.
    """

    PENDING = "pending"
    BLACKJACK = "blackjack"
    WIN = "win"
    LOSE = "lose"
    PUSH = "push"
    BUST = "bust"
    SURRENDER = "surrender"

    @property
    def is_terminal(self) -> bool:
        return self is not HandOutcome.PENDING


@dataclass(frozen=True)
class HandState:
    """
    Immutable representation of a blackjack hand.

    Attributes:
        id: Identifier, unique within the table session
        seat_index: Seat owning the hand (-1 for the dealer)
        cards: Cards in the hand, in the order they were dealt
        bet: Current wager on this hand (doubled wagers included)
        insurance_bet: Insurance wager; None while undecided, 0.0 once declined
        is_doubled: Whether the bet has been doubled
        is_surrendered: Whether the hand has been surrendered
        is_split: Whether this hand was created via a split
        is_split_ace: Whether this hand started from a split pair of Aces
        is_blackjack: Natural blackjack on the initial deal
        is_resolved: Whether the player has no further decisions on this hand
        outcome: The result of the hand
        payout: Chips returned to the bankroll for the base wager at settlement
        insurance_payout: Chips returned for the insurance wager at settlement
    """

    id: str
    seat_index: int
    cards: Tuple[Card, ...] = ()
    bet: float = 0.0
    insurance_bet: Optional[float] = None
    is_doubled: bool = False
    is_surrendered: bool = False
    is_split: bool = False
    is_split_ace: bool = False
    is_blackjack: bool = False
    is_resolved: bool = False
    outcome: HandOutcome = HandOutcome.PENDING
    payout: float = 0.0
    insurance_payout: float = 0.0

    @property
    def totals(self) -> HandTotals:
        return hand_totals(self.cards)

    @property
    def best_total(self) -> int:
        return best_total(self.cards)

    @property
    def is_bust(self) -> bool:
        return is_bust(self.cards)

    @property
    def is_soft(self) -> bool:
        return self.totals.soft is not None


@dataclass(frozen=True)
class SeatState:
    """
    Immutable representation of a seat at the table.

    Attributes:
        index: Position of the seat, counted from the dealer's left
        occupied: Whether a player sits here
        base_bet: Wager placed for the next deal
        hands: Hands in play this round (more than one only after a split)
    """

    index: int
    occupied: bool = False
    base_bet: int = 0
    hands: Tuple[HandState, ...] = ()

    def hand_position(self, hand_id: Optional[str]) -> Optional[int]:
        """Position of a hand in ``hands``, or None."""
        for position, hand in enumerate(self.hands):
            if hand.id == hand_id:
                return position
        return None

    def get_hand(self, hand_id: Optional[str]) -> Optional[HandState]:
        position = self.hand_position(hand_id)
        return None if position is None else self.hands[position]

    @property
    def wagered(self) -> float:
        """Chips currently on the table for this seat, insurance included."""
        return sum(hand.bet + (hand.insurance_bet or 0.0) for hand in self.hands)


def _dealer_hand() -> HandState:
    return HandState(id="dealer", seat_index=-1)


@dataclass(frozen=True)
class DealerState:
    """
    Immutable representation of the dealer's state.

    Attributes:
        hand: The dealer's current hand
        upcard: The exposed first card
        hole_card: The face-down second card
        has_peeked: Whether the dealer has checked the hole card this round
    """

    hand: HandState = field(default_factory=_dealer_hand)
    upcard: Optional[Card] = None
    hole_card: Optional[Card] = None
    has_peeked: bool = False

    @property
    def has_blackjack(self) -> bool:
        return self.hand.is_blackjack


@dataclass(frozen=True)
class GameState:
    """
    Immutable representation of the table.

    Exactly one GameState lineage exists per table session. Besides the table
    itself it owns the session context: the random byte source used for every
    shuffle and the counter used to mint hand ids.

    Attributes:
        id: Unique identifier for this table session
        phase: Current stage of the round
        seats: All seats, in table order
        dealer: The dealer's state
        shoe: The dealing shoe
        active_seat_index: Seat holding the hand awaiting a decision, if any
        active_hand_id: Hand awaiting a decision, if any
        bankroll: Chips not currently wagered
        round_count: Number of settled rounds
        message_log: Most recent user-visible messages, newest last
        rules: Rules configuration for the table
        pending_reshuffle: The cut card was passed; reshuffle before the next deal
        round_settled: Settlement has been applied to the current round
        hand_sequence: Last number used in a hand id
        random_bytes: CSPRNG byte source for shuffling
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    phase: Phase = Phase.BETTING
    seats: Tuple[SeatState, ...] = ()
    dealer: DealerState = field(default_factory=DealerState)
    shoe: ShoeState = field(default_factory=ShoeState)
    active_seat_index: Optional[int] = None
    active_hand_id: Optional[str] = None
    bankroll: float = STARTING_BANKROLL
    round_count: int = 0
    message_log: Tuple[str, ...] = ()
    rules: RuleConfig = field(default_factory=RuleConfig)
    pending_reshuffle: bool = False
    round_settled: bool = False
    hand_sequence: int = 0
    random_bytes: RandomBytes = field(
        default=secrets.token_bytes, compare=False, repr=False
    )

    @property
    def active_seat(self) -> Optional[SeatState]:
        if self.active_seat_index is None:
            return None
        return self.seats[self.active_seat_index]

    @property
    def active_hand(self) -> Optional[HandState]:
        """Get the hand awaiting a decision."""
        seat = self.active_seat
        if seat is None:
            return None
        return seat.get_hand(self.active_hand_id)

    def iter_hands(self) -> Iterator[HandState]:
        """All player hands in seat-then-hand order."""
        for seat in self.seats:
            yield from seat.hands

    @property
    def total_wagered(self) -> float:
        return sum(seat.wagered for seat in self.seats)

    @property
    def cards_in_play(self) -> int:
        """Cards currently held by players and the dealer."""
        return sum(len(hand.cards) for hand in self.iter_hands()) + len(
            self.dealer.hand.cards
        )

    @property
    def hole_card_visible(self) -> bool:
        return self.phase in (Phase.DEALER_PLAY, Phase.SETTLEMENT)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the game state to a dictionary suitable for serialization.

        The dealer's hole card is hidden until the dealer plays or the round
        is settled.

        Returns:
            Dictionary representation of the game state
        """
        result: Dict[str, Any] = {
            "id": self.id,
            "phase": self.phase.value,
            "bankroll": self.bankroll,
            "round_count": self.round_count,
            "active_seat_index": self.active_seat_index,
            "active_hand_id": self.active_hand_id,
            "shoe_cards_remaining": self.shoe.cards_remaining,
            "discard_count": len(self.shoe.discard),
            "pending_reshuffle": self.pending_reshuffle,
            "message_log": list(self.message_log),
            "rules": self.rules.to_dict(),
        }

        dealer = self.dealer
        if self.hole_card_visible:
            visible = list(dealer.hand.cards)
        else:
            visible = [dealer.upcard] if dealer.upcard else []
        result["dealer"] = {
            "cards": [card.short for card in visible],
            "value": best_total(visible),
            "hole_card_hidden": len(visible) < len(dealer.hand.cards),
            "has_peeked": dealer.has_peeked,
            "is_blackjack": dealer.has_blackjack if self.hole_card_visible else None,
        }

        seats: List[Dict[str, Any]] = []
        for seat in self.seats:
            seats.append(
                {
                    "index": seat.index,
                    "occupied": seat.occupied,
                    "base_bet": seat.base_bet,
                    "hands": [_hand_to_dict(hand) for hand in seat.hands],
                }
            )
        result["seats"] = seats
        return result


def _hand_to_dict(hand: HandState) -> Dict[str, Any]:
    totals = hand.totals
    return {
        "id": hand.id,
        "cards": [card.short for card in hand.cards],
        "hard": totals.hard,
        "soft": totals.soft,
        "bet": hand.bet,
        "insurance_bet": hand.insurance_bet,
        "is_doubled": hand.is_doubled,
        "is_split": hand.is_split,
        "is_surrendered": hand.is_surrendered,
        "is_blackjack": hand.is_blackjack,
        "is_resolved": hand.is_resolved,
        "outcome": hand.outcome.value,
        "payout": hand.payout,
    }
