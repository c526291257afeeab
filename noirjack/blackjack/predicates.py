"""
Rule predicates.

Each ``can_*`` function answers one question about a single hand under a
`RuleConfig` and never mutates anything. They only look at the hand (and its
seat); phase, cursor and bankroll checks are layered on top by
`allowed_actions`, which is what the state machine and the advisor consult.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Optional

from noirjack.common.card import Rank
from noirjack.blackjack.action import Action
from noirjack.blackjack.hand import is_pair
from noirjack.blackjack.rules import RuleConfig, SurrenderPolicy
from noirjack.state.models import GameState, HandState, Phase, SeatState


def can_hit(hand: HandState) -> bool:
    """A hand on 21 takes no more cards; it can only stand."""
    if hand.is_resolved or hand.is_surrendered:
        return False
    if hand.is_blackjack:
        return False
    return bool(hand.cards) and hand.best_total < 21


def can_stand(hand: HandState) -> bool:
    return not hand.is_resolved


def can_double(hand: HandState, seat: SeatState, rules: RuleConfig) -> bool:
    """
    Two-card hand that has not acted yet, inside the double window.

    Hands created by a split need double-after-split.
    """
    if len(hand.cards) != 2:
        return False
    if hand.is_resolved or hand.is_surrendered or hand.is_blackjack or hand.is_doubled:
        return False
    if hand.is_split and not rules.double_after_split:
        return False
    return rules.double_allowed.allows(hand.best_total)


def can_split(hand: HandState, seat: SeatState, rules: RuleConfig) -> bool:
    if hand.is_resolved or hand.is_surrendered:
        return False
    if not is_pair(hand.cards, rules.split_pairs_equal_rank_only):
        return False
    if len(seat.hands) >= rules.split_max_hands:
        return False
    if hand.cards[0].rank is Rank.ACE and hand.is_split_ace and not rules.resplit_aces:
        return False
    return True


def can_surrender(hand: HandState, rules: RuleConfig) -> bool:
    """
    Surrender is only offered as the first decision on a dealt hand.

    Late and early surrender behave the same here: with the peek already done,
    early surrender has nothing extra to offer.
    """
    if rules.surrender is SurrenderPolicy.NONE:
        return False
    if hand.is_resolved or hand.is_surrendered or hand.is_blackjack:
        return False
    if hand.is_split:
        return False
    return len(hand.cards) == 2


def can_take_insurance(hand: HandState, rules: RuleConfig) -> bool:
    if not rules.allow_insurance:
        return False
    if hand.insurance_bet is not None:
        return False
    return len(hand.cards) == 2


@dataclass(frozen=True)
class LegalActions:
    """
    The actions a caller may currently take on one hand.
    """

    hit: bool = False
    stand: bool = False
    double: bool = False
    split: bool = False
    surrender: bool = False
    insurance: bool = False

    def allows(self, action: Action) -> bool:
        match action:
            case Action.HIT:
                return self.hit
            case Action.STAND:
                return self.stand
            case Action.DOUBLE:
                return self.double
            case Action.SPLIT:
                return self.split
            case Action.SURRENDER:
                return self.surrender
            case Action.SKIP_INSURANCE:
                return self.insurance

    def as_dict(self) -> Dict[str, bool]:
        return asdict(self)


NO_ACTIONS = LegalActions()


def first_undecided_insurance_hand(state: GameState) -> Optional[HandState]:
    """The next hand, in seat order, still waiting for an insurance decision."""
    for hand in state.iter_hands():
        if hand.insurance_bet is None:
            return hand
    return None


def allowed_actions(state: GameState, hand: Optional[HandState] = None) -> LegalActions:
    """
    Legal actions for ``hand``, defaulting to the hand under the cursor.

    During the insurance phase there is no cursor; the default hand is then
    the first one still waiting for an insurance decision.

    Args:
        state: Current game state
        hand: Hand to check (must belong to ``state``)

    Returns:
        The legal-action set; all False when nothing can be done
    """
    rules = state.rules

    match state.phase:
        case Phase.INSURANCE:
            target = hand or first_undecided_insurance_hand(state)
            if target is None:
                return NO_ACTIONS
            insurance = (
                state.dealer.upcard is not None
                and state.dealer.upcard.rank is Rank.ACE
                and can_take_insurance(target, rules)
                and state.bankroll > 0
            )
            return LegalActions(insurance=insurance)

        case Phase.PLAYER_ACTIONS:
            target = hand or state.active_hand
            if target is None or target.id != state.active_hand_id:
                return NO_ACTIONS
            seat = state.seats[target.seat_index]
            affordable = state.bankroll >= target.bet
            return LegalActions(
                hit=can_hit(target),
                stand=can_stand(target),
                double=affordable and can_double(target, seat, rules),
                split=affordable and can_split(target, seat, rules),
                surrender=can_surrender(target, rules),
            )

        case Phase.BETTING | Phase.DEALER_PLAY | Phase.SETTLEMENT:
            return NO_ACTIONS
