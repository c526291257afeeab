"""Round outcome summary for a settled round."""

from dataclasses import dataclass
from typing import Optional, Tuple

from noirjack.blackjack.hand import best_total, is_blackjack, is_bust
from noirjack.state.models import GameState, HandOutcome

# Nets smaller than this count as a push.
MIN_AMOUNT = 0.005


@dataclass(frozen=True)
class RoundOutcomeSummary:
    """
    Money and result of one settled round, across every seat.

    Attributes:
        total_bet: Base wagers, doubled stakes included
        total_insurance: Insurance wagers
        base_payout: Chips returned for base wagers (surrender refunds included)
        insurance_payout: Chips returned for insurance wagers
        base_net: base_payout - total_bet
        insurance_net: insurance_payout - total_insurance
        net: Overall result of the round
        kind: "win", "lose", "push" or "blackjack"
        dealer_total: Dealer's final total
        dealer_bust: Whether the dealer busted
        dealer_blackjack: Whether the dealer had a natural
        hand_ids: Hands included, in seat order
    """

    total_bet: float
    total_insurance: float
    base_payout: float
    insurance_payout: float
    base_net: float
    insurance_net: float
    net: float
    kind: str
    dealer_total: int
    dealer_bust: bool
    dealer_blackjack: bool
    hand_ids: Tuple[str, ...]


def calculate_round_outcome(state: GameState) -> Optional[RoundOutcomeSummary]:
    """
    Summarize the round that was just settled.

    Returns:
        The summary, or None before settlement or when nothing was wagered
    """
    if not state.round_settled:
        return None

    hands = [
        hand
        for hand in state.iter_hands()
        if hand.bet > 0 or (hand.insurance_bet or 0) > 0
    ]
    if not hands:
        return None

    total_bet = sum(hand.bet for hand in hands)
    total_insurance = sum(hand.insurance_bet or 0.0 for hand in hands)
    base_payout = sum(hand.payout for hand in hands)
    insurance_payout = sum(hand.insurance_payout for hand in hands)

    base_net = round(base_payout - total_bet, 2)
    insurance_net = round(insurance_payout - total_insurance, 2)
    net = round(base_net + insurance_net, 2)

    if net > MIN_AMOUNT:
        blackjack_won = any(hand.outcome is HandOutcome.BLACKJACK for hand in hands)
        kind = "blackjack" if blackjack_won else "win"
    elif net < -MIN_AMOUNT:
        kind = "lose"
    else:
        kind = "push"

    dealer_cards = state.dealer.hand.cards
    return RoundOutcomeSummary(
        total_bet=total_bet,
        total_insurance=total_insurance,
        base_payout=base_payout,
        insurance_payout=insurance_payout,
        base_net=base_net,
        insurance_net=insurance_net,
        net=net,
        kind=kind,
        dealer_total=best_total(dealer_cards),
        dealer_bust=is_bust(dealer_cards),
        dealer_blackjack=is_blackjack(dealer_cards),
        hand_ids=tuple(hand.id for hand in hands),
    )
