"""
Hand evaluation.

Pure functions turning a sequence of cards into blackjack totals. The hard
total counts every Ace as 1. The soft total promotes exactly one Ace to 11 and
only exists when that does not bust; promoting a second Ace would always bust,
so it is never considered.
"""

from typing import NamedTuple, Optional, Sequence

from noirjack.common.card import Card, Rank
from noirjack.blackjack.constants import BLACKJACK, HARD_VALUES, SOFT_ACE_BONUS


class HandTotals(NamedTuple):
    hard: int
    soft: Optional[int] = None


def hand_totals(cards: Sequence[Card]) -> HandTotals:
    """Calculate the hard total and, when one exists, the soft total."""
    hard = 0
    num_aces = 0
    for card in cards:
        if card.rank is Rank.ACE:
            num_aces += 1
        hard += HARD_VALUES[card.rank]

    if num_aces and hard + SOFT_ACE_BONUS <= BLACKJACK:
        return HandTotals(hard, hard + SOFT_ACE_BONUS)
    return HandTotals(hard)


def best_total(cards: Sequence[Card]) -> int:
    """The soft total if there is one, otherwise the hard total."""
    totals = hand_totals(cards)
    return totals.soft if totals.soft is not None else totals.hard


def is_soft(cards: Sequence[Card]) -> bool:
    """Determine if the hand is soft (contains an ace counted as 11)."""
    return hand_totals(cards).soft is not None


def is_bust(cards: Sequence[Card]) -> bool:
    return hand_totals(cards).hard > BLACKJACK


def is_blackjack(cards: Sequence[Card]) -> bool:
    """
    Exactly two cards totalling 21.

    Whether a two-card 21 counts as a *natural* also depends on the hand not
    coming from a split; callers holding a `HandState` use its
    ``is_blackjack`` flag, which is only set on the initial deal.
    """
    return len(cards) == 2 and best_total(cards) == BLACKJACK


def is_pair(cards: Sequence[Card], equal_rank_only: bool = True) -> bool:
    """
    Two cards that may be split.

    :param equal_rank_only: When False, any two ten-valued cards form a pair
    """
    if len(cards) != 2:
        return False
    first, second = cards
    if first.rank is second.rank:
        return True
    if equal_rank_only:
        return False
    return first.rank.is_ten_value and second.rank.is_ten_value
