"""
The dealing shoe.

A shoe is an immutable value: drawing, discarding and reshuffling all return a
new `ShoeState`. Cards are drawn from the tail of ``cards``. The cut card sits
``cut_index`` cards from the back of the shoe; once that many cards or fewer
remain, `needs_reshuffle` turns true and the table reshuffles before the next
deal, never in the middle of a round.
"""

import logging
import secrets
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional, Tuple

from noirjack.common.card import Card, Rank, Suit

logger = logging.getLogger("noirjack.shoe")

# Source of cryptographically strong random bytes, e.g. ``secrets.token_bytes``.
RandomBytes = Callable[[int], bytes]

CARDS_PER_DECK = 52


class ShoeEmptyError(RuntimeError):
    """
    Raised when a card is drawn from an empty shoe.

    This is never an expected condition: it means the shoe holds too few decks
    for the number of seats and split hands in play. It is not retriable.
    """


def build_cards(num_decks: int) -> List[Card]:
    """Return ``num_decks`` unshuffled 52-card decks."""
    return [
        Card(rank, suit)
        for _ in range(num_decks)
        for suit in Suit
        for rank in Rank
    ]


def _uniform_below(upper: int, random_bytes: RandomBytes) -> int:
    """
    Draw an integer uniformly from ``range(upper)``.

    Uses rejection sampling so the result carries no modulo bias.
    """
    if upper <= 1:
        return 0
    num_bytes = ((upper - 1).bit_length() + 7) // 8
    span = 256**num_bytes
    limit = span - (span % upper)
    while True:
        value = int.from_bytes(random_bytes(num_bytes), "big")
        if value < limit:
            return value % upper


def fisher_yates(cards: Iterable[Card], random_bytes: RandomBytes) -> List[Card]:
    """
    Shuffle cards with an unbiased Fisher-Yates pass.

    :param cards: Cards to shuffle (not modified)
    :param random_bytes: CSPRNG byte source
    :return: A new, shuffled list
    """
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = _uniform_below(i + 1, random_bytes)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


@dataclass(frozen=True)
class ShoeState:
    """
    Immutable representation of the shoe.

    Attributes:
        cards: Undealt cards; the next card dealt is ``cards[-1]``
        discard: Cards collected from finished rounds
        cut_index: Number of cards left in the shoe at which the cut card is reached
        num_decks: Number of decks the shoe is built from
        penetration: Fraction of the shoe dealt before the cut card
    """

    cards: Tuple[Card, ...] = ()
    discard: Tuple[Card, ...] = ()
    cut_index: int = 0
    num_decks: int = 6
    penetration: float = 0.75

    @property
    def cards_remaining(self) -> int:
        return len(self.cards)

    @property
    def total_cards(self) -> int:
        return self.num_decks * CARDS_PER_DECK

    @property
    def needs_reshuffle(self) -> bool:
        """True once the cut card has been reached."""
        return len(self.cards) <= self.cut_index

    def get_penetration_percentage(self) -> float:
        """Fraction of the full shoe that has been dealt so far."""
        return 1.0 - len(self.cards) / self.total_cards


def _cut_index(total_cards: int, penetration: float) -> int:
    # Floor, as the cut card is placed by whole cards.
    return int(total_cards * (1 - penetration))


def create_shoe(
    num_decks: int = 6,
    penetration: float = 0.75,
    random_bytes: Optional[RandomBytes] = None,
) -> ShoeState:
    """
    Build and shuffle a new shoe.

    :param num_decks: Number of decks to use in the shoe (default is 6)
    :param penetration: Fraction of cards to deal before reshuffling (default is 75%)
    :param random_bytes: CSPRNG byte source (defaults to ``secrets.token_bytes``)
    :raises ValueError: If the deck count or penetration is out of range
    """
    if num_decks < 1:
        raise ValueError("Number of decks must be at least 1")
    if not 0 < penetration <= 1:
        raise ValueError("Penetration must be between 0 and 1")

    source = random_bytes or secrets.token_bytes
    cards = fisher_yates(build_cards(num_decks), source)
    logger.debug("Shuffled a %d-deck shoe (%d cards)", num_decks, len(cards))
    return ShoeState(
        cards=tuple(cards),
        discard=(),
        cut_index=_cut_index(len(cards), penetration),
        num_decks=num_decks,
        penetration=penetration,
    )


def draw_card(shoe: ShoeState) -> Tuple[Card, ShoeState]:
    """
    Draw the next card.

    :return: The card and the shoe without it
    :raises ShoeEmptyError: If no cards remain
    """
    if not shoe.cards:
        raise ShoeEmptyError(
            f"Shoe is empty ({shoe.num_decks} decks, {len(shoe.discard)} discarded)"
        )
    return shoe.cards[-1], replace(shoe, cards=shoe.cards[:-1])


def discard_cards(shoe: ShoeState, cards: Iterable[Card]) -> ShoeState:
    """Move finished cards onto the discard pile. Never reshuffles."""
    cards = tuple(cards)
    if not cards:
        return shoe
    return replace(shoe, discard=shoe.discard + cards)


def reshuffle_shoe(
    shoe: ShoeState, random_bytes: Optional[RandomBytes] = None
) -> ShoeState:
    """
    Rebuild the full shoe from its deck count and shuffle it.

    Cards still in play elsewhere are not tracked by the shoe, so this is only
    correct between rounds, when every card has been discarded.
    """
    logger.info("Reshuffling %d-deck shoe", shoe.num_decks)
    return create_shoe(shoe.num_decks, shoe.penetration, random_bytes)
