"""
This module defines the `Suit`, `Rank`, and `Card` classes, which are used to represent playing cards.

- `Suit`: An enum representing the four suits of a standard deck of playing
cards: Spades, Hearts, Diamonds, and Clubs.

- `Rank`: An enum representing the thirteen ranks of a standard deck of playing
cards: Ace, Two through Ten, Jack, Queen, and King. Every rank is a distinct
member, so a Jack never compares equal to a Ten even though both count as 10.

- `Card`: An immutable playing card. Cards are created once when a shoe is
built and are never mutated afterwards.

This module is part of the `noirjack` package, a blackjack round engine.
"""

from dataclasses import dataclass
from enum import Enum, unique


@unique
class Suit(Enum):
    """
    Enum for suits in a card deck.
    """

    SPADES = "♠"
    HEARTS = "♥"
    DIAMONDS = "♦"
    CLUBS = "♣"

    def __str__(self) -> str:
        return self.value


@unique
class Rank(Enum):
    """
    Enum for ranks in a card deck.
    """

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"

    @property
    def rank_str(self) -> str:
        """A short string representation of the rank."""
        return self.value

    @property
    def is_ace(self) -> bool:
        return self is Rank.ACE

    @property
    def is_ten_value(self) -> bool:
        """True for the ranks that count as 10 (10, J, Q, K)."""
        return self in (Rank.TEN, Rank.JACK, Rank.QUEEN, Rank.KING)

    @classmethod
    def from_str(cls, value: str) -> "Rank":
        """
        Look a rank up by its short form ("A", "7", "10", "k").

        :raises ValueError: If the string is not a rank.
        """
        try:
            return cls(value.strip().upper())
        except ValueError as exc:
            raise ValueError(f"Invalid rank: {value!r}") from exc

    def __str__(self) -> str:
        return self.rank_str


@dataclass(frozen=True)
class Card:
    """
    Class representing a playing card.

    >>> card = Card(Rank.ACE, Suit.SPADES)
    >>> print(card)
    A of ♠
    >>> card.short
    'A♠'
    """

    rank: Rank
    suit: Suit

    def __post_init__(self):
        if not isinstance(self.rank, Rank):
            raise TypeError(f"Invalid rank: {self.rank}")
        if not isinstance(self.suit, Suit):
            raise TypeError(f"Invalid suit: {self.suit}")

    @classmethod
    def parse(cls, text: str) -> "Card":
        """
        Build a card from its short form, e.g. ``"A♠"`` or ``"10♥"``.

        :raises ValueError: If the text does not describe a card.
        """
        text = text.strip()
        if len(text) < 2:
            raise ValueError(f"Invalid card: {text!r}")
        try:
            suit = Suit(text[-1])
        except ValueError as exc:
            raise ValueError(f"Invalid suit in card: {text!r}") from exc
        return cls(Rank.from_str(text[:-1]), suit)

    @property
    def short(self) -> str:
        """Compact form used in the table's message log."""
        return f"{self.rank.rank_str}{self.suit}"

    def __repr__(self) -> str:
        """
        Provide a machine-readable representation of the card.

        :return: A string representation of the card.
        """
        return f"Card(Rank.{self.rank.name}, Suit.{self.suit.name})"

    def __str__(self) -> str:
        """
        Provide a human-readable representation of the card.

        :return: A string representation of the card.
        """
        return f"{self.rank.rank_str} of {self.suit}"
