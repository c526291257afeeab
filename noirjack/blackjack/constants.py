"""Blackjack-specific constants and value mappings."""

from noirjack.common.card import Rank

# Nominal blackjack values; an Ace is listed at its soft value of 11.
BLACKJACK_VALUES = {
    Rank.ACE: 11,
    Rank.TWO: 2,
    Rank.THREE: 3,
    Rank.FOUR: 4,
    Rank.FIVE: 5,
    Rank.SIX: 6,
    Rank.SEVEN: 7,
    Rank.EIGHT: 8,
    Rank.NINE: 9,
    Rank.TEN: 10,
    Rank.JACK: 10,
    Rank.QUEEN: 10,
    Rank.KING: 10,
}

# Value of each rank when every Ace counts as 1 (hard counting).
HARD_VALUES = {rank: 1 if rank is Rank.ACE else value for rank, value in BLACKJACK_VALUES.items()}

TEN_VALUE_RANKS = frozenset({Rank.TEN, Rank.JACK, Rank.QUEEN, Rank.KING})

BLACKJACK = 21
DEALER_STAND_TOTAL = 17
SOFT_ACE_BONUS = 10

# Table defaults
STARTING_BANKROLL = 100
SEAT_COUNT = 5
MESSAGE_LOG_LIMIT = 50
INSURANCE_PAYOUT_MULTIPLE = 3  # 2:1 plus the returned stake


def get_blackjack_value(rank: Rank) -> int:
    """Get the nominal blackjack value for a given rank."""
    return BLACKJACK_VALUES[rank]
