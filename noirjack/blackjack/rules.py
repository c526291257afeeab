"""
House rules.

`RuleConfig` is an immutable value object; every rule-dependent decision in
the engine and the strategy advisor reads it and nothing else.
"""

import math
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence

from noirjack.common.card import Card
from noirjack.blackjack.constants import DEALER_STAND_TOTAL
from noirjack.blackjack.hand import hand_totals


class BlackjackPayout(Enum):
    THREE_TO_TWO = "3:2"
    SIX_TO_FIVE = "6:5"

    @property
    def multiplier(self) -> float:
        match self:
            case BlackjackPayout.THREE_TO_TWO:
                return 1.5
            case BlackjackPayout.SIX_TO_FIVE:
                return 1.2


class SurrenderPolicy(Enum):
    NONE = "none"
    LATE = "late"
    EARLY = "early"


class DoubleWindow(Enum):
    """Which two-card totals may be doubled."""

    ANY_TWO = "anyTwo"
    NINE_TO_ELEVEN = "9to11"
    TEN_TO_ELEVEN = "10to11"

    def allows(self, total: int) -> bool:
        match self:
            case DoubleWindow.ANY_TWO:
                return True
            case DoubleWindow.NINE_TO_ELEVEN:
                return 9 <= total <= 11
            case DoubleWindow.TEN_TO_ELEVEN:
                return 10 <= total <= 11


# camelCase keys accepted by `RuleConfig.from_overrides`
_ALIASES = {
    "dealerStandsOnSoft17": "dealer_stands_on_soft_17",
    "blackjackPayout": "blackjack_payout",
    "allowInsurance": "allow_insurance",
    "surrender": "surrender",
    "doubleAllowed": "double_allowed",
    "doubleAfterSplit": "double_after_split",
    "splitMaxHands": "split_max_hands",
    "splitPairsEqualRankOnly": "split_pairs_equal_rank_only",
    "resplitAces": "resplit_aces",
    "hitOnSplitAces": "hit_on_split_aces",
    "dealerPeekOnTenOrAce": "dealer_peek_on_ten_or_ace",
    "numberOfDecks": "num_decks",
    "penetration": "penetration",
    "minBet": "min_bet",
    "maxBet": "max_bet",
}

_ENUM_FIELDS = {
    "blackjack_payout": BlackjackPayout,
    "surrender": SurrenderPolicy,
    "double_allowed": DoubleWindow,
}


@dataclass(frozen=True)
class RuleConfig:
    """
    Immutable house rules for one table.

    Attributes:
        dealer_stands_on_soft_17: S17 when True, H17 when False
        blackjack_payout: 3:2 or 6:5 on a natural
        allow_insurance: Whether insurance is offered against a dealer Ace
        surrender: Surrender policy
        double_allowed: Two-card totals that may be doubled
        double_after_split: Whether split hands may be doubled (DAS)
        split_max_hands: Maximum number of hands a seat may hold after splitting
        split_pairs_equal_rank_only: When False, any two ten-valued cards split
        resplit_aces: Whether an Ace pair created by a split may be split again.
            Only takes effect together with ``hit_on_split_aces``: otherwise
            each split Ace is finished after its one card, pairs included.
        hit_on_split_aces: Whether split Aces may draw beyond their one card
        dealer_peek_on_ten_or_ace: Whether the dealer checks for blackjack
        num_decks: Decks in the shoe
        penetration: Fraction of the shoe dealt before reshuffling
        min_bet: Table minimum
        max_bet: Table maximum (``math.inf`` for no limit)
    """

    dealer_stands_on_soft_17: bool = True
    blackjack_payout: BlackjackPayout = BlackjackPayout.THREE_TO_TWO
    allow_insurance: bool = True
    surrender: SurrenderPolicy = SurrenderPolicy.LATE
    double_allowed: DoubleWindow = DoubleWindow.ANY_TWO
    double_after_split: bool = True
    split_max_hands: int = 4
    split_pairs_equal_rank_only: bool = True
    resplit_aces: bool = False
    hit_on_split_aces: bool = False
    dealer_peek_on_ten_or_ace: bool = True
    num_decks: int = 6
    penetration: float = 0.75
    min_bet: float = 1
    max_bet: float = math.inf

    def __post_init__(self):
        if self.num_decks < 1:
            raise ValueError("Number of decks must be at least 1")
        if not 0 < self.penetration <= 1:
            raise ValueError("Penetration must be between 0 and 1")
        if not math.isfinite(self.min_bet) or math.isnan(self.max_bet):
            raise ValueError("Minimum bet must be finite")
        if self.min_bet < 0:
            raise ValueError("Minimum bet must be non-negative")
        if self.max_bet < self.min_bet:
            raise ValueError("Maximum bet must not be below the minimum bet")
        if math.ceil(self.min_bet) > self.max_bet:
            raise ValueError("Table limits must allow a whole-unit bet")
        if self.split_max_hands < 2:
            raise ValueError("split_max_hands must allow at least one split")

    @classmethod
    def from_overrides(
        cls, overrides: Optional[Mapping[str, Any]] = None
    ) -> "RuleConfig":
        """
        Build a rule set from the defaults plus ``overrides``.

        Keys may use the field names or the camelCase names of the serialized
        rule object; enum-valued rules may be given as their string values.

        :raises ValueError: On unknown keys or invalid values
        """
        return cls().with_overrides(overrides)

    def with_overrides(
        self, overrides: Optional[Mapping[str, Any]] = None
    ) -> "RuleConfig":
        """Return a copy with some rules changed. See `from_overrides`."""
        if not overrides:
            return self

        known = {f.name for f in fields(self)}
        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown rule: {key}")
            enum_type = _ENUM_FIELDS.get(name)
            if enum_type is not None and not isinstance(value, enum_type):
                try:
                    value = enum_type(value)
                except ValueError as exc:
                    raise ValueError(f"Invalid value for {key}: {value!r}") from exc
            if name == "max_bet" and value is None:
                value = math.inf
            changes[name] = value
        return replace(self, **changes)

    @property
    def blackjack_multiplier(self) -> float:
        return self.blackjack_payout.multiplier

    @property
    def table_ref(self) -> str:
        """Short rule-set label, e.g. ``6D-S17-Late-Surr-DAS``."""
        soft17 = "S17" if self.dealer_stands_on_soft_17 else "H17"
        match self.surrender:
            case SurrenderPolicy.NONE:
                surrender = "No-Surr"
            case SurrenderPolicy.LATE:
                surrender = "Late-Surr"
            case SurrenderPolicy.EARLY:
                surrender = "Early-Surr"
        das = "DAS" if self.double_after_split else "NoDAS"
        return f"{self.num_decks}D-{soft17}-{surrender}-{das}"

    def should_dealer_hit(self, cards: Sequence[Card]) -> bool:
        """Determine if the dealer draws another card under these rules."""
        totals = hand_totals(cards)
        if totals.soft is not None:
            if totals.soft < DEALER_STAND_TOTAL:
                return True
            return totals.soft == DEALER_STAND_TOTAL and not self.dealer_stands_on_soft_17
        return totals.hard < DEALER_STAND_TOTAL

    def clamp_bet(self, amount: float) -> int:
        """
        Floor a requested bet to whole units and clamp it to the table limits.

        The limits are rounded inwards, so a fractional minimum never yields a
        bet below it. ``amount`` must be finite.
        """
        if amount <= 0:
            return 0
        bet = max(math.floor(amount), math.ceil(self.min_bet))
        if math.isfinite(self.max_bet):
            bet = min(bet, math.floor(self.max_bet))
        return bet

    def to_dict(self) -> Dict[str, Any]:
        """Convert rules to a dictionary for serialization."""
        result = asdict(self)
        for name in _ENUM_FIELDS:
            result[name] = result[name].value
        if math.isinf(self.max_bet):
            result["max_bet"] = None
        return result
