"""
Basic strategy advisor.

Strategy lookups use integer-indexed arrays built once at import time from the
chart below, one row per hand and one column per dealer up-card (2-9, ten
values, Ace). Cells hold a `StrategyCode`: the preferred action plus what to do
when that action is not available.

`recommend` is a pure function of the hand, the dealer's up-card, the rules and
the caller's legal-action set. Whatever the chart says, the action it returns
is always one the caller can execute.
"""

import csv
import io
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from noirjack.common.card import Card, Rank
from noirjack.blackjack.action import Action
from noirjack.blackjack.constants import get_blackjack_value
from noirjack.blackjack.decision_logger import decision_logger
from noirjack.blackjack.hand import hand_totals, is_pair
from noirjack.blackjack.predicates import LegalActions, allowed_actions
from noirjack.blackjack.rules import RuleConfig, SurrenderPolicy
from noirjack.state.models import GameState, HandState


class HandKind(Enum):
    PAIR = "pair"
    SOFT = "soft"
    HARD = "hard"


class StrategyCode(Enum):
    """
    Chart cell codes.

    The first letter is the preferred action, the second the fallback:
    ``Dh`` is "double, otherwise hit", ``Rs`` "surrender, otherwise stand".
    ``Ph`` splits only when doubling after a split is allowed and hits otherwise.
    """

    HIT = "H"
    STAND = "S"
    DOUBLE_HIT = "Dh"
    DOUBLE_STAND = "Ds"
    SURRENDER_HIT = "Rh"
    SURRENDER_STAND = "Rs"
    SPLIT = "P"
    SPLIT_HIT = "Ph"
    SPLIT_STAND = "Ps"
    SPLIT_DOUBLE = "Pd"

    def actions(self, rules: RuleConfig) -> Tuple[Action, Optional[Action]]:
        """Preferred action and fallback under ``rules``."""
        match self:
            case StrategyCode.HIT:
                return Action.HIT, None
            case StrategyCode.STAND:
                return Action.STAND, None
            case StrategyCode.DOUBLE_HIT:
                return Action.DOUBLE, Action.HIT
            case StrategyCode.DOUBLE_STAND:
                return Action.DOUBLE, Action.STAND
            case StrategyCode.SURRENDER_HIT:
                return Action.SURRENDER, Action.HIT
            case StrategyCode.SURRENDER_STAND:
                return Action.SURRENDER, Action.STAND
            case StrategyCode.SPLIT:
                return Action.SPLIT, None
            case StrategyCode.SPLIT_HIT:
                if rules.double_after_split:
                    return Action.SPLIT, Action.HIT
                return Action.HIT, None
            case StrategyCode.SPLIT_STAND:
                return Action.SPLIT, Action.STAND
            case StrategyCode.SPLIT_DOUBLE:
                return Action.SPLIT, Action.DOUBLE


# Multi-deck, dealer stands on soft 17. H17 differences are applied in
# `_h17_adjustment`.
_STRATEGY_CSV = """\
Hand,2,3,4,5,6,7,8,9,10,A
Hard4,H,H,H,H,H,H,H,H,H,H
Hard5,H,H,H,H,H,H,H,H,H,H
Hard6,H,H,H,H,H,H,H,H,H,H
Hard7,H,H,H,H,H,H,H,H,H,H
Hard8,H,H,H,Dh,Dh,H,H,H,H,H
Hard9,H,Dh,Dh,Dh,Dh,H,H,H,H,H
Hard10,Dh,Dh,Dh,Dh,Dh,Dh,Dh,Dh,H,H
Hard11,Dh,Dh,Dh,Dh,Dh,Dh,Dh,Dh,Dh,H
Hard12,H,H,S,S,S,H,H,H,H,H
Hard13,S,S,S,S,S,H,H,H,H,H
Hard14,S,S,S,S,S,H,H,H,H,H
Hard15,S,S,S,S,S,H,H,H,Rh,H
Hard16,S,S,S,S,S,H,H,Rh,Rh,Rh
Hard17,S,S,S,S,S,S,S,S,S,S
Hard18,S,S,S,S,S,S,S,S,S,S
Hard19,S,S,S,S,S,S,S,S,S,S
Hard20,S,S,S,S,S,S,S,S,S,S
Hard21,S,S,S,S,S,S,S,S,S,S
Soft12,H,H,H,H,H,H,H,H,H,H
Soft13,H,H,H,Dh,Dh,H,H,H,H,H
Soft14,H,H,H,Dh,Dh,H,H,H,H,H
Soft15,H,H,Dh,Dh,Dh,H,H,H,H,H
Soft16,H,H,Dh,Dh,Dh,H,H,H,H,H
Soft17,H,Dh,Dh,Dh,Dh,H,H,H,H,H
Soft18,S,Ds,Ds,Ds,Ds,S,S,H,H,S
Soft19,S,S,S,S,Ds,S,S,S,S,S
Soft20,S,S,S,S,S,S,S,S,S,S
Soft21,S,S,S,S,S,S,S,S,S,S
Pair2,Ph,Ph,P,P,P,P,H,H,H,H
Pair3,Ph,Ph,P,P,P,P,H,H,H,H
Pair4,H,H,H,Pd,Pd,H,H,H,H,H
Pair5,Dh,Dh,Dh,Dh,Dh,Dh,Dh,Dh,H,H
Pair6,Ph,P,P,P,P,H,H,H,H,H
Pair7,P,P,P,P,P,P,H,H,H,H
Pair8,P,P,P,P,P,P,P,P,P,P
Pair9,P,P,P,P,P,S,P,P,S,S
Pair10,S,S,S,S,S,S,S,S,S,S
PairA,P,P,P,P,P,P,P,P,P,P
"""

HARD_MIN, HARD_MAX = 4, 21
SOFT_MIN, SOFT_MAX = 12, 21
DEALER_LABELS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "A")
ACE_INDEX = 9
TEN_INDEX = 8


def _build_strategy_tables(chart: str):
    """
    Build the lookup tables from the chart.

    Returns three 2D arrays:
    - hard_table[0-17][0-9]: Hard 4-21 vs dealer 2-A
    - soft_table[0-9][0-9]: Soft 12-21 vs dealer 2-A
    - pair_table[0-10][0-9]: Pair 2-A vs dealer 2-A (index 1 is Pair2, 10 is PairA)
    """
    hard_table = [[StrategyCode.HIT] * 10 for _ in range(HARD_MAX - HARD_MIN + 1)]
    soft_table = [[StrategyCode.HIT] * 10 for _ in range(SOFT_MAX - SOFT_MIN + 1)]
    pair_table = [[StrategyCode.HIT] * 10 for _ in range(11)]

    reader = csv.reader(io.StringIO(chart))
    next(reader)  # Skip header
    for row in reader:
        hand_type = row[0]
        codes = [StrategyCode(cell.strip()) for cell in row[1:]]
        if len(codes) != 10:
            raise ValueError(f"Strategy row {hand_type} has {len(codes)} columns")

        if hand_type.startswith("Hard"):
            hard_table[int(hand_type[4:]) - HARD_MIN] = codes
        elif hand_type.startswith("Soft"):
            soft_table[int(hand_type[4:]) - SOFT_MIN] = codes
        elif hand_type.startswith("Pair"):
            pair_table[_pair_index_from_label(hand_type[4:])] = codes
        else:
            raise ValueError(f"Unknown strategy row {hand_type}")

    return hard_table, soft_table, pair_table


def _pair_index_from_label(label: str) -> int:
    if label == "A":
        return 10
    return int(label) - 1


HARD_TABLE, SOFT_TABLE, PAIR_TABLE = _build_strategy_tables(_STRATEGY_CSV)


def dealer_index(upcard: Card) -> int:
    """
    Convert dealer up card to array index.

    Returns:
        0-7: Cards 2-9
        8: Cards 10/J/Q/K
        9: Ace
    """
    if upcard.rank is Rank.ACE:
        return ACE_INDEX
    value = get_blackjack_value(upcard.rank)
    if value >= 10:
        return TEN_INDEX
    return value - 2


def pair_index(rank: Rank) -> int:
    """Pair table row for a rank; all ten-valued ranks share one row."""
    if rank is Rank.ACE:
        return 10
    return min(get_blackjack_value(rank), 10) - 1


@dataclass(frozen=True)
class PlayerContext:
    """
    Everything the advisor looks at.

    Attributes:
        dealer_upcard: The dealer's exposed card
        cards: The player's hand
        is_initial_two_cards: The hand still holds only its first two cards
        after_split: The hand was created by a split
        legal: Actions the caller can execute right now
    """

    dealer_upcard: Card
    cards: Tuple[Card, ...]
    is_initial_two_cards: bool
    after_split: bool
    legal: LegalActions

    @classmethod
    def for_hand(
        cls, state: GameState, hand: Optional[HandState] = None
    ) -> Optional["PlayerContext"]:
        """Context for ``hand`` (default: the active hand), or None if there is none."""
        hand = hand or state.active_hand
        upcard = state.dealer.upcard
        if hand is None or upcard is None:
            return None
        return cls(
            dealer_upcard=upcard,
            cards=tuple(hand.cards),
            is_initial_two_cards=len(hand.cards) == 2 and not hand.is_doubled,
            after_split=hand.is_split,
            legal=allowed_actions(state, hand),
        )


@dataclass(frozen=True)
class Recommendation:
    """
    Advisor output.

    Attributes:
        kind: How the hand was classified
        ideal: The chart's action for this rule set
        action: The action to take; always legal unless nothing is
        fallback: The chart's second choice, if the cell has one
        reasoning: Human-readable summary
        table_ref: Short label of the rule set the chart was read for
    """

    kind: HandKind
    ideal: Action
    action: Action
    fallback: Optional[Action]
    reasoning: str
    table_ref: str


def classify(context: PlayerContext, rules: RuleConfig) -> HandKind:
    cards = context.cards
    if context.legal.split and is_pair(cards, rules.split_pairs_equal_rank_only):
        return HandKind.PAIR
    if hand_totals(cards).soft is not None:
        return HandKind.SOFT
    return HandKind.HARD


def _lookup(kind: HandKind, cards: Sequence[Card], column: int) -> StrategyCode:
    totals = hand_totals(cards)
    match kind:
        case HandKind.PAIR:
            return PAIR_TABLE[pair_index(cards[0].rank)][column]
        case HandKind.SOFT:
            row = min(max(totals.soft, SOFT_MIN), SOFT_MAX)
            return SOFT_TABLE[row - SOFT_MIN][column]
        case HandKind.HARD:
            row = min(max(totals.hard, HARD_MIN), HARD_MAX)
            return HARD_TABLE[row - HARD_MIN][column]


def _h17_adjustment(
    kind: HandKind, total: int, column: int
) -> Optional[Tuple[Action, Optional[Action]]]:
    if column != ACE_INDEX:
        return None
    if kind is HandKind.HARD and total == 11:
        return Action.DOUBLE, Action.HIT
    if kind is HandKind.SOFT and total == 18:
        return Action.HIT, None
    return None


def _double_permitted(context: PlayerContext, rules: RuleConfig, total: int) -> bool:
    if not context.is_initial_two_cards or len(context.cards) != 2:
        return False
    if context.after_split and not rules.double_after_split:
        return False
    return rules.double_allowed.allows(total)


def _surrender_permitted(context: PlayerContext, rules: RuleConfig) -> bool:
    if rules.surrender is SurrenderPolicy.NONE:
        return False
    return context.is_initial_two_cards and not context.after_split


def _describe(kind: HandKind, cards: Sequence[Card], total: int) -> str:
    if kind is HandKind.PAIR:
        rank = cards[0].rank
        if rank is Rank.ACE:
            return "Pair Aces"
        return f"Pair {rank.rank_str}s"
    if kind is HandKind.SOFT:
        return f"Soft {total}"
    return f"Hard {total}"


def recommend(context: PlayerContext, rules: RuleConfig) -> Recommendation:
    """
    Recommend a basic-strategy action.

    Args:
        context: Hand, dealer up-card and legal actions
        rules: Table rules

    Returns:
        The recommendation; ``action`` is the first of the chart action, its
        fallback, hit and stand that is both permitted by the rules and legal
        now, or stand when none of them is
    """
    column = dealer_index(context.dealer_upcard)
    kind = classify(context, rules)
    totals = hand_totals(context.cards)
    total = totals.soft if kind is HandKind.SOFT else totals.hard

    code = _lookup(kind, context.cards, column)
    ideal, fallback = code.actions(rules)

    if not rules.dealer_stands_on_soft_17:
        adjusted = _h17_adjustment(kind, total, column)
        if adjusted is not None:
            ideal, fallback = adjusted
            decision_logger.log_rule_evaluation(
                "h17_adjustment", True, f"{kind.value} {total} vs A -> {ideal.value}"
            )

    candidates: List[Action] = [ideal]
    if fallback is not None:
        candidates.append(fallback)
    candidates.extend((Action.HIT, Action.STAND))

    # Rule demotions. A demoted fallback double still needs the same checks.
    if not _double_permitted(context, rules, total):
        candidates = [a for a in candidates if a is not Action.DOUBLE]
    if not _surrender_permitted(context, rules):
        candidates = [a for a in candidates if a is not Action.SURRENDER]

    action = next((a for a in candidates if context.legal.allows(a)), Action.STAND)
    fallback_used = action is not ideal

    hand_desc = _describe(kind, context.cards, total)
    dealer_label = DEALER_LABELS[column]
    decision_logger.log_strategy_lookup(
        hand_desc, dealer_label, f"{code.value} -> {action.value}", fallback_used
    )

    table_ref = rules.table_ref
    return Recommendation(
        kind=kind,
        ideal=ideal,
        action=action,
        fallback=fallback,
        reasoning=f"{hand_desc} vs {dealer_label} → {action.label} ({table_ref})",
        table_ref=table_ref,
    )


def recommend_insurance(context: PlayerContext, rules: RuleConfig) -> Recommendation:
    """Basic strategy never takes insurance or even money."""
    kind = classify(context, rules)
    totals = hand_totals(context.cards)
    total = totals.soft if kind is HandKind.SOFT else totals.hard
    hand_desc = _describe(kind, context.cards, total)
    dealer_label = DEALER_LABELS[dealer_index(context.dealer_upcard)]
    table_ref = rules.table_ref
    return Recommendation(
        kind=kind,
        ideal=Action.SKIP_INSURANCE,
        action=Action.SKIP_INSURANCE,
        fallback=None,
        reasoning=(
            f"{hand_desc} vs {dealer_label} → "
            f"{Action.SKIP_INSURANCE.label} ({table_ref})"
        ),
        table_ref=table_ref,
    )
