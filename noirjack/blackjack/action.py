"""Defines the Action enum for the decisions a player can make on a blackjack hand."""
from enum import Enum


class Action(Enum):
    """Enum for the possible actions a player can take in a game of blackjack."""

    HIT = "hit"
    STAND = "stand"
    DOUBLE = "double"
    SPLIT = "split"
    SURRENDER = "surrender"
    SKIP_INSURANCE = "insurance-skip"

    @property
    def label(self) -> str:
        match self:
            case Action.HIT:
                return "Hit"
            case Action.STAND:
                return "Stand"
            case Action.DOUBLE:
                return "Double"
            case Action.SPLIT:
                return "Split"
            case Action.SURRENDER:
                return "Surrender"
            case Action.SKIP_INSURANCE:
                return "Skip Insurance"
