"""
Logging for the strategy advisor.

Records chart lookups, rule adjustments and the recommendations handed out,
so a session's advice can be reviewed afterwards.
"""

import json
import logging
from typing import Deque, Dict, Any, List, Optional
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
import os
from ..common.card import Card
from .action import Action

DECISION_HISTORY_LIMIT = 1000


@dataclass
class DecisionRecord:
    """One recommendation given for one hand."""

    timestamp: datetime
    game_id: str
    seat_index: int
    hand_id: str
    hand_cards: List[Card]
    hand_kind: str
    dealer_upcard: Card
    legal_actions: List[Action]
    ideal_action: Action
    chosen_action: Action
    reasoning: str
    table_ref: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "game_id": self.game_id,
            "seat": self.seat_index,
            "hand_id": self.hand_id,
            "cards": [c.short for c in self.hand_cards],
            "kind": self.hand_kind,
            "dealer_up": self.dealer_upcard.short,
            "legal_actions": [a.value for a in self.legal_actions],
            "ideal": self.ideal_action.value,
            "chosen": self.chosen_action.value,
            "reason": self.reasoning,
            "table_ref": self.table_ref,
            **self.extra,
        }


class DecisionLogger:
    """Logs the advisor's decision-making."""

    def __init__(
        self, log_level=logging.DEBUG, max_history: int = DECISION_HISTORY_LIMIT
    ):
        self.logger = logging.getLogger("noirjack.strategy.decisions")
        # Simulations and batch runs can silence the advisor entirely
        if os.environ.get("NOIRJACK_DISABLE_LOGGING", "").lower() in (
            "1",
            "true",
            "yes",
        ):
            self.logger.setLevel(logging.ERROR)
        else:
            self.logger.setLevel(log_level)

        # Add console handler if none exists
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        # Oldest records drop off once the limit is reached
        self.decision_history: Deque[DecisionRecord] = deque(maxlen=max_history)

    def set_level(self, level):
        """Set the logging level."""
        self.logger.setLevel(level)

    def log_rule_evaluation(self, rule_name: str, result: bool, reason: str = ""):
        """Log a rule evaluation."""
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"Rule '{rule_name}': {result} {reason}")

    def log_strategy_lookup(
        self, hand_type: str, dealer_card: str, action: str, fallback_used: bool = False
    ):
        """Log basic strategy table lookup."""
        if self.logger.isEnabledFor(logging.DEBUG):
            msg = f"Strategy lookup: {hand_type} vs {dealer_card} -> {action}"
            if fallback_used:
                msg += " (using fallback)"
            self.logger.debug(msg)

    def log_recommendation(self, record: DecisionRecord):
        """Keep a recommendation handed to a player."""
        self.decision_history.append(record)
        if self.logger.isEnabledFor(logging.INFO):
            self.logger.info(
                f"Seat {record.seat_index + 1} {record.hand_id}: "
                f"{[c.short for c in record.hand_cards]} vs {record.dealer_upcard.short} "
                f"-> {record.chosen_action.value} ({record.reasoning})"
            )

    def get_decision_summary(self, game_id: Optional[str] = None) -> Dict[str, Any]:
        """Get a summary of the recommendations made, optionally for one table."""
        records = [
            d for d in self.decision_history if game_id is None or d.game_id == game_id
        ]
        summary: Dict[str, Any] = {
            "total_decisions": len(records),
            "by_action": {},
            "by_kind": {},
            "fallback_count": 0,
        }

        for record in records:
            action = record.chosen_action.value
            summary["by_action"][action] = summary["by_action"].get(action, 0) + 1
            summary["by_kind"][record.hand_kind] = (
                summary["by_kind"].get(record.hand_kind, 0) + 1
            )
            if record.chosen_action is not record.ideal_action:
                summary["fallback_count"] += 1

        return summary

    def clear(self):
        self.decision_history.clear()

    def export_decisions(self, filepath: str):
        """Export decision history to a JSON file."""
        data = {
            "decisions": [d.to_dict() for d in self.decision_history],
            "summary": self.get_decision_summary(),
        }

        with open(filepath, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        self.logger.info(
            f"Exported {len(self.decision_history)} decisions to {filepath}"
        )


# Global logger instance
decision_logger = DecisionLogger()
