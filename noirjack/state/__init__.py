"""
Immutable state management for the noirjack engine.

This package provides immutable state classes and pure transition functions
for managing a blackjack table in a predictable and testable way.
"""

from noirjack.state.models import (
    Phase,
    HandOutcome,
    HandState,
    SeatState,
    DealerState,
    GameState,
)

from noirjack.state.transitions import StateTransitionEngine

__all__ = [
    "Phase",
    "HandOutcome",
    "HandState",
    "SeatState",
    "DealerState",
    "GameState",
    "StateTransitionEngine",
]
