"""
Table session.

`TableSession` is what a host (a UI, a server handler, a simulation) holds on
to. It keeps the current `GameState` snapshot, funnels every operation through
one lock so calls are applied one at a time, and turns shoe exhaustion into a
terminal session failure.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

from noirjack.common.shoe import RandomBytes, ShoeEmptyError
from noirjack.blackjack.action import Action
from noirjack.blackjack.constants import SEAT_COUNT, STARTING_BANKROLL
from noirjack.blackjack.decision_logger import DecisionLogger, DecisionRecord
from noirjack.blackjack.outcome import RoundOutcomeSummary, calculate_round_outcome
from noirjack.blackjack.predicates import (
    NO_ACTIONS,
    LegalActions,
    allowed_actions,
    first_undecided_insurance_hand,
)
from noirjack.blackjack.strategy import (
    PlayerContext,
    Recommendation,
    recommend,
    recommend_insurance,
)
from noirjack.events import EventBus, EngineEventType
from noirjack.state import GameState, HandState, Phase, StateTransitionEngine

logger = logging.getLogger("noirjack.engine")


class SessionFailedError(RuntimeError):
    """The session hit a fatal error earlier and must be replaced."""


class TableSession:
    """
    One table, one player, one lineage of `GameState` snapshots.

    Every method applies one transition to the current snapshot under a
    re-entrant lock and returns the new snapshot. Illegal calls come back
    unchanged, exactly as the transition functions return them.

    If the shoe runs out the session is finished: the error is logged,
    published as an ``ERROR`` event and re-raised, and every later call
    raises `SessionFailedError`.
    """

    def __init__(
        self,
        rule_overrides: Optional[Mapping[str, Any]] = None,
        *,
        bankroll: float = STARTING_BANKROLL,
        seat_count: int = SEAT_COUNT,
        random_bytes: Optional[RandomBytes] = None,
        decisions: Optional[DecisionLogger] = None,
    ):
        """
        Initialize the session with a fresh table.

        Args:
            rule_overrides: Rules to change from the defaults
            bankroll: Starting bankroll
            seat_count: Number of seats
            random_bytes: CSPRNG byte source for shuffling
            decisions: Where this session keeps the advice it hands out
        """
        self._lock = threading.RLock()
        self.event_bus = EventBus.get_instance()
        self.decisions = decisions if decisions is not None else DecisionLogger()
        self._failure: Optional[ShoeEmptyError] = None
        self._state = StateTransitionEngine.init_game(
            rule_overrides,
            bankroll=bankroll,
            seat_count=seat_count,
            random_bytes=random_bytes,
        )

    @classmethod
    def from_state(
        cls, state: GameState, decisions: Optional[DecisionLogger] = None
    ) -> "TableSession":
        """Resume a session from an existing snapshot."""
        session = cls.__new__(cls)
        session._lock = threading.RLock()
        session.event_bus = EventBus.get_instance()
        session.decisions = decisions if decisions is not None else DecisionLogger()
        session._failure = None
        session._state = state
        return session

    @property
    def state(self) -> GameState:
        with self._lock:
            return self._state

    @property
    def failed(self) -> bool:
        return self._failure is not None

    def _apply(self, name: str, transition: Callable[..., GameState], *args) -> GameState:
        with self._lock:
            if self._failure is not None:
                raise SessionFailedError(
                    f"Table {self._state.id} failed earlier: {self._failure}"
                ) from self._failure
            try:
                new_state = transition(self._state, *args)
            except ShoeEmptyError as exc:
                self._failure = exc
                logger.critical(
                    "Table %s: shoe exhausted during %s: %s", self._state.id, name, exc
                )
                self.event_bus.emit(
                    EngineEventType.ERROR,
                    {
                        "game_id": self._state.id,
                        "timestamp": time.time(),
                        "operation": name,
                        "error": str(exc),
                        "fatal": True,
                    },
                )
                raise
            self._state = new_state
            return new_state

    # Betting

    def sit(self, seat_index: int) -> GameState:
        return self._apply("sit", StateTransitionEngine.sit, seat_index)

    def leave(self, seat_index: int) -> GameState:
        return self._apply("leave", StateTransitionEngine.leave, seat_index)

    def set_bet(self, seat_index: int, amount: float) -> GameState:
        return self._apply("set_bet", StateTransitionEngine.set_bet, seat_index, amount)

    def deal(self) -> GameState:
        return self._apply("deal", StateTransitionEngine.deal)

    # Insurance

    def take_insurance(self, seat_index: int, hand_id: str, amount: float) -> GameState:
        return self._apply(
            "take_insurance", StateTransitionEngine.take_insurance, seat_index, hand_id, amount
        )

    def decline_insurance(self, seat_index: int, hand_id: str) -> GameState:
        return self._apply(
            "decline_insurance", StateTransitionEngine.decline_insurance, seat_index, hand_id
        )

    def skip_insurance(self) -> GameState:
        return self._apply("skip_insurance", StateTransitionEngine.skip_insurance)

    # Player decisions

    def hit(self) -> GameState:
        return self._apply("hit", StateTransitionEngine.player_hit)

    def stand(self) -> GameState:
        return self._apply("stand", StateTransitionEngine.player_stand)

    def double(self) -> GameState:
        return self._apply("double", StateTransitionEngine.player_double)

    def split(self) -> GameState:
        return self._apply("split", StateTransitionEngine.player_split)

    def surrender(self) -> GameState:
        return self._apply("surrender", StateTransitionEngine.player_surrender)

    def execute_action(self, action: Union[Action, str]) -> GameState:
        """
        Execute a player action by enum or by name ("hit", "STAND", ...).

        Raises:
            ValueError: If the name is not an action
        """
        if not isinstance(action, Action):
            try:
                action = Action(str(action).strip().lower())
            except ValueError as exc:
                raise ValueError(f"Unknown action: {action!r}") from exc

        match action:
            case Action.HIT:
                return self.hit()
            case Action.STAND:
                return self.stand()
            case Action.DOUBLE:
                return self.double()
            case Action.SPLIT:
                return self.split()
            case Action.SURRENDER:
                return self.surrender()
            case Action.SKIP_INSURANCE:
                return self.skip_insurance()

    # Dealer and settlement

    def play_dealer_step(self) -> GameState:
        return self._apply("play_dealer_step", StateTransitionEngine.play_dealer_step)

    def play_dealer(self) -> GameState:
        return self._apply("play_dealer", StateTransitionEngine.play_dealer)

    def settle(self) -> GameState:
        return self._apply("settle_all_hands", StateTransitionEngine.settle_all_hands)

    def prepare_next_round(self) -> GameState:
        return self._apply("prepare_next_round", StateTransitionEngine.prepare_next_round)

    # Read-only views

    def _hand(self, state: GameState, hand_id: Optional[str]) -> Optional[HandState]:
        if hand_id is None:
            if state.phase is Phase.INSURANCE:
                return first_undecided_insurance_hand(state)
            return state.active_hand
        for hand in state.iter_hands():
            if hand.id == hand_id:
                return hand
        return None

    def legal_actions(self, hand_id: Optional[str] = None) -> LegalActions:
        """Legal actions for a hand, by default the one awaiting a decision."""
        with self._lock:
            state = self._state
            hand = self._hand(state, hand_id)
            if hand is None:
                return NO_ACTIONS
            return allowed_actions(state, hand)

    def recommend(self, hand_id: Optional[str] = None) -> Optional[Recommendation]:
        """
        Basic-strategy advice for a hand, by default the one awaiting a decision.

        Returns None when there is nothing to decide.
        """
        with self._lock:
            state = self._state
            if state.phase not in (Phase.INSURANCE, Phase.PLAYER_ACTIONS):
                return None
            hand = self._hand(state, hand_id)
            context = PlayerContext.for_hand(state, hand)
            if hand is None or context is None:
                return None

            if state.phase is Phase.INSURANCE:
                advice = recommend_insurance(context, state.rules)
            else:
                advice = recommend(context, state.rules)

            self.decisions.log_recommendation(
                DecisionRecord(
                    timestamp=datetime.now(),
                    game_id=state.id,
                    seat_index=hand.seat_index,
                    hand_id=hand.id,
                    hand_cards=list(hand.cards),
                    hand_kind=advice.kind.value,
                    dealer_upcard=context.dealer_upcard,
                    legal_actions=[a for a in Action if context.legal.allows(a)],
                    ideal_action=advice.ideal,
                    chosen_action=advice.action,
                    reasoning=advice.reasoning,
                    table_ref=advice.table_ref,
                )
            )
            self.event_bus.emit(
                EngineEventType.STRATEGY_DECISION,
                {
                    "game_id": state.id,
                    "timestamp": time.time(),
                    "seat_index": hand.seat_index,
                    "hand_id": hand.id,
                    "kind": advice.kind.value,
                    "ideal": advice.ideal.value,
                    "action": advice.action.value,
                    "fallback": advice.fallback.value if advice.fallback else None,
                    "reasoning": advice.reasoning,
                },
            )
            return advice

    def round_outcome(self) -> Optional[RoundOutcomeSummary]:
        with self._lock:
            return calculate_round_outcome(self._state)

    def snapshot(self) -> Dict[str, Any]:
        """Serializable view of the table for presentation."""
        with self._lock:
            return self._state.to_dict()
