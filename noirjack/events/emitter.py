"""
Event system for the noirjack engine.

State transitions publish what they did on a process-wide `EventBus` after the
new state has been built. Events are a notification channel only: the
returned `GameState` is authoritative, and a table with no listeners behaves
exactly like one with many.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
import threading
import logging
from enum import Enum

logger = logging.getLogger("noirjack.events")

EventData = Dict[str, Any]


class EventPriority(Enum):
    """Priority levels for event handlers."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


@dataclass
class _Handler:
    callback: Callable
    priority: int


def _insert_by_priority(handlers: List[_Handler], handler: _Handler) -> None:
    # Higher priority first; equal priorities keep subscription order.
    for i, existing in enumerate(handlers):
        if existing.priority < handler.priority:
            handlers.insert(i, handler)
            return
    handlers.append(handler)


def _remove_callback(handlers: List[_Handler], callback: Callable) -> None:
    for i, existing in enumerate(handlers):
        if existing.callback == callback:
            handlers.pop(i)
            return


def _event_key(event_type: Union[str, Enum]) -> str:
    return event_type.name if isinstance(event_type, Enum) else event_type


class EventEmitter:
    """
    Event emitter with priority-ordered subscriptions.

    Features:
    - Subscriptions per event type, ordered by priority
    - Once-only subscriptions
    - Catch-all subscriptions receiving ``(event_type, data)``
    - Thread-safe subscription and emission

    A handler that raises is logged and skipped; it never reaches the code
    that emitted the event.
    """

    def __init__(self):
        self._listeners: Dict[str, List[_Handler]] = defaultdict(list)
        self._global_listeners: List[_Handler] = []
        self._listener_lock = threading.RLock()

    def on(
        self,
        event_type: Union[str, Enum],
        callback: Callable[[EventData], Any],
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Callable[[], None]:
        """
        Subscribe to an event type.

        Args:
            event_type: The event type to subscribe to (string or enum)
            callback: Function to call when event occurs, signature: fn(event_data)
            priority: Priority level for this handler

        Returns:
            Unsubscribe function that can be called to remove this subscription
        """
        key = _event_key(event_type)
        with self._listener_lock:
            _insert_by_priority(self._listeners[key], _Handler(callback, priority.value))

        def unsubscribe():
            with self._listener_lock:
                _remove_callback(self._listeners[key], callback)

        return unsubscribe

    def once(
        self,
        event_type: Union[str, Enum],
        callback: Callable[[EventData], Any],
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Callable[[], None]:
        """
        Subscribe to an event type for a single occurrence.

        The subscription is removed before the callback runs, so it is gone
        even if the callback raises.
        """
        unsubscribe: Optional[Callable[[], None]] = None

        def one_time_handler(event_data):
            if unsubscribe is not None:
                unsubscribe()
            callback(event_data)

        unsubscribe = self.on(event_type, one_time_handler, priority)
        return unsubscribe

    def on_any(
        self,
        callback: Callable[[Tuple[str, EventData]], Any],
        priority: EventPriority = EventPriority.NORMAL,
    ) -> Callable[[], None]:
        """
        Subscribe to all events.

        Args:
            callback: Function to call for any event, signature: fn((event_type, event_data))
            priority: Priority level for this handler

        Returns:
            Unsubscribe function that can be called to remove this subscription
        """
        with self._listener_lock:
            _insert_by_priority(self._global_listeners, _Handler(callback, priority.value))

        def unsubscribe():
            with self._listener_lock:
                _remove_callback(self._global_listeners, callback)

        return unsubscribe

    def emit(self, event_type: Union[str, Enum], data: EventData) -> None:
        """
        Emit an event to all registered listeners.

        Args:
            event_type: The type of event to emit
            data: The data to include with the event
        """
        key = _event_key(event_type)

        with self._listener_lock:
            calls = [(handler.callback, data) for handler in self._listeners.get(key, [])]
            calls.extend(
                (handler.callback, (key, data)) for handler in self._global_listeners
            )

        # Handlers run outside the lock so they may subscribe or unsubscribe.
        for callback, args in calls:
            try:
                callback(args)
            except Exception as e:
                logger.error(f"Error in event handler for {key}: {e}", exc_info=True)

    def listener_count(self, event_type: Optional[Union[str, Enum]] = None) -> int:
        """Number of handlers for one event type, or for everything if omitted."""
        with self._listener_lock:
            if event_type is None:
                return sum(len(h) for h in self._listeners.values()) + len(
                    self._global_listeners
                )
            return len(self._listeners.get(_event_key(event_type), []))

    def remove_all_listeners(
        self, event_type: Optional[Union[str, Enum]] = None
    ) -> None:
        """
        Remove all listeners for a specific event type or all events.

        Args:
            event_type: Optional event type. If None, removes all listeners for all events.
        """
        with self._listener_lock:
            if event_type is None:
                self._listeners.clear()
                self._global_listeners.clear()
            else:
                self._listeners[_event_key(event_type)].clear()


class EventBus:
    """
    Global event bus for the application.

    This singleton class provides a centralized event bus that can be accessed
    from anywhere in the application.
    """

    _instance = None
    _lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> EventEmitter:
        """
        Get the singleton instance of the EventBus.

        Returns:
            EventEmitter instance
        """
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = EventEmitter()
        return cls._instance


class EngineEventType(Enum):
    """
    Event types published by the noirjack state machine.

    Every payload carries ``game_id`` and ``timestamp``.
    """

    # Table lifecycle
    GAME_CREATED = "game_created"
    SEAT_TAKEN = "seat_taken"
    SEAT_LEFT = "seat_left"
    BET_PLACED = "bet_placed"
    SHUFFLE = "shuffle"

    # Round lifecycle
    ROUND_STARTED = "round_started"
    ROUND_ENDED = "round_ended"

    # Cards and hands
    CARD_DEALT = "card_dealt"
    PLAYER_ACTION = "player_action"
    HAND_SPLIT = "hand_split"
    HAND_BUSTED = "hand_busted"
    HAND_RESULT = "hand_result"

    # Insurance and dealer
    INSURANCE_OFFERED = "insurance_offered"
    INSURANCE_DECISION = "insurance_decision"
    DEALER_PEEK = "dealer_peek"
    DEALER_ACTION = "dealer_action"

    # Money
    BANKROLL_UPDATED = "bankroll_updated"

    # Advisor
    STRATEGY_DECISION = "strategy_decision"

    # Errors
    ERROR = "error"
