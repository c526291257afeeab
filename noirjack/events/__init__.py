"""
Event system for the noirjack engine.

This package provides the event bus the state machine publishes on.
"""

from noirjack.events.emitter import (
    EventEmitter,
    EventBus,
    EventPriority,
    EngineEventType,
)

__all__ = ["EventEmitter", "EventBus", "EventPriority", "EngineEventType"]
