"""
Host-facing engine for noirjack.

This package wraps the pure state machine in a session object that a UI or
server can hold on to.
"""

from noirjack.engine.table import SessionFailedError, TableSession

__all__ = ["SessionFailedError", "TableSession"]
