"""
Verification tools for noirjack: shuffle uniformity and return statistics.
"""

from noirjack.verification.statistics import (
    ConfidenceInterval,
    ShuffleAuditResult,
    audit_shuffle,
    calculate_confidence_interval,
    summarize_returns,
)

__all__ = [
    "ConfidenceInterval",
    "ShuffleAuditResult",
    "audit_shuffle",
    "calculate_confidence_interval",
    "summarize_returns",
]
