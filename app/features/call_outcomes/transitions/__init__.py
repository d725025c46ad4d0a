from .policy import (
    LEAK_PATTERNS,
    ConversionDecision,
    TransitionDecision,
    count_valid_pending_requirements,
    decide_transition,
    is_leak_pattern,
    should_log_conversion,
)

__all__ = [
    "LEAK_PATTERNS",
    "ConversionDecision",
    "TransitionDecision",
    "count_valid_pending_requirements",
    "decide_transition",
    "is_leak_pattern",
    "should_log_conversion",
]
