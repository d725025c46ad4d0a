"""
Call outcome services: disposition unit of work, queue transitions,
conversion logging and the transition audit writer.
"""

from .conversion_logger import ConversionLogger, conversion_logger
from .disposition_service import DispositionOutcome, DispositionService, disposition_service
from .queue_transition_service import (
    QueueTransitionRequest,
    QueueTransitionResult,
    QueueTransitionService,
    queue_transition_service,
)
from .transition_audit import TransitionAuditWriter, transition_audit_writer

__all__ = [
    "ConversionLogger",
    "DispositionOutcome",
    "DispositionService",
    "QueueTransitionRequest",
    "QueueTransitionResult",
    "QueueTransitionService",
    "TransitionAuditWriter",
    "conversion_logger",
    "disposition_service",
    "queue_transition_service",
    "transition_audit_writer",
]
