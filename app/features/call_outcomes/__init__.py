"""
Call outcome feature package.

This vertical slice keeps every layer of the call disposition flow
co-located (domain models, handlers, scoring, transition policy,
repositories, services, the leak monitor job and the API router) so the
path from a finished call to a conversion can be followed in one place.
"""

# Re-export the primary building blocks for easy access.
from .api.router import router as call_outcomes_router  # noqa: F401
from .domain.models import DispositionSubmission, OutcomeType  # noqa: F401
from .handlers import outcome_registry  # noqa: F401
from .jobs.leak_monitor_job import conversion_leak_monitor, start_conversion_leak_monitor  # noqa: F401
from .services.disposition_service import DispositionService, disposition_service  # noqa: F401
