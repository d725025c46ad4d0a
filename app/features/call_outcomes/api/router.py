"""
Call outcome routes.

Disposition intake, outcome catalog, score explanation and the conversion
leak dashboard. All HTTP endpoints for the call outcome pipeline live here.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.infrastructure.observability.logging import get_logger

from ..domain.errors import (
    OutcomeExecutionFailed,
    TransitionPersistenceError,
    UnknownOutcomeType,
    ValidationFailed,
)
from ..handlers import outcome_registry
from ..jobs.leak_monitor_job import ConversionLeakMonitor, conversion_leak_monitor
from ..scoring.service import ScoringContext, priority_scoring_service
from ..services.disposition_service import DispositionService, disposition_service
from .schemas import (
    DispositionRequest,
    DispositionResponse,
    NextActionResponse,
    OutcomeTypeResponse,
    ScoreExplainRequest,
    ScoringRuleResponse,
)

logger = get_logger(__name__)

router = APIRouter(tags=["call-outcomes"])


def get_disposition_service() -> DispositionService:
    return disposition_service


def get_leak_monitor() -> ConversionLeakMonitor:
    return conversion_leak_monitor


def _persistence_status(error: TransitionPersistenceError) -> int:
    if error.operation == "load_session":
        return status.HTTP_404_NOT_FOUND
    if error.operation == "already_disposed":
        return status.HTTP_409_CONFLICT
    if error.recoverable:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@router.post("/calls/{session_id}/outcome", response_model=DispositionResponse)
async def record_call_outcome(
    session_id: str,
    request: DispositionRequest,
    service: DispositionService = Depends(get_disposition_service),
) -> DispositionResponse:
    """Record the agent's disposition for a finished call."""
    try:
        outcome = await service.record_outcome(
            request.to_submission(session_id), request.to_call_event(session_id)
        )
    except UnknownOutcomeType as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(e), "errors": [str(e)], "warnings": []},
        )
    except ValidationFailed as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Outcome validation failed", "errors": e.errors, "warnings": e.warnings},
        )
    except OutcomeExecutionFailed as e:
        logger.error("Outcome handler failed", session_id=session_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process call outcome",
        )
    except TransitionPersistenceError as e:
        code = _persistence_status(e)
        if code >= 500:
            logger.error("Call outcome persistence failed", session_id=session_id, error=str(e))
        raise HTTPException(status_code=code, detail=str(e))

    result = outcome.result
    return DispositionResponse(
        session_id=outcome.session_id,
        user_id=outcome.user_id,
        outcome_type=result.outcome_type.value,
        outcome_id=outcome.outcome_id,
        final_score=outcome.score.final_score,
        score_adjustment=result.score_adjustment,
        is_fresh_start=outcome.score.is_fresh_start,
        converted=outcome.converted,
        conversion_type=str(outcome.decision.conversion_type) if outcome.decision.conversion_type else None,
        conversion_id=outcome.conversion_id,
        needs_manual_review=outcome.decision.needs_manual_review,
        next_call_delay_hours=result.next_call_delay_hours,
        callback_datetime=result.callback_datetime,
        callback_id=outcome.callback_id,
        next_actions=[NextActionResponse.from_action(a) for a in result.next_actions],
        warnings=outcome.warnings,
    )


@router.get("/call-outcomes/types", response_model=list[OutcomeTypeResponse])
async def list_outcome_types() -> list[OutcomeTypeResponse]:
    """Outcome catalog for the disposition form."""
    return [
        OutcomeTypeResponse(
            outcome_type=handler.outcome_type.value,
            display_name=handler.display_name,
            description=handler.description,
            category=handler.category.value,
            scoring_rule=ScoringRuleResponse(
                score_delta=handler.scoring_rule.score_delta,
                triggers_conversion=handler.scoring_rule.triggers_conversion,
                description=handler.scoring_rule.description,
            ),
            required_fields=list(handler.required_fields),
        )
        for handler in outcome_registry.handlers()
    ]


@router.post("/scoring/explain")
async def explain_score(request: ScoreExplainRequest) -> dict:
    """Factor-by-factor breakdown of how a score would be computed."""
    return priority_scoring_service.explain_score(ScoringContext(**request.model_dump()))


@router.get("/health/conversion-leaks")
async def conversion_leak_health(
    hours_back: int = Query(default=24, ge=1, le=720),
    monitor: ConversionLeakMonitor = Depends(get_leak_monitor),
) -> dict:
    """Leak monitor metrics for the health dashboard."""
    metrics = await monitor.get_health_metrics(hours_back)
    return {"metrics": metrics, "job": monitor.get_job_status(), "hours_back": hours_back}


@router.post("/health/conversion-leaks/run")
async def run_conversion_leak_check(
    monitor: ConversionLeakMonitor = Depends(get_leak_monitor),
) -> dict:
    """Trigger a leak detection pass on demand."""
    return await monitor.run_once()
